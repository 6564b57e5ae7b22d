from sqlalchemy import select, delete
from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import ReplyORM


class ReplyRepository(BaseRepository):

    async def get_by_id(self, reply_id):
        return await self.session.get(ReplyORM, reply_id)

    async def get_by_order(self, order_id):
        result = await self.session.execute(
            select(ReplyORM).where(ReplyORM.order_id == order_id).order_by(ReplyORM.id)
        )
        return result.scalars().all()

    async def get_by_performer(self, performer_id):
        result = await self.session.execute(
            select(ReplyORM).where(ReplyORM.performer_id == performer_id).order_by(ReplyORM.id)
        )
        return result.scalars().all()

    async def get_by_order_and_performer(self, order_id, performer_id):
        result = await self.session.execute(
            select(ReplyORM).where(ReplyORM.order_id == order_id, ReplyORM.performer_id == performer_id)
        )
        return result.scalar_one_or_none()

    async def exists(self, order_id, performer_id):
        return await self.get_by_order_and_performer(order_id, performer_id) is not None

    async def get_competing_performer_ids(self, order_id, performer_id):
        # locking read, so replies committed by other transactions are seen
        result = await self.session.execute(
            select(ReplyORM.performer_id)
            .where(ReplyORM.order_id == order_id, ReplyORM.performer_id != performer_id)
            .order_by(ReplyORM.id)
            .with_for_update()
        )
        return result.scalars().all()

    async def delete_by_order(self, order_id):
        # synchronize_session drops the deleted rows from the identity map too
        result = await self.session.execute(
            delete(ReplyORM).where(ReplyORM.order_id == order_id).execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    async def delete_by_order_and_performer(self, order_id, performer_id):
        result = await self.session.execute(
            delete(ReplyORM)
            .where(ReplyORM.order_id == order_id, ReplyORM.performer_id == performer_id)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount
