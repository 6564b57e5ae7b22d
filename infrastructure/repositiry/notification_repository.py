from sqlalchemy import select, delete, update, func
from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import NotificationORM


class NotificationRepository(BaseRepository):

    async def get_by_id(self, notification_id):
        return await self.session.get(NotificationORM, notification_id)

    async def get_by_account(self, account_id, unread_only=False):
        query = select(NotificationORM).where(NotificationORM.account_id == account_id)
        if unread_only:
            query = query.where(NotificationORM.is_read.is_(False))
        result = await self.session.execute(query.order_by(NotificationORM.created_at.desc(), NotificationORM.id.desc()))
        return result.scalars().all()

    async def count_unread(self, account_id):
        result = await self.session.execute(
            select(func.count(NotificationORM.id)).where(
                NotificationORM.account_id == account_id,
                NotificationORM.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def exists_for_order(self, account_id, notification_type, order_id):
        result = await self.session.execute(
            select(NotificationORM.id).where(
                NotificationORM.account_id == account_id,
                NotificationORM.type == notification_type,
                NotificationORM.related_order_id == order_id,
            ).limit(1)
        )
        return result.first() is not None

    async def mark_all_read(self, account_id):
        result = await self.session.execute(
            update(NotificationORM)
            .where(NotificationORM.account_id == account_id, NotificationORM.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    async def delete_by_account(self, account_id):
        result = await self.session.execute(
            delete(NotificationORM)
            .where(NotificationORM.account_id == account_id)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount
