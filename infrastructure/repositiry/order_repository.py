from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import OrderORM
from domain.entity.orderentity import OrderStatus
from sqlalchemy import func, select, update


class OrderRepository(BaseRepository):

    async def get_by_id(self, order_id, fresh=False):
        # fresh=True re-reads the row even if the session already holds it
        if fresh:
            result = await self.session.execute(
                select(OrderORM).where(OrderORM.id == order_id).execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        return await self.session.get(OrderORM, order_id)

    async def get_customer_orders(self, customer_id, include_deleted=False):
        query = select(OrderORM).where(OrderORM.customer_id == customer_id)
        if not include_deleted:
            query = query.where(OrderORM.is_deleted_by_customer.is_(False))
        result = await self.session.execute(query.order_by(OrderORM.publication_time.desc()))
        return result.scalars().all()

    async def get_performer_orders(self, performer_id):
        result = await self.session.execute(
            select(OrderORM).where(OrderORM.performer_id == performer_id).order_by(OrderORM.id)
        )
        return result.scalars().all()

    async def get_available(self, search=None):
        query = select(OrderORM).where(
            OrderORM.status == OrderStatus.ACTIVE,
            OrderORM.is_listed.is_(True),
            OrderORM.is_deleted_by_customer.is_(False),
        )
        if search:
            query = query.where(OrderORM.title.ilike(f"%{search}%"))
        result = await self.session.execute(query.order_by(OrderORM.publication_time.desc()))
        return result.scalars().all()

    async def get_by_status(self, status):
        result = await self.session.execute(
            select(OrderORM).where(OrderORM.status == status).order_by(OrderORM.publication_time)
        )
        return result.scalars().all()

    async def count(self, status=None):
        query = select(func.count(OrderORM.id))
        if status is not None:
            query = query.where(OrderORM.status == status)
        return (await self.session.execute(query)).scalar_one()

    async def increment_replies(self, order):
        await self._shift_replies(order, OrderORM.reply_bind + 1)

    async def decrement_replies(self, order):
        await self._shift_replies(order, OrderORM.reply_bind - 1, OrderORM.reply_bind > 0)

    async def _shift_replies(self, order, value, *criteria):
        # plain UPDATE, the order version stays as it is
        await self.session.execute(
            update(OrderORM)
            .where(OrderORM.id == order.id, *criteria)
            .values(reply_bind=value)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(order, ["reply_bind"])
