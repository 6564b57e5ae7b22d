from sqlalchemy import select
from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import PortfolioORM


class PortfolioRepository(BaseRepository):

    async def get_by_customer(self, customer_id):
        result = await self.session.execute(select(PortfolioORM).where(PortfolioORM.customer_id == customer_id))
        return result.scalar_one_or_none()

    async def get_by_performer(self, performer_id):
        result = await self.session.execute(select(PortfolioORM).where(PortfolioORM.performer_id == performer_id))
        return result.scalar_one_or_none()
