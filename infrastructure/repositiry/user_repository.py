from sqlalchemy import func, select
from domain.entity.userentity import UserRole
from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import AccountORM, CustomerORM, PerformerORM


class UserRepository(BaseRepository):

    async def get_account(self, account_id):
        return await self.session.get(AccountORM, account_id)

    async def get_account_by_email(self, email):
        result = await self.session.execute(select(AccountORM).where(AccountORM.email == email))
        return result.scalar_one_or_none()

    async def email_exists(self, email):
        return await self.get_account_by_email(email) is not None

    async def get_accounts(self):
        result = await self.session.execute(select(AccountORM).order_by(AccountORM.id))
        return result.scalars().all()

    async def get_admin_account_ids(self):
        result = await self.session.execute(
            select(AccountORM.id).where(AccountORM.role == UserRole.ADMINISTRATOR, AccountORM.is_active.is_(True))
        )
        return result.scalars().all()

    async def count_accounts(self, role=None):
        query = select(func.count(AccountORM.id))
        if role is not None:
            query = query.where(AccountORM.role == role)
        return (await self.session.execute(query)).scalar_one()

    async def get_customer(self, customer_id):
        return await self.session.get(CustomerORM, customer_id)

    async def get_customer_by_account(self, account_id):
        result = await self.session.execute(select(CustomerORM).where(CustomerORM.account_id == account_id))
        return result.scalar_one_or_none()

    async def get_performer(self, performer_id):
        return await self.session.get(PerformerORM, performer_id)

    async def get_performer_by_account(self, account_id):
        result = await self.session.execute(select(PerformerORM).where(PerformerORM.account_id == account_id))
        return result.scalar_one_or_none()
