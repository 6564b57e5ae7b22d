import logging
from typing import Optional

from domain.entity.userentity import (Caller, CustomerPortfolioUpdate, PerformerPortfolioUpdate, Portfolio,
                                      UserRole)
from domain.exceptions import NotFoundError
from infrastructure.repositiry.db_models import PortfolioORM
from infrastructure.repositiry.portfolio_repository import PortfolioRepository
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.access_guard import AccessGuard

logger = logging.getLogger(__name__)


class PortfolioService:
    """Profile pages of customers and performers. The owner's display name lives on the profile row."""

    def __init__(self, session):
        self.session = session
        self.portfolio_repo = PortfolioRepository(session)
        self.user_repo = UserRepository(session)
        self.guard = AccessGuard(session)

    async def get_own_portfolio(self, caller: Caller) -> Optional[Portfolio]:
        if caller.role == UserRole.CUSTOMER:
            customer = await self.guard.require_customer(caller)
            portfolio = await self.portfolio_repo.get_by_customer(customer.id)
        else:
            performer = await self.guard.require_performer(caller)
            portfolio = await self.portfolio_repo.get_by_performer(performer.id)
        return portfolio.to_entity() if portfolio else None

    async def get_customer_portfolio(self, customer_id: int) -> Optional[Portfolio]:
        if not await self.user_repo.get_customer(customer_id):
            raise NotFoundError("Customer", customer_id)
        portfolio = await self.portfolio_repo.get_by_customer(customer_id)
        return portfolio.to_entity() if portfolio else None

    async def get_performer_portfolio(self, performer_id: int) -> Optional[Portfolio]:
        if not await self.user_repo.get_performer(performer_id):
            raise NotFoundError("Performer", performer_id)
        portfolio = await self.portfolio_repo.get_by_performer(performer_id)
        return portfolio.to_entity() if portfolio else None

    async def update_performer_portfolio(self, caller: Caller, data: PerformerPortfolioUpdate) -> Portfolio:
        performer = await self.guard.require_performer(caller)
        portfolio = await self.portfolio_repo.get_by_performer(performer.id)
        if portfolio is None:
            portfolio = await self.portfolio_repo.add(
                PortfolioORM(owner_type=UserRole.PERFORMER, performer_id=performer.id))

        performer.name = data.full_name()
        portfolio.phone = data.phone
        portfolio.email = data.email
        portfolio.town_country = data.town_country
        portfolio.specializations = data.specializations
        portfolio.employment = data.employment
        portfolio.experience = data.experience
        await self.session.commit()
        logger.info("Performer %s updated portfolio %s", performer.id, portfolio.id)
        return portfolio.to_entity()

    async def update_customer_portfolio(self, caller: Caller, data: CustomerPortfolioUpdate) -> Portfolio:
        customer = await self.guard.require_customer(caller)
        portfolio = await self.portfolio_repo.get_by_customer(customer.id)
        if portfolio is None:
            portfolio = await self.portfolio_repo.add(
                PortfolioORM(owner_type=UserRole.CUSTOMER, customer_id=customer.id))

        customer.name = data.full_name()
        portfolio.phone = data.phone
        portfolio.description = data.description
        portfolio.scope = data.scope
        await self.session.commit()
        logger.info("Customer %s updated portfolio %s", customer.id, portfolio.id)
        return portfolio.to_entity()
