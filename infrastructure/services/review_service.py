import logging
from typing import Optional

from domain.entity.orderentity import OrderStatus
from domain.entity.userentity import Caller, ReviewerType, UserRole, WorkExperience
from domain.exceptions import AccessDeniedError, InvalidStateError, NotFoundError, ValidationFailedError
from infrastructure.repositiry.base_repository import utcnow
from infrastructure.repositiry.db_models import WorkExperienceORM
from infrastructure.repositiry.order_repository import OrderRepository
from infrastructure.repositiry.review_repository import ReviewRepository
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.access_guard import AccessGuard
from infrastructure.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


class ReviewService:
    """Reviews left by both sides of a completed order. The counterparty always comes from the order."""

    def __init__(self, session, dispatcher: Optional[NotificationDispatcher] = None):
        self.session = session
        self.review_repo = ReviewRepository(session)
        self.order_repo = OrderRepository(session)
        self.user_repo = UserRepository(session)
        self.guard = AccessGuard(session)
        self.dispatcher = dispatcher or NotificationDispatcher(session)

    @staticmethod
    def _check_rate(rate: int):
        if rate is None or not 1 <= rate <= 5:
            raise ValidationFailedError("Invalid review", errors={"rate": "must be between 1 and 5"})

    async def _done_order(self, order_id: int):
        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        if order.status != OrderStatus.DONE:
            raise InvalidStateError("Reviews are accepted only for completed orders")
        return order

    async def _save(self, order, reviewer_type: ReviewerType, name: str, rate: int, text: Optional[str]):
        if await self.review_repo.exists_for_order(order.id, reviewer_type):
            raise InvalidStateError("Review for this order already exists")
        review = WorkExperienceORM(
            name=name,
            rate=rate,
            text=text,
            reviewer_type=reviewer_type,
            order_id=order.id,
            customer_id=order.customer_id,
            performer_id=order.performer_id,
            created_at=utcnow(),
        )
        await self.review_repo.add(review)
        await self.session.commit()
        return review.to_entity()

    async def add_review_by_performer(self, caller: Caller, order_id: int, name: str, rate: int,
                                      text: Optional[str] = None) -> WorkExperience:
        """Performer rates the customer of an order they completed."""
        self._check_rate(rate)
        performer = await self.guard.require_performer(caller)
        order = await self._done_order(order_id)
        if order.performer_id != performer.id:
            raise AccessDeniedError(f"order {order_id} is not assigned to performer {performer.id}")
        customer = await self.user_repo.get_customer(order.customer_id)
        if not customer:
            raise NotFoundError("Customer", order.customer_id)

        result = await self._save(order, ReviewerType.PERFORMER, name, rate, text)
        logger.info("Performer %s reviewed customer %s for order %s", performer.id, customer.id, order.id)
        await self.dispatcher.review_added(customer.account_id, UserRole.CUSTOMER, performer.name,
                                           order.to_entity(), rate, performer_id=performer.id)
        return result

    async def add_review_by_customer(self, caller: Caller, order_id: int, name: str, rate: int,
                                     text: Optional[str] = None) -> WorkExperience:
        """Customer rates the performer who completed the order."""
        self._check_rate(rate)
        customer = await self.guard.require_customer(caller)
        order = await self._done_order(order_id)
        if order.customer_id != customer.id:
            raise AccessDeniedError(f"order {order_id} belongs to another customer")
        if order.performer_id is None:
            raise InvalidStateError("Order has no assigned performer")
        performer = await self.user_repo.get_performer(order.performer_id)
        if not performer:
            raise NotFoundError("Performer", order.performer_id)

        result = await self._save(order, ReviewerType.CUSTOMER, name, rate, text)
        logger.info("Customer %s reviewed performer %s for order %s", customer.id, performer.id, order.id)
        await self.dispatcher.review_added(performer.account_id, UserRole.PERFORMER, customer.name,
                                           order.to_entity(), rate, customer_id=customer.id)
        return result

    async def list_reviews_about_performer(self, performer_id: int) -> list[WorkExperience]:
        if not await self.user_repo.get_performer(performer_id):
            raise NotFoundError("Performer", performer_id)
        return [r.to_entity() for r in await self.review_repo.get_about_performer(performer_id)]

    async def list_reviews_about_customer(self, customer_id: int) -> list[WorkExperience]:
        if not await self.user_repo.get_customer(customer_id):
            raise NotFoundError("Customer", customer_id)
        return [r.to_entity() for r in await self.review_repo.get_about_customer(customer_id)]
