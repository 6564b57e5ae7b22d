import logging
from typing import Optional

from domain.entity.orderentity import Order, OrderStatus
from domain.entity.userentity import Account, Caller, UserRole
from domain.exceptions import InvalidStateError, NotFoundError
from infrastructure.repositiry.order_repository import OrderRepository
from infrastructure.repositiry.review_repository import ReviewRepository
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.access_guard import AccessGuard
from infrastructure.services.notification_service import NotificationDispatcher
from infrastructure.services.reply_service import ReplyService

logger = logging.getLogger(__name__)


class AdminService:
    """
    Moderation for administrators: order review (ON_REVIEW -> ACTIVE or
    REJECTED), account activation, review removal and platform counters.
    Every call checks the administrator role first.
    """

    def __init__(self, session, dispatcher: Optional[NotificationDispatcher] = None):
        self.session = session
        self.order_repo = OrderRepository(session)
        self.user_repo = UserRepository(session)
        self.review_repo = ReviewRepository(session)
        self.guard = AccessGuard(session)
        self.dispatcher = dispatcher or NotificationDispatcher(session)

    async def _order_on_review(self, order_id: int):
        order = await self.order_repo.get_by_id(order_id, fresh=True)
        if not order:
            raise NotFoundError("Order", order_id)
        if order.status != OrderStatus.ON_REVIEW:
            raise InvalidStateError("Заказ не находится на рассмотрении")
        return order

    async def list_orders_on_review(self, caller: Caller) -> list[Order]:
        self.guard.require_admin(caller)
        return [o.to_entity() for o in await self.order_repo.get_by_status(OrderStatus.ON_REVIEW)]

    async def approve_order(self, caller: Caller, order_id: int) -> Order:
        self.guard.require_admin(caller)
        order = await self._order_on_review(order_id)
        order.status = OrderStatus.ACTIVE
        order.is_listed = True
        await self.session.commit()
        logger.info("Order %s approved by administrator %s", order_id, caller.account_id)

        result = order.to_entity()
        customer = await self.user_repo.get_customer(order.customer_id)
        if customer:
            await self.dispatcher.order_approved(customer.to_entity(), result)
        return result

    async def reject_order(self, caller: Caller, order_id: int, reason: Optional[str] = None) -> Order:
        self.guard.require_admin(caller)
        order = await self._order_on_review(order_id)
        order.status = OrderStatus.REJECTED
        order.is_listed = False
        await self.session.commit()
        logger.info("Order %s rejected by administrator %s", order_id, caller.account_id)

        result = order.to_entity()
        customer = await self.user_repo.get_customer(order.customer_id)
        if customer:
            await self.dispatcher.order_rejected(customer.to_entity(), result, reason)
        return result

    async def list_accounts(self, caller: Caller) -> list[Account]:
        self.guard.require_admin(caller)
        return [a.to_entity() for a in await self.user_repo.get_accounts()]

    async def set_account_active(self, caller: Caller, account_id: int, active: bool) -> Account:
        self.guard.require_admin(caller)
        account = await self.user_repo.get_account(account_id)
        if not account:
            raise NotFoundError("Account", account_id)
        if account.id == caller.account_id and not active:
            raise InvalidStateError("Administrator cannot deactivate own account")
        account.is_active = active
        await self.session.commit()
        logger.info("Account %s %s by administrator %s", account_id,
                    "activated" if active else "deactivated", caller.account_id)
        return account.to_entity()

    async def delete_reply(self, caller: Caller, reply_id: int):
        """Remove a performer's reply to any order."""
        self.guard.require_admin(caller)
        await ReplyService(self.session, self.dispatcher).delete_reply(caller, reply_id)

    async def delete_review(self, caller: Caller, review_id: int):
        self.guard.require_admin(caller)
        review = await self.review_repo.get_by_id(review_id)
        if not review:
            raise NotFoundError("Review", review_id)
        await self.review_repo.delete(review)
        await self.session.commit()
        logger.info("Review %s deleted by administrator %s", review_id, caller.account_id)

    async def statistics(self, caller: Caller) -> dict:
        self.guard.require_admin(caller)
        return {
            "total_users": await self.user_repo.count_accounts(),
            "total_customers": await self.user_repo.count_accounts(UserRole.CUSTOMER),
            "total_performers": await self.user_repo.count_accounts(UserRole.PERFORMER),
            "total_administrators": await self.user_repo.count_accounts(UserRole.ADMINISTRATOR),
            "total_orders": await self.order_repo.count(),
            "active_orders": await self.order_repo.count(OrderStatus.ACTIVE),
            "on_review_orders": await self.order_repo.count(OrderStatus.ON_REVIEW),
            "done_orders": await self.order_repo.count(OrderStatus.DONE),
        }
