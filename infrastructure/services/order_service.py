import logging
from typing import Optional

from domain.entity.orderentity import Order, OrderData, OrderStatus, OrderWithReplies
from domain.entity.userentity import Caller, UserRole
from domain.exceptions import AccessDeniedError, InvalidStateError, NotFoundError
from infrastructure import config
from infrastructure.repositiry.base_repository import utcnow
from infrastructure.repositiry.db_models import OrderORM, CustomerORM
from infrastructure.repositiry.order_repository import OrderRepository
from infrastructure.repositiry.reply_repository import ReplyRepository
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.access_guard import AccessGuard
from infrastructure.services.chat_service import ChatService
from infrastructure.services.notification_service import NotificationDispatcher
from infrastructure.services.reply_service import ReplyService

logger = logging.getLogger(__name__)


class OrderService:
    """
    Order lifecycle: ACTIVE -> IN_PROCESS -> ON_CHECK -> DONE, with refusals
    going back to ACTIVE and correction requests going back to IN_PROCESS.
    With moderation on, new orders start as ON_REVIEW and wait for an
    administrator; rejected ones can be edited and sent back for review.

    Each mutating operation commits its own state change first and only then
    fires notifications and emails through the dispatcher. The returned order
    is a snapshot taken right after the commit.
    """

    def __init__(self, session, dispatcher: Optional[NotificationDispatcher] = None,
                 moderation: Optional[bool] = None):
        self.session = session
        self.moderation = config.ORDER_MODERATION if moderation is None else moderation
        self.order_repo = OrderRepository(session)
        self.reply_repo = ReplyRepository(session)
        self.user_repo = UserRepository(session)
        self.guard = AccessGuard(session)
        self.dispatcher = dispatcher or NotificationDispatcher(session)
        self.reply_service = ReplyService(session, dispatcher=self.dispatcher)
        self.chat_service = ChatService(session)

    async def _get_order(self, order_id: int, fresh=False) -> OrderORM:
        order = await self.order_repo.get_by_id(order_id, fresh=fresh)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    async def _owned_order(self, caller: Caller, order_id: int) -> tuple[OrderORM, CustomerORM]:
        order = await self._get_order(order_id, fresh=True)
        await self.guard.assert_ownership(order, caller)
        customer = await self.user_repo.get_customer(order.customer_id)
        if not customer:
            raise NotFoundError("Customer", order.customer_id)
        return order, customer

    async def _get_performer(self, performer_id: int):
        performer = await self.user_repo.get_performer(performer_id)
        if not performer:
            raise NotFoundError("Performer", performer_id)
        return performer

    async def create_order(self, caller: Caller, data: OrderData) -> Order:
        customer = await self.guard.require_customer(caller)
        order = OrderORM(
            title=data.title,
            description=data.description,
            scope=data.scope,
            tech_stack=data.tech_stack,
            budget=data.budget,
            customer_id=customer.id,
            performer_id=None,
            status=OrderStatus.ON_REVIEW if self.moderation else OrderStatus.ACTIVE,
            is_listed=True,
            is_deleted_by_customer=False,
            publication_time=utcnow(),
            reply_bind=0,
        )
        await self.order_repo.add(order)
        await self.session.commit()
        logger.info("Customer %s created order %s (%s)", customer.id, order.id, order.status.value)

        result = order.to_entity()
        if self.moderation:
            await self._submit_for_review(customer, result)
        return result

    async def _submit_for_review(self, customer: CustomerORM, order: Order):
        admin_ids = await self.user_repo.get_admin_account_ids()
        await self.dispatcher.order_submitted_for_review(admin_ids, customer.to_entity(), order)

    async def resubmit_order(self, caller: Caller, order_id: int, data: OrderData) -> Order:
        """Edit a rejected order and send it back to the administrators."""
        order, customer = await self._owned_order(caller, order_id)
        if order.status != OrderStatus.REJECTED:
            raise InvalidStateError("Only rejected orders can be updated")
        order.title = data.title
        order.description = data.description
        order.scope = data.scope
        order.tech_stack = data.tech_stack
        order.budget = data.budget
        order.status = OrderStatus.ON_REVIEW
        order.publication_time = utcnow()
        await self.session.commit()
        logger.info("Order %s updated and resubmitted for review by customer %s", order.id, customer.id)

        result = order.to_entity()
        await self._submit_for_review(customer, result)
        return result

    async def deactivate_order(self, caller: Caller, order_id: int) -> Order:
        order, _ = await self._owned_order(caller, order_id)
        if order.performer_id is not None:
            raise InvalidStateError("Cannot deactivate order that is in progress")
        order.is_listed = False
        await self.session.commit()
        logger.info("Order %s deactivated", order_id)
        return order.to_entity()

    async def reactivate_order(self, caller: Caller, order_id: int) -> Order:
        order, _ = await self._owned_order(caller, order_id)
        if order.is_deleted_by_customer:
            raise InvalidStateError("Deleted order cannot be published again")
        if order.status != OrderStatus.ACTIVE:
            raise InvalidStateError(f"Cannot publish order in status {order.status.value}")
        order.is_listed = True
        await self.session.commit()
        logger.info("Order %s published again", order_id)
        return order.to_entity()

    async def soft_delete_order(self, caller: Caller, order_id: int) -> Order:
        """Hide the order from its customer. Pending replies go away, the assignment stays."""
        order, _ = await self._owned_order(caller, order_id)
        if order.performer_id is None:
            await self.reply_service.remove_all_for_order(order.id)
            order = await self._get_order(order_id, fresh=True)
            order.reply_bind = 0
        order.is_deleted_by_customer = True
        await self.session.commit()
        logger.info("Order %s deleted by customer %s (soft delete)", order_id, order.customer_id)
        return order.to_entity()

    async def assign_performer(self, caller: Caller, order_id: int, performer_id: int) -> Order:
        order, customer = await self._owned_order(caller, order_id)
        performer = await self._get_performer(performer_id)

        if order.performer_id == performer.id:
            return order.to_entity()
        if order.performer_id is not None:
            raise InvalidStateError("Order already has an assigned performer")
        if order.status != OrderStatus.ACTIVE or order.is_deleted_by_customer or not order.is_listed:
            raise InvalidStateError(f"Cannot assign a performer to order in status {order.status.value}")

        reply = await self.reply_repo.get_by_order_and_performer(order.id, performer.id)
        if not reply:
            raise NotFoundError(f"Reply from performer {performer.id} for order", order.id)

        rival_ids = await self.reply_service.remove_competing_replies(order.id, performer.id)
        reply.is_on_customer = True
        reply.is_approved_by_customer = True

        order.performer_id = performer.id
        order.status = OrderStatus.IN_PROCESS
        order.start_time = utcnow()
        order.end_time = None
        order.reply_bind = 1
        await self.chat_service.ensure_chat_exists(customer.id, performer.id, order)
        await self.session.commit()
        logger.info("Performer %s assigned to order %s", performer.id, order.id)

        result = order.to_entity()
        customer_entity = customer.to_entity()
        await self.dispatcher.performer_assigned(customer_entity, performer.to_entity(), result)
        for rival_id in rival_ids:
            rival = await self.user_repo.get_performer(rival_id)
            if rival:
                await self.dispatcher.performer_not_selected(customer_entity, rival.to_entity(), result)
        return result

    async def _unassign(self, order: OrderORM, performer_id: int) -> OrderORM:
        deleted = await self.reply_service.remove_performer_reply(order.id, performer_id)
        # re-read so the order reflects the delete, not the state loaded before it
        order = await self._get_order(order.id, fresh=True)
        order.reply_bind = max((order.reply_bind or 0) - deleted, 0)
        order.performer_id = None
        order.status = OrderStatus.ACTIVE
        order.start_time = None
        return order

    async def refuse_performer_by_customer(self, caller: Caller, order_id: int) -> Order:
        order, customer = await self._owned_order(caller, order_id)
        if order.performer_id is None:
            raise InvalidStateError("Order has no assigned performer")
        if order.status == OrderStatus.DONE:
            raise InvalidStateError("Completed order cannot be refused")
        performer = await self._get_performer(order.performer_id)

        order = await self._unassign(order, performer.id)
        await self.session.commit()
        logger.info("Customer %s refused performer %s on order %s", customer.id, performer.id, order.id)

        result = order.to_entity()
        await self.dispatcher.performer_refused(customer.to_entity(), performer.to_entity(), result)
        return result

    async def refuse_order_by_performer(self, caller: Caller, order_id: int) -> Order:
        order = await self._get_order(order_id, fresh=True)
        if caller.is_admin:
            if order.performer_id is None:
                raise InvalidStateError("Order has no assigned performer")
            performer = await self._get_performer(order.performer_id)
        else:
            performer = await self.guard.require_performer(caller)
            if order.performer_id != performer.id:
                raise AccessDeniedError(f"order {order_id} is not assigned to performer {performer.id}")
        if order.status == OrderStatus.DONE:
            raise InvalidStateError("Completed order cannot be refused")
        customer = await self.user_repo.get_customer(order.customer_id)

        order = await self._unassign(order, performer.id)
        await self.session.commit()
        logger.info("Performer %s refused order %s", performer.id, order.id)

        result = order.to_entity()
        if customer:
            await self.dispatcher.order_refused(customer.to_entity(), performer.to_entity(), result)
        return result

    async def mark_task_done_by_performer(self, caller: Caller, reply_id: int) -> Order:
        reply = await self.reply_repo.get_by_id(reply_id)
        if not reply:
            raise NotFoundError("Reply", reply_id)
        await self.guard.assert_ownership(reply, caller)

        order = await self._get_order(reply.order_id, fresh=True)
        if order.performer_id != reply.performer_id:
            raise InvalidStateError("Performer is not assigned to this order")
        if order.status not in (OrderStatus.IN_PROCESS, OrderStatus.ON_CHECK):
            raise InvalidStateError(f"Cannot finish work on order in status {order.status.value}")

        reply.is_done_this_task = True
        order.status = OrderStatus.ON_CHECK
        await self.session.commit()
        logger.info("Performer %s finished work on order %s", reply.performer_id, order.id)

        result = order.to_entity()
        customer = await self.user_repo.get_customer(order.customer_id)
        performer = await self.user_repo.get_performer(reply.performer_id)
        if customer and performer:
            await self.dispatcher.work_completed(customer.to_entity(), performer.to_entity(), result)
        return result

    async def confirm_order_done(self, caller: Caller, order_id: int, done: Optional[bool] = None,
                                 on_check: Optional[bool] = None) -> Order:
        order, customer = await self._owned_order(caller, order_id)
        if order.status == OrderStatus.DONE:
            if done is True:
                return order.to_entity()
            raise InvalidStateError("Completed order cannot be reopened")

        confirmed = False
        if done is not None:
            if done:
                if order.performer_id is None:
                    raise InvalidStateError("Order has no assigned performer")
                order.status = OrderStatus.DONE
                order.end_time = utcnow()
                reply = await self.reply_repo.get_by_order_and_performer(order.id, order.performer_id)
                if reply:
                    reply.donned = True
                    reply.is_done_this_task = False
                confirmed = True
            else:
                order.status = OrderStatus.IN_PROCESS if order.performer_id is not None else OrderStatus.ACTIVE

        if on_check is not None and not confirmed:
            if on_check:
                if order.performer_id is None:
                    raise InvalidStateError("Order has no assigned performer")
                order.status = OrderStatus.ON_CHECK
            elif order.performer_id is not None:
                order.status = OrderStatus.IN_PROCESS

        await self.session.commit()
        result = order.to_entity()
        logger.info("Order %s status set to %s", order.id, result.status.value)

        if confirmed:
            performer = await self.user_repo.get_performer(order.performer_id)
            if performer:
                await self.dispatcher.order_confirmed(customer.to_entity(), performer.to_entity(), result)
        return result

    async def request_correction(self, caller: Caller, order_id: int, performer_id: int,
                                 text: Optional[str] = None, attachment_path: Optional[str] = None) -> Order:
        order, customer = await self._owned_order(caller, order_id)
        if order.performer_id is None or order.performer_id != performer_id:
            raise InvalidStateError("Performer is not assigned to this order")
        if order.status == OrderStatus.DONE:
            raise InvalidStateError("Completed order cannot be sent back for corrections")
        performer = await self._get_performer(performer_id)

        reply = await self.reply_repo.get_by_order_and_performer(order.id, performer_id)
        if reply:
            reply.is_done_this_task = False
        order.status = OrderStatus.IN_PROCESS
        await self.session.commit()
        logger.info("Customer %s requested corrections on order %s", customer.id, order.id)

        result = order.to_entity()
        await self.dispatcher.correction_requested(customer.to_entity(), performer.to_entity(), result,
                                                   text=text, attachment_path=attachment_path)
        return result

    # --- queries ---

    @staticmethod
    def _matches(order: OrderORM, search: Optional[str]) -> bool:
        if not search:
            return True
        needle = search.lower()
        return any(needle in (value or "").lower() for value in (order.title, order.description, order.scope))

    async def get_order_with_replies(self, caller: Caller, order_id: int) -> OrderWithReplies:
        order, _ = await self._owned_order(caller, order_id)
        if order.is_deleted_by_customer and not caller.is_admin:
            raise NotFoundError("Order", order_id)
        replies = await self.reply_repo.get_by_order(order.id)
        result = OrderWithReplies.model_validate(order)
        result.replies = [r.to_entity() for r in replies]
        return result

    async def list_customer_orders(self, caller: Caller, search: Optional[str] = None,
                                   status: Optional[OrderStatus] = None) -> list[Order]:
        customer = await self.guard.require_customer(caller)
        orders = await self.order_repo.get_customer_orders(customer.id)
        return [o.to_entity() for o in orders
                if self._matches(o, search) and (status is None or o.status == status)]

    async def list_available_orders(self, caller: Optional[Caller] = None, search: Optional[str] = None,
                                    page: int = 1, page_size: int = 20) -> list[Order]:
        orders = await self.order_repo.get_available(search)
        start = max(page - 1, 0) * page_size
        orders = orders[start:start + page_size]

        performer = None
        if caller is not None and caller.role == UserRole.PERFORMER:
            performer = await self.user_repo.get_performer_by_account(caller.account_id)

        result = []
        for order in orders:
            entity = order.to_entity()
            if performer is not None:
                entity.has_replied = await self.reply_repo.exists(order.id, performer.id)
            result.append(entity)
        return result

    async def list_performer_orders(self, caller: Caller, search: Optional[str] = None,
                                    include_done=False) -> list[Order]:
        performer = await self.guard.require_performer(caller)
        orders = await self.order_repo.get_performer_orders(performer.id)
        return [o.to_entity() for o in orders
                if self._matches(o, search) and (include_done or o.status != OrderStatus.DONE)]

    async def get_order_for_performer(self, caller: Caller, order_id: int) -> Order:
        order = await self._get_order(order_id)
        performer = await self.user_repo.get_performer_by_account(caller.account_id)
        assigned = performer is not None and order.performer_id == performer.id

        # a customer-deleted order stays visible to its performer once it is done
        if order.is_deleted_by_customer and not (assigned and order.status == OrderStatus.DONE):
            raise NotFoundError("Order", order_id)
        publicly_visible = order.status == OrderStatus.ACTIVE and order.is_listed
        if not publicly_visible and not assigned:
            raise NotFoundError("Order", order_id)

        result = order.to_entity()
        if performer is not None:
            result.has_replied = await self.reply_repo.exists(order.id, performer.id)
        return result
