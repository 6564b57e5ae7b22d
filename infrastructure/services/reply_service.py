import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from domain.entity.orderentity import OrderStatus, Reply
from domain.entity.userentity import Caller
from domain.exceptions import AlreadyRepliedError, InvalidStateError, NotFoundError
from infrastructure.repositiry.db_models import ReplyORM
from infrastructure.repositiry.order_repository import OrderRepository
from infrastructure.repositiry.reply_repository import ReplyRepository
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.access_guard import AccessGuard
from infrastructure.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


class ReplyService:
    def __init__(self, session, dispatcher: Optional[NotificationDispatcher] = None):
        self.session = session
        self.reply_repo = ReplyRepository(session)
        self.order_repo = OrderRepository(session)
        self.user_repo = UserRepository(session)
        self.guard = AccessGuard(session)
        self.dispatcher = dispatcher or NotificationDispatcher(session)

    async def create_reply(self, caller: Caller, order_id: int) -> Reply:
        performer = await self.guard.require_performer(caller)
        if await self.reply_repo.exists(order_id, performer.id):
            raise AlreadyRepliedError(order_id, performer.id)

        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        if order.status != OrderStatus.ACTIVE or not order.is_listed or order.is_deleted_by_customer:
            raise InvalidStateError("Order is not accepting replies")

        # rollback expires every loaded row, so keep plain ids for the error
        performer_id = performer.id
        reply = ReplyORM(order_id=order.id, performer_id=performer_id, is_approved_by_customer=False,
                         is_done_this_task=False, is_on_customer=False, donned=False)
        try:
            await self.reply_repo.add(reply)
        except IntegrityError:
            # a concurrent request won the race for the same pair
            await self.session.rollback()
            raise AlreadyRepliedError(order_id, performer_id)
        await self.order_repo.increment_replies(order)
        await self.session.commit()
        logger.info("Performer %s replied to order %s (reply %s)", performer.id, order.id, reply.id)

        result = reply.to_entity()
        customer = await self.user_repo.get_customer(order.customer_id)
        if customer:
            await self.dispatcher.reply_created(customer.to_entity(), performer.to_entity(), order.to_entity())
        return result

    async def _owned_reply(self, caller: Caller, reply_id: int) -> ReplyORM:
        reply = await self.reply_repo.get_by_id(reply_id)
        if not reply:
            raise NotFoundError("Reply", reply_id)
        await self.guard.assert_ownership(reply, caller)
        return reply

    async def _remove(self, reply: ReplyORM):
        order = await self.order_repo.get_by_id(reply.order_id)
        await self.reply_repo.delete(reply)
        if order:
            await self.order_repo.decrement_replies(order)
        await self.session.commit()

    async def delete_reply(self, caller: Caller, reply_id: int):
        """Withdraw a reply."""
        reply = await self._owned_reply(caller, reply_id)
        await self._remove(reply)
        logger.info("Reply %s withdrawn by performer %s", reply_id, reply.performer_id)

    async def delete_completed_reply(self, caller: Caller, reply_id: int):
        reply = await self._owned_reply(caller, reply_id)
        if not reply.donned:
            raise InvalidStateError("Can only delete completed replies")
        await self._remove(reply)
        logger.info("Completed reply %s deleted by performer %s", reply_id, reply.performer_id)

    async def remove_performer_reply(self, order_id: int, performer_id: int) -> int:
        """Bulk delete used by the lifecycle engine. Does not commit."""
        deleted = await self.reply_repo.delete_by_order_and_performer(order_id, performer_id)
        logger.info("Deleted %s reply(ies) of performer %s for order %s", deleted, performer_id, order_id)
        return deleted

    async def remove_competing_replies(self, order_id: int, performer_id: int) -> list[int]:
        """
        Bulk delete used by the lifecycle engine when a performer is chosen.
        Returns the performers whose replies went away. Does not commit.
        """
        removed = []
        # second pass catches replies committed while the first one ran
        for _ in range(2):
            rivals = await self.reply_repo.get_competing_performer_ids(order_id, performer_id)
            if not rivals:
                break
            for rival_id in rivals:
                await self.reply_repo.delete_by_order_and_performer(order_id, rival_id)
                if rival_id not in removed:
                    removed.append(rival_id)
        logger.info("Deleted replies of %s competing performer(s) for order %s", len(removed), order_id)
        return removed

    async def remove_all_for_order(self, order_id: int) -> int:
        """Bulk delete used by the lifecycle engine. Does not commit."""
        deleted = await self.reply_repo.delete_by_order(order_id)
        logger.info("Deleted %s reply(ies) for order %s", deleted, order_id)
        return deleted

    async def list_performer_replies(self, caller: Caller, tab: Optional[str] = None) -> list[Reply]:
        performer = await self.guard.require_performer(caller)
        replies = await self.reply_repo.get_by_performer(performer.id)
        tab = (tab or "").lower()

        result = []
        for reply in replies:
            if tab in ("done", "history"):
                # история видна даже если заказчик удалил заказ
                if reply.donned:
                    result.append(reply.to_entity())
                continue
            order = await self.order_repo.get_by_id(reply.order_id)
            if order is None or order.is_deleted_by_customer:
                continue
            if tab in ("approved", "pending") and not (reply.is_on_customer and not reply.is_done_this_task):
                continue
            result.append(reply.to_entity())
        return result
