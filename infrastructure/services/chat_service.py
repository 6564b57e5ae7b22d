import logging
import re
from typing import Optional

from domain.entity.messageentity import Chat, ChatSummary, Message
from domain.entity.orderentity import OrderStatus
from domain.entity.userentity import Caller, UserRole
from domain.exceptions import InvalidStateError, NotFoundError
from infrastructure.repositiry.base_repository import utcnow
from infrastructure.repositiry.chat_repository import ChatRepository
from infrastructure.repositiry.db_models import ChatORM, OrderORM
from infrastructure.repositiry.message_repository import MessageRepository
from infrastructure.repositiry.order_repository import OrderRepository
from infrastructure.services.access_guard import AccessGuard

logger = logging.getLogger(__name__)

ROOM_NAME_RE = re.compile(r"^Order #(\d+):")


def room_name_for(order: OrderORM) -> str:
    return f"Order #{order.id}: {order.title or 'Chat'}"


def parse_order_id(room_name: Optional[str]) -> int:
    match = ROOM_NAME_RE.match(room_name or "")
    if not match:
        raise InvalidStateError(f"Chat room name does not reference an order: {room_name!r}")
    return int(match.group(1))


class ChatService:
    def __init__(self, session):
        self.session = session
        self.chat_repo = ChatRepository(session)
        self.message_repo = MessageRepository(session)
        self.order_repo = OrderRepository(session)
        self.guard = AccessGuard(session)

    async def get_chat(self, caller: Caller, chat_id: int) -> ChatORM:
        chat = await self.chat_repo.get_by_id(chat_id)
        if not chat:
            raise NotFoundError("Chat", chat_id)
        await self.guard.assert_ownership(chat, caller)
        return chat

    async def ensure_chat_exists(self, customer_id: int, performer_id: int, order: OrderORM) -> ChatORM:
        """
        One chat per order and performer, found by the exact room name. A performer
        assigned again gets the old chat back; a new performer gets a chat of their own.
        Does not commit.
        """
        room_name = room_name_for(order)
        chat = await self.chat_repo.get_by_room_and_performer(room_name, performer_id)
        if chat is None:
            chat = await self.chat_repo.create(customer_id, performer_id, room_name)
            logger.info("Created chat %s for order %s between customer %s and performer %s",
                        chat.id, order.id, customer_id, performer_id)
            return chat
        if chat.deleted_by_customer or chat.deleted_by_performer:
            chat.deleted_by_customer = False
            chat.deleted_by_performer = False
            logger.info("Restored chat %s for order %s", chat.id, order.id)
            await self.session.flush()
        return chat

    def _mark_checked(self, chat: ChatORM, role: UserRole):
        now = utcnow()
        if role == UserRole.CUSTOMER:
            chat.check_by_customer = True
            chat.last_checked_by_customer_time = now
        elif role == UserRole.PERFORMER:
            chat.check_by_performer = True
            chat.last_checked_by_performer_time = now

    async def get_messages(self, caller: Caller, chat_id: int) -> list[Message]:
        """Reading the history counts as reading the chat."""
        chat = await self.get_chat(caller, chat_id)
        self._mark_checked(chat, caller.role)
        await self.session.commit()
        messages = await self.message_repo.get_by_chat(chat_id)
        return [m.to_entity() for m in messages]

    async def mark_chat_read(self, caller: Caller, chat_id: int) -> Chat:
        chat = await self.get_chat(caller, chat_id)
        self._mark_checked(chat, caller.role)
        await self.session.commit()
        return chat.to_entity()

    async def count_unread(self, chat_id: int, caller_account_id: int, last_checked_time=None) -> int:
        return await self.message_repo.count_unread(chat_id, caller_account_id, last_checked_time)

    async def count_unread_for(self, caller: Caller, chat: ChatORM) -> int:
        if caller.role == UserRole.CUSTOMER:
            since = chat.last_checked_by_customer_time
        elif caller.role == UserRole.PERFORMER:
            since = chat.last_checked_by_performer_time
        else:
            return 0
        return await self.count_unread(chat.id, caller.account_id, since)

    async def list_chats(self, caller: Caller) -> list[ChatSummary]:
        if caller.role == UserRole.CUSTOMER:
            customer = await self.guard.require_customer(caller)
            chats = await self.chat_repo.get_customer_chats(customer.id)
        else:
            performer = await self.guard.require_performer(caller)
            chats = await self.chat_repo.get_performer_chats(performer.id)

        summaries = []
        for chat in chats:
            summary = ChatSummary.model_validate(chat)
            summary.unread_count = await self.count_unread_for(caller, chat)
            match = ROOM_NAME_RE.match(chat.room_name or "")
            if match:
                order = await self.order_repo.get_by_id(int(match.group(1)))
                if order:
                    summary.order_id = order.id
                    summary.order_status = order.status
                    summary.order_performer_id = order.performer_id
            summaries.append(summary)
        return summaries

    async def soft_delete_chat(self, caller: Caller, chat_id: int) -> Chat:
        chat = await self.get_chat(caller, chat_id)
        if caller.role not in (UserRole.CUSTOMER, UserRole.PERFORMER):
            raise InvalidStateError("Only chat participants can delete a chat")

        order_id = parse_order_id(chat.room_name)
        order = await self.order_repo.get_by_id(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        if order.status != OrderStatus.DONE and order.performer_id == chat.performer_id:
            raise InvalidStateError("Chat cannot be deleted while the order is in progress")

        if caller.role == UserRole.CUSTOMER:
            chat.deleted_by_customer = True
        else:
            chat.deleted_by_performer = True
        await self.session.commit()
        logger.info("Chat %s hidden by %s account %s", chat_id, caller.role.value, caller.account_id)
        return chat.to_entity()
