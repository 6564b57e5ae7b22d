import logging

from domain.entity.messageentity import Message, SenderType
from domain.entity.userentity import Caller
from domain.exceptions import ValidationFailedError
from infrastructure.repositiry.message_repository import MessageRepository
from infrastructure.services.chat_service import ChatService
from infrastructure.services.realtime import RealtimePublisher, chat_topic, realtime_hub

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


class MessageService:
    def __init__(self, session, publisher: RealtimePublisher = None):
        self.session = session
        self.message_repo = MessageRepository(session)
        self.chat_service = ChatService(session)
        self.publisher = publisher or realtime_hub

    async def get_messages_by_chat(self, caller: Caller, chat_id: int) -> list[Message]:
        return await self.chat_service.get_messages(caller, chat_id)

    async def send_message(self, caller: Caller, chat_id: int, text: str) -> Message:
        text = (text or "").strip()
        if not text:
            raise ValidationFailedError("Message text is empty", {"text": "must not be blank"})
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationFailedError("Message is too long", {"text": f"at most {MAX_MESSAGE_LENGTH} characters"})

        chat = await self.chat_service.get_chat(caller, chat_id)
        message = await self.message_repo.create_message(chat.id, caller.account_id, SenderType(caller.role.value), text)
        chat.last_message_time = message.created
        await self.session.commit()
        result = message.to_entity()

        try:
            await self.publisher.publish(chat_topic(chat.id), result.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to publish message %s to %s", result.id, chat_topic(chat.id))
        return result
