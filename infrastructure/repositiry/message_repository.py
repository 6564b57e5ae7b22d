from infrastructure.repositiry.base_repository import BaseRepository, utcnow
from infrastructure.repositiry.db_models import MessageORM
from sqlalchemy import select, func


class MessageRepository(BaseRepository):

    async def get_by_chat(self, chat_id):
        result = await self.session.execute(
            select(MessageORM).where(MessageORM.chat_id == chat_id).order_by(MessageORM.created, MessageORM.id)
        )
        return result.scalars().all()

    async def create_message(self, chat_id, sender_id, sender_type, text):
        message = MessageORM(chat_id=chat_id, sender_id=sender_id, sender_type=sender_type, text=text,
                             created=utcnow())
        return await self.add(message)

    async def count_unread(self, chat_id, reader_account_id, since=None):
        query = select(func.count(MessageORM.id)).where(
            MessageORM.chat_id == chat_id,
            MessageORM.sender_id != reader_account_id,
        )
        if since is not None:
            query = query.where(MessageORM.created > since)
        result = await self.session.execute(query)
        return result.scalar_one()
