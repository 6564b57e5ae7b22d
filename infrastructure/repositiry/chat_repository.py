from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import ChatORM
from sqlalchemy import select


class ChatRepository(BaseRepository):

    async def get_by_id(self, chat_id):
        return await self.session.get(ChatORM, chat_id)

    async def get_by_room_and_performer(self, room_name, performer_id):
        result = await self.session.execute(
            select(ChatORM).where(ChatORM.room_name == room_name, ChatORM.performer_id == performer_id)
        )
        return result.scalar_one_or_none()

    async def get_customer_chats(self, customer_id, include_deleted=False):
        query = select(ChatORM).where(ChatORM.customer_id == customer_id)
        if not include_deleted:
            query = query.where(ChatORM.deleted_by_customer.is_(False))
        result = await self.session.execute(query.order_by(ChatORM.id))
        return result.scalars().all()

    async def get_performer_chats(self, performer_id, include_deleted=False):
        query = select(ChatORM).where(ChatORM.performer_id == performer_id)
        if not include_deleted:
            query = query.where(ChatORM.deleted_by_performer.is_(False))
        result = await self.session.execute(query.order_by(ChatORM.id))
        return result.scalars().all()

    async def create(self, customer_id, performer_id, room_name):
        chat = ChatORM(customer_id=customer_id, performer_id=performer_id, room_name=room_name)
        return await self.add(chat)
