from sqlalchemy import select
from infrastructure.repositiry.base_repository import BaseRepository
from infrastructure.repositiry.db_models import WorkExperienceORM
from domain.entity.userentity import ReviewerType


class ReviewRepository(BaseRepository):

    async def get_by_id(self, review_id):
        return await self.session.get(WorkExperienceORM, review_id)

    async def exists_for_order(self, order_id, reviewer_type):
        result = await self.session.execute(
            select(WorkExperienceORM.id).where(
                WorkExperienceORM.order_id == order_id,
                WorkExperienceORM.reviewer_type == reviewer_type,
            ).limit(1)
        )
        return result.first() is not None

    async def get_about_performer(self, performer_id):
        # отзывы заказчиков об исполнителе
        result = await self.session.execute(
            select(WorkExperienceORM)
            .where(WorkExperienceORM.performer_id == performer_id,
                   WorkExperienceORM.reviewer_type == ReviewerType.CUSTOMER)
            .order_by(WorkExperienceORM.created_at.desc())
        )
        return result.scalars().all()

    async def get_about_customer(self, customer_id):
        result = await self.session.execute(
            select(WorkExperienceORM)
            .where(WorkExperienceORM.customer_id == customer_id,
                   WorkExperienceORM.reviewer_type == ReviewerType.PERFORMER)
            .order_by(WorkExperienceORM.created_at.desc())
        )
        return result.scalars().all()
