import logging

from domain.entity.userentity import Caller, UserRole
from domain.exceptions import AccessDeniedError, NotFoundError
from infrastructure.repositiry.db_models import OrderORM, ReplyORM, ChatORM, CustomerORM, PerformerORM
from infrastructure.repositiry.user_repository import UserRepository

logger = logging.getLogger(__name__)


class AccessGuard:
    """
    Ownership checks shared by every lifecycle service.

    Entities point at customers and performers by entity id, while the caller
    is identified by account id, so the owning account is resolved through the
    customer or performer row before comparing.
    """

    def __init__(self, session):
        self.session = session
        self.user_repo = UserRepository(session)

    async def owner_account_id(self, entity, role: UserRole):
        if isinstance(entity, OrderORM):
            owner = await self.user_repo.get_customer(entity.customer_id)
        elif isinstance(entity, ReplyORM):
            owner = await self.user_repo.get_performer(entity.performer_id)
        elif isinstance(entity, ChatORM):
            if role == UserRole.CUSTOMER:
                owner = await self.user_repo.get_customer(entity.customer_id)
            elif role == UserRole.PERFORMER:
                owner = await self.user_repo.get_performer(entity.performer_id)
            else:
                return None
        elif isinstance(entity, (CustomerORM, PerformerORM)):
            return entity.account_id
        else:
            raise TypeError(f"No ownership rule for {type(entity).__name__}")
        return owner.account_id if owner else None

    async def assert_ownership(self, entity, caller: Caller):
        if entity is None:
            raise NotFoundError("Resource")
        if caller.is_admin:
            return
        owner_account_id = await self.owner_account_id(entity, caller.role)
        if owner_account_id is None or owner_account_id != caller.account_id:
            logger.warning("Access denied: account_id=%s, role=%s, %s id=%s",
                           caller.account_id, caller.role.value, type(entity).__name__, getattr(entity, "id", None))
            raise AccessDeniedError(f"{type(entity).__name__} {getattr(entity, 'id', None)}")

    async def require_customer(self, caller: Caller) -> CustomerORM:
        if caller.role != UserRole.CUSTOMER:
            raise AccessDeniedError("customer role required")
        customer = await self.user_repo.get_customer_by_account(caller.account_id)
        if not customer:
            raise NotFoundError("Customer", caller.account_id)
        return customer

    async def require_performer(self, caller: Caller) -> PerformerORM:
        if caller.role != UserRole.PERFORMER:
            raise AccessDeniedError("performer role required")
        performer = await self.user_repo.get_performer_by_account(caller.account_id)
        if not performer:
            raise NotFoundError("Performer", caller.account_id)
        return performer

    def require_admin(self, caller: Caller):
        if not caller.is_admin:
            logger.warning("Access denied: account_id=%s is not an administrator", caller.account_id)
            raise AccessDeniedError("administrator role required")
