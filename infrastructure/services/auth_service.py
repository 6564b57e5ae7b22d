import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from domain.entity.userentity import Account, Caller, UserRole
from domain.exceptions import AccessDeniedError, ValidationFailedError
from infrastructure import config
from infrastructure.repositiry.base_repository import utcnow
from infrastructure.repositiry.db_models import AccountORM, CustomerORM, PerformerORM
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.email_service import EmailNotificationService
from infrastructure.services.verification_service import CodeStore, code_store, generate_code

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SELF_REGISTERED_ROLES = (UserRole.CUSTOMER, UserRole.PERFORMER)


class InvalidTokenError(Exception):
    pass


def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=config.ACCESS_TOKEN_DAYS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_token(token: str) -> Caller:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        return Caller(account_id=int(payload["sub"]), role=UserRole(payload["role"]))
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        raise InvalidTokenError(str(e)) from e


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class AuthService:
    def __init__(self, session, store: CodeStore = None, emails: EmailNotificationService = None):
        self.session = session
        self.user_repo = UserRepository(session)
        self.store = store or code_store
        self.emails = emails or EmailNotificationService()

    async def register(self, email: str, password: str, name: str, role: UserRole) -> Account:
        if role not in SELF_REGISTERED_ROLES:
            raise ValidationFailedError("Invalid registration data",
                                        errors={"role": "must be Customer or Performer"})
        if await self.user_repo.email_exists(email):
            raise ValidationFailedError("Пользователь с таким email уже существует",
                                        errors={"email": "already registered"})

        account = AccountORM(email=email, password_hash=hash_password(password), role=role,
                             email_verified=False, created_at=utcnow())
        await self.user_repo.add(account)
        if role == UserRole.CUSTOMER:
            profile = CustomerORM(account_id=account.id, name=name, email=email)
        else:
            profile = PerformerORM(account_id=account.id, name=name, email=email)
        await self.user_repo.add(profile)
        await self.session.commit()
        logger.info("Registered %s account_id=%s", role.value, account.id)
        return account.to_entity()

    async def login(self, email: str, password: str) -> str:
        account = await self.user_repo.get_account_by_email(email)
        if not account or not verify_password(password, account.password_hash):
            raise ValidationFailedError("Неверный email или пароль")
        if not account.is_active:
            raise AccessDeniedError(f"account {account.id} is deactivated")
        account.last_login = utcnow()
        await self.session.commit()
        logger.info("Account %s logged in", account.id)
        return create_access_token({"sub": str(account.id), "role": account.role.value})

    async def request_password_reset(self, email: str) -> bool:
        account = await self.user_repo.get_account_by_email(email)
        if not account:
            # не раскрываем, есть ли такой email
            logger.info("Password reset requested for unknown email")
            return True
        code = generate_code()
        self.store.put(("reset", email), code)
        await self.emails.send_code(email, "Восстановление пароля", code)
        return True

    async def reset_password(self, email: str, code: str, new_password: str) -> bool:
        key = ("reset", email)
        stored_code = self.store.get_if_not_expired(key)
        if stored_code is None or not secrets.compare_digest(stored_code.encode(), code.encode()):
            raise ValidationFailedError("Неверный или просроченный код")
        account = await self.user_repo.get_account_by_email(email)
        if not account:
            raise ValidationFailedError("Неверный или просроченный код")
        account.password_hash = hash_password(new_password)
        self.store.remove(key)
        await self.session.commit()
        logger.info("Password reset for account_id=%s", account.id)
        return True
