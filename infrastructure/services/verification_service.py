import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from domain.exceptions import NotFoundError
from infrastructure import config
from infrastructure.repositiry.base_repository import utcnow
from infrastructure.repositiry.user_repository import UserRepository
from infrastructure.services.email_service import EmailNotificationService

logger = logging.getLogger(__name__)


def generate_code() -> str:
    return str(secrets.randbelow(1000000)).zfill(6)


class CodeStore:
    """
    One-time codes keyed by purpose and address, e.g. ("verify", "a@b.c").

    Entries expire after `ttl`; expired entries are invisible to readers and are
    dropped by `sweep_expired`, which the application runs periodically.
    """

    def __init__(self, ttl: timedelta = None, clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl or timedelta(minutes=config.CODE_TTL_MINUTES)
        self.clock = clock
        self._codes: dict = {}

    def put(self, key, code: str):
        self._codes[key] = (code, self.clock() + self.ttl)

    def get_if_not_expired(self, key) -> Optional[str]:
        entry = self._codes.get(key)
        if entry is None:
            return None
        code, expiration = entry
        if self.clock() > expiration:
            return None
        return code

    def remove(self, key):
        self._codes.pop(key, None)

    def sweep_expired(self) -> int:
        now = self.clock()
        expired = [key for key, (_, expiration) in self._codes.items() if now > expiration]
        for key in expired:
            del self._codes[key]
        return len(expired)

    def __len__(self):
        return len(self._codes)


code_store = CodeStore()


async def sweep_codes_periodically(store: CodeStore = code_store, interval: float = None):
    interval = interval or config.CODE_SWEEP_SECONDS
    while True:
        await asyncio.sleep(interval)
        removed = store.sweep_expired()
        if removed:
            logger.info("Removed %s expired verification code(s)", removed)


class VerificationService:
    def __init__(self, session, store: CodeStore = None, emails: EmailNotificationService = None):
        self.session = session
        self.user_repo = UserRepository(session)
        self.store = store or code_store
        self.emails = emails or EmailNotificationService()

    async def send_email_code(self, account_id: int) -> bool:
        account = await self.user_repo.get_account(account_id)
        if not account:
            raise NotFoundError("Account", account_id)
        code = generate_code()
        self.store.put(("verify", account.email), code)
        await self.emails.send_code(account.email, "Подтверждение email", code)
        logger.info("Verification code sent to account_id=%s", account_id)
        return True

    async def verify_email_code(self, account_id: int, code: str) -> bool:
        account = await self.user_repo.get_account(account_id)
        if not account:
            raise NotFoundError("Account", account_id)
        key = ("verify", account.email)
        stored_code = self.store.get_if_not_expired(key)
        if stored_code is None or not secrets.compare_digest(stored_code.encode(), code.encode()):
            logger.warning("Wrong or expired verification code for account_id=%s", account_id)
            return False
        self.store.remove(key)
        account.email_verified = True
        await self.session.commit()
        logger.info("Email verified for account_id=%s", account_id)
        return True
