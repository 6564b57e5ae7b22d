import os

# the application engine is built on import; keep it off MySQL in tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.entity.orderentity import OrderData
from domain.entity.userentity import Caller, UserRole
from infrastructure.repositiry import db_models
from infrastructure.repositiry.base_repository import Base
from infrastructure.services.email_service import EmailNotificationService, EmailSender
from infrastructure.services.notification_service import NotificationDispatcher


class RecordingEmailSender(EmailSender):
    def __init__(self):
        self.sent = []

    def send_plain(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body, "attachment": None})

    def send_with_attachment(self, to, subject, body, file_path):
        self.sent.append({"to": to, "subject": subject, "body": body, "attachment": file_path})


class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish(self, topic, message):
        self.published.append((topic, message))
        return 0


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool,
                                 connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def emails(email_sender):
    return EmailNotificationService(email_sender)


@pytest.fixture
def dispatcher(session, emails):
    return NotificationDispatcher(session, emails)


@pytest.fixture
def publisher():
    return RecordingPublisher()


async def _make_account(session, email, role):
    account = db_models.AccountORM(email=email, password_hash="x", role=role, email_verified=True)
    session.add(account)
    await session.flush()
    return account


@pytest.fixture
def make_customer(session):
    async def factory(name="Ivan", email=None):
        email = email or f"{name.lower()}@customer.test"
        account = await _make_account(session, email, UserRole.CUSTOMER)
        customer = db_models.CustomerORM(account_id=account.id, name=name, email=email)
        session.add(customer)
        await session.commit()
        return Caller(account_id=account.id, role=UserRole.CUSTOMER), customer
    return factory


@pytest.fixture
def make_performer(session):
    async def factory(name="Petr", email=None):
        email = email or f"{name.lower()}@performer.test"
        account = await _make_account(session, email, UserRole.PERFORMER)
        performer = db_models.PerformerORM(account_id=account.id, name=name, email=email)
        session.add(performer)
        await session.commit()
        return Caller(account_id=account.id, role=UserRole.PERFORMER), performer
    return factory


@pytest.fixture
async def admin(session):
    account = await _make_account(session, "admin@tasktrove.test", UserRole.ADMINISTRATOR)
    await session.commit()
    return Caller(account_id=account.id, role=UserRole.ADMINISTRATOR)


@pytest.fixture
def order_data():
    return OrderData(title="Landing page", description="One page site", scope="Web", tech_stack="Vue",
                     budget=15000)
