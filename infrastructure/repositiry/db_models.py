from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.dialects import mysql
from infrastructure.repositiry.base_repository import Base, utcnow
from domain.entity.orderentity import Order, OrderStatus, Reply
from domain.entity.messageentity import Chat, Message, SenderType
from domain.entity.notificationentity import Notification, NotificationType
from domain.entity.userentity import Account, Customer, Performer, Portfolio, ReviewerType, UserRole, WorkExperience

# microseconds on MySQL too: unread counts compare message times with check times
PreciseDateTime = DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")


class AccountORM(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(100), nullable=False)
    role = Column(SAEnum(UserRole), nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    last_login = Column(DateTime, default=None)

    def to_entity(self) -> Account:
        return Account.model_validate(self)


class CustomerORM(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)

    def to_entity(self) -> Customer:
        return Customer.model_validate(self)


class PerformerORM(Base):
    __tablename__ = "performers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)

    def to_entity(self) -> Performer:
        return Performer.model_validate(self)


class OrderORM(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    scope = Column(String(255), nullable=False)
    tech_stack = Column(String(255), nullable=True)
    budget = Column(Integer, nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), nullable=True, index=True)
    status = Column(SAEnum(OrderStatus), default=OrderStatus.ACTIVE, nullable=False, index=True)
    is_listed = Column(Boolean, default=True, nullable=False)
    is_deleted_by_customer = Column(Boolean, default=False, nullable=False)
    publication_time = Column(DateTime, default=utcnow, nullable=False)
    start_time = Column(DateTime, default=None)
    end_time = Column(DateTime, default=None)
    reply_bind = Column(Integer, default=0, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def to_entity(self) -> Order:
        return Order.model_validate(self)


class ReplyORM(Base):
    __tablename__ = "replies"
    __table_args__ = (
        UniqueConstraint("order_id", "performer_id", name="uq_replies_order_performer"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), nullable=False, index=True)
    is_approved_by_customer = Column(Boolean, default=False, nullable=False)
    is_done_this_task = Column(Boolean, default=False, nullable=False)
    is_on_customer = Column(Boolean, default=False, nullable=False)
    donned = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def to_entity(self) -> Reply:
        return Reply.model_validate(self)


class ChatORM(Base):
    __tablename__ = "chats"
    __table_args__ = (
        UniqueConstraint("room_name", "performer_id", name="uq_chats_room_performer"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), nullable=False, index=True)
    room_name = Column(String(300), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    last_message_time = Column(PreciseDateTime, default=None)
    check_by_customer = Column(Boolean, default=False, nullable=False)
    check_by_performer = Column(Boolean, default=False, nullable=False)
    last_checked_by_customer_time = Column(PreciseDateTime, default=None)
    last_checked_by_performer_time = Column(PreciseDateTime, default=None)
    deleted_by_customer = Column(Boolean, default=False, nullable=False)
    deleted_by_performer = Column(Boolean, default=False, nullable=False)

    def to_entity(self) -> Chat:
        return Chat.model_validate(self)


class MessageORM(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    sender_type = Column(SAEnum(SenderType), nullable=False)
    text = Column(Text, nullable=False)
    created = Column(PreciseDateTime, default=utcnow, nullable=False, index=True)

    def to_entity(self) -> Message:
        return Message.model_validate(self)


class NotificationORM(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    user_role = Column(String(20), nullable=False)
    type = Column(SAEnum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    related_order_id = Column(Integer, nullable=True)
    related_performer_id = Column(Integer, nullable=True)
    related_customer_id = Column(Integer, nullable=True)

    def to_entity(self) -> Notification:
        return Notification.model_validate(self)


class WorkExperienceORM(Base):
    __tablename__ = "work_experiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    rate = Column(Integer, nullable=False)
    text = Column(Text, nullable=True)
    reviewer_type = Column(SAEnum(ReviewerType), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=None, onupdate=utcnow)

    def to_entity(self) -> WorkExperience:
        return WorkExperience.model_validate(self)


class PortfolioORM(Base):
    __tablename__ = "portfolios"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_type = Column(SAEnum(UserRole), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), unique=True, nullable=True)
    performer_id = Column(Integer, ForeignKey("performers.id"), unique=True, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    town_country = Column(String(255), nullable=True)
    specializations = Column(Text, nullable=True)
    employment = Column(Text, nullable=True)
    experience = Column(Text, nullable=True)
    description = Column(Text, nullable=True)    # для заказчиков
    scope = Column(String(255), nullable=True)   # для заказчиков
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_entity(self) -> Portfolio:
        return Portfolio.model_validate(self)
