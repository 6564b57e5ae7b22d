from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum

from domain.entity.orderentity import OrderStatus


class SenderType(str, Enum):
    CUSTOMER = 'Customer'
    PERFORMER = 'Performer'
    ADMINISTRATOR = 'Administrator'


class Message(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    sender_id: int
    sender_type: SenderType
    text: str
    created: datetime


class Chat(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    performer_id: int
    room_name: str
    created_at: Optional[datetime] = None
    last_message_time: Optional[datetime] = None
    check_by_customer: bool = False
    check_by_performer: bool = False
    last_checked_by_customer_time: Optional[datetime] = None
    last_checked_by_performer_time: Optional[datetime] = None
    deleted_by_customer: bool = False
    deleted_by_performer: bool = False


class ChatSummary(Chat):
    """Chat as shown in a participant's chat list."""

    unread_count: int = 0
    order_id: Optional[int] = None
    order_status: Optional[OrderStatus] = None
    order_performer_id: Optional[int] = None
