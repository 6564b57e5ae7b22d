from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    REPLY = 'REPLY'
    ASSIGNED = 'ASSIGNED'
    COMPLETED = 'COMPLETED'
    CORRECTION = 'CORRECTION'
    REFUSED = 'REFUSED'
    REVIEW = 'REVIEW'
    ORDER_REVIEW = 'ORDER_REVIEW'
    ORDER_APPROVED = 'ORDER_APPROVED'
    ORDER_REJECTED = 'ORDER_REJECTED'


class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    user_role: str
    type: NotificationType
    title: str
    message: str
    is_read: bool = False
    created_at: datetime
    related_order_id: Optional[int] = None
    related_performer_id: Optional[int] = None
    related_customer_id: Optional[int] = None
