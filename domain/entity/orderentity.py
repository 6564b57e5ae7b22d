from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class OrderStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    IN_PROCESS = 'IN_PROCESS'
    ON_CHECK = 'ON_CHECK'
    ON_REVIEW = 'ON_REVIEW'  # ждет модерации
    DONE = 'DONE'
    REJECTED = 'REJECTED'


# statuses in which an order may carry an assigned performer
ASSIGNED_STATUSES = frozenset({OrderStatus.IN_PROCESS, OrderStatus.ON_CHECK, OrderStatus.DONE})


class OrderData(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    scope: str = Field(..., min_length=1, max_length=255)
    tech_stack: Optional[str] = Field(default=None, max_length=255)
    budget: Optional[int] = Field(default=None, ge=0)


class Order(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    scope: str
    tech_stack: Optional[str] = None
    budget: Optional[int] = None
    customer_id: int
    performer_id: Optional[int] = None
    status: OrderStatus = OrderStatus.ACTIVE
    is_listed: bool = True
    is_deleted_by_customer: bool = False
    publication_time: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    reply_bind: int = 0   # отклики
    has_replied: Optional[bool] = None

    @model_validator(mode='after')
    def check_assignment(self):
        if self.performer_id is not None and self.status not in ASSIGNED_STATUSES:
            raise ValueError(
                f"Order {self.id} has performer {self.performer_id} in status {self.status.value}"
            )
        return self


class Reply(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    performer_id: int
    is_approved_by_customer: bool = False
    is_done_this_task: bool = False
    is_on_customer: bool = False
    donned: bool = False
    created_at: Optional[datetime] = None


class OrderWithReplies(Order):
    replies: list[Reply] = Field(default_factory=list)
