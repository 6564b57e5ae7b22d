from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from typing import Optional
from datetime import datetime


class UserRole(str, Enum):
    CUSTOMER = "Customer"
    PERFORMER = "Performer"
    ADMINISTRATOR = "Administrator"


class Caller(BaseModel):
    """Identity of whoever invokes an operation, as produced by the auth provider."""

    account_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR


class Account(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    email: str
    role: UserRole
    email_verified: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class Customer(BaseModel):   # заказчик
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    name: str
    email: Optional[str] = None


class Performer(BaseModel):   # исполнитель
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    name: str
    email: Optional[str] = None


class Portfolio(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_type: UserRole
    customer_id: Optional[int] = None
    performer_id: Optional[int] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    town_country: Optional[str] = None
    specializations: Optional[str] = None
    employment: Optional[str] = None
    experience: Optional[str] = None
    description: Optional[str] = None
    scope: Optional[str] = None
    updated_at: Optional[datetime] = None


class PortfolioUpdate(BaseModel):
    """Common part of a portfolio edit: the owner's name and contacts."""

    last_name: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=50)
    middle_name: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=20)

    def full_name(self) -> str:
        parts = [self.last_name, self.first_name, self.middle_name]
        return " ".join(p.strip() for p in parts if p and p.strip())


class PerformerPortfolioUpdate(PortfolioUpdate):
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$", max_length=255)
    town_country: Optional[str] = Field(default=None, max_length=255)
    specializations: Optional[str] = None
    employment: Optional[str] = None
    experience: Optional[str] = None


class CustomerPortfolioUpdate(PortfolioUpdate):
    phone: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=5000)
    scope: str = Field(min_length=1, max_length=255)


class ReviewerType(str, Enum):
    CUSTOMER = "CUSTOMER"
    PERFORMER = "PERFORMER"


class WorkExperience(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    rate: int = Field(ge=1, le=5)
    text: Optional[str] = None
    reviewer_type: ReviewerType
    order_id: Optional[int] = None
    customer_id: int
    performer_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None
