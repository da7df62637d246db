"""
Pizzeria — User, address and notification schemas
"""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from pizzeria.models.user import UserRole


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str | None = None
    phone: str | None = None
    role: UserRole
    is_phone_order: bool = False
    created_at: datetime | None = None


class RoleUpdateRequest(BaseModel):
    role: UserRole


class PhoneCustomerCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=3, max_length=32)
    email: EmailStr | None = None


class AddressCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    is_default: bool = False


class AddressUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=100)
    street: str | None = Field(None, min_length=1, max_length=255)
    city: str | None = Field(None, min_length=1, max_length=100)
    postal_code: str | None = Field(None, min_length=1, max_length=20)
    is_default: bool | None = None


class AddressList(BaseModel):
    addresses: list["AddressOut"]
    selected_address_id: str | None = None


class AddressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    street: str
    city: str
    postal_code: str
    is_default: bool
    created_at: datetime | None = None


AddressList.model_rebuild()


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    order_id: str | None = None
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime | None = None


class NotificationFeed(BaseModel):
    notifications: list[NotificationRead]
    unread_count: int


class DashboardStats(BaseModel):
    total_orders: int
    total_revenue: Decimal
    total_customers: int
    orders_today: int
