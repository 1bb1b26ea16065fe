"""
Database Schemas for the store

Collections:
- user: admins and customers
- category: product categories
- product: catalog items with stock counts
- order: customer orders with price-snapshotted line items

Request bodies accept camelCase keys (as sent by the storefront) as well as
the snake_case field names used in the stored documents.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "admin"]

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
TERMINAL_STATUSES = ("shipped", "delivered")


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(Document):
    email: str = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="Hashed password")
    role: Role = Field("user", description="role: admin or user")
    user_name: str
    phone_number: str
    city: str
    postal_code: str
    address_line1: str
    address_line2: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Category(Document):
    name: str = Field(..., min_length=3)


class Product(Document):
    title: str = Field(..., description="Product title")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Price")
    category: ObjectId = Field(..., description="Category id")
    count_in_stock: int = Field(0, ge=0)
    images: List[str] = Field(default_factory=list, description="Image URLs")
    views: int = Field(0, ge=0)
    rating: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItem(Document):
    product: ObjectId
    quantity: int = Field(ge=1)
    price: float = Field(ge=0, description="Unit price captured at order time")


class Order(Document):
    user: ObjectId
    order_items: List[OrderItem]
    total_price: float
    status: str = Field("pending", description="pending, processing, shipped, delivered, cancelled")
    date: Optional[datetime] = None


# ---------- Request bodies ----------
# Loosely typed on purpose: the validation module reports field errors with
# localized messages instead of the framework's 422 response.


class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(RequestBody):
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    user_name: Optional[str] = None
    phone_number: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None


class LoginRequest(RequestBody):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdateRequest(RequestBody):
    email: Optional[str] = None
    password: Optional[str] = None
    user_name: Optional[str] = None
    phone_number: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None


class CategoryRequest(RequestBody):
    name: Optional[str] = None


class ProductUpdateRequest(RequestBody):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Any = None
    category: Optional[str] = None
    count_in_stock: Any = None


class CreateOrderRequest(RequestBody):
    order_items: Optional[List[Any]] = None


class ChangeStatusRequest(RequestBody):
    status: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str
