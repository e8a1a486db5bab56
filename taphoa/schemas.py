"""
Pydantic v2 request schemas.

All request schemas use extra="forbid" to reject unknown fields. The
storefront client sends camelCase (fullName, shippingPhone, salePrice...);
snake_case field names are accepted too.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


#
# Auth
#

class RegisterRequest(RequestModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class LoginRequest(RequestModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(RequestModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ChangePasswordRequest(RequestModel):
    current_password: str
    new_password: str


#
# Cart / orders
#

class AddToCartRequest(RequestModel):
    product_id: str
    quantity: int = 1


class UpdateCartRequest(RequestModel):
    quantity: int


class PlaceOrderRequest(RequestModel):
    """Shipping fields are validated by orders.place_order."""
    shipping_name: Optional[str] = None
    shipping_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    note: Optional[str] = None


class OrderStatusRequest(RequestModel):
    status: Optional[str] = None


#
# Admin
#

class CategoryCreateRequest(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class CategoryUpdateRequest(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class ProductFields(RequestModel):
    description: Optional[str] = None
    sale_price: Optional[float] = Field(None, ge=0, description="Giá khuyến mãi; null = không giảm giá")
    image_url: Optional[str] = None
    category_id: Optional[str] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = None
    sku: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("sale_price", "category_id", "sku", "image_url", "stock_quantity", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        return _blank_to_none(value)


class ProductCreateRequest(ProductFields):
    name: str
    price: float = Field(..., ge=0)


class ProductUpdateRequest(ProductFields):
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)


class UserUpdateRequest(RequestModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class ResetPasswordRequest(RequestModel):
    new_password: str
