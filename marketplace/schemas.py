"""
Request schemas for the marketplace API.

Bodies arrive in camelCase; every model also accepts the snake_case field names.
"""
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MAX_PRICE_DIGITS = 12
MAX_STOCK = 1_000_000_000
MAX_QUANTITY = 10_000


class Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )


class RegisterRequest(Schema):
    username: str = Field(min_length=3, max_length=80)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    role: Literal["user", "seller"] = "user"

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(Schema):
    email: Optional[str] = None
    username: Optional[str] = None
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def has_login(self):
        if not (self.email or self.username):
            raise ValueError("email or username is required")
        return self

    @property
    def login(self) -> str:
        return self.email.lower() if self.email else self.username


class ProfileUpdate(Schema):
    full_name: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = Field(default=None, max_length=255)


class StoreCreate(Schema):
    name: str = Field(min_length=1, max_length=160)
    description: Optional[str] = ""


class StoreUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=160)
    description: Optional[str] = None


class ProductFields(Schema):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = ""
    price: Decimal = Field(ge=0, max_digits=MAX_PRICE_DIGITS, decimal_places=2)
    category: Optional[str] = ""
    sku: Optional[str] = ""
    stock: int = Field(default=0, ge=0, le=MAX_STOCK)
    image: Optional[str] = ""


class ProductUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=MAX_PRICE_DIGITS, decimal_places=2)
    category: Optional[str] = None
    sku: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0, le=MAX_STOCK)
    # compare-and-set guard for `stock`; defaults to the value read by the handler
    expected_stock: Optional[int] = Field(default=None, ge=0, le=MAX_STOCK)
    image: Optional[str] = None


class CsvProductRow(ProductFields):
    """One data row of a bulk import; blank cells fall back to defaults."""

    @field_validator("stock", mode="before")
    @classmethod
    def blank_stock(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        return value


class StockAdjustment(Schema):
    delta: int = Field(ge=-MAX_STOCK, le=MAX_STOCK)

    @field_validator("delta")
    @classmethod
    def non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("delta must not be zero")
        return value


class OrderLine(Schema):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1, le=MAX_QUANTITY)
    # accepted for compatibility, never trusted
    price: Optional[str] = None
    name: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def price_as_text(cls, value):
        return None if value is None else str(value)


class OrderRequest(Schema):
    items: List[OrderLine] = Field(min_length=1)
    total: Optional[Decimal] = None
