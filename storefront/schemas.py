from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


class _Priced(BaseModel):
    # NUMERIC columns come back as Decimal; clients get a JSON number
    @field_validator("price", mode="before", check_fields=False)
    @classmethod
    def price_as_number(cls, v):
        if isinstance(v, Decimal):
            return float(v)
        return v


# -------------------- users --------------------

class UserCreate(BaseModel):
    # presence is checked by Accounts.register so the error text stays fixed
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password: Optional[str] = None


class UserLogin(BaseModel):
    first_name: Optional[str] = None
    password: Optional[str] = None


class UserRead(BaseModel):
    id: int
    first_name: str
    last_name: str

    model_config = ConfigDict(from_attributes=True)


class AuthResult(BaseModel):
    user: UserRead
    token: str


class RecentPurchase(_Priced):
    product_id: int
    name: str
    price: float
    quantity: int
    order_id: int
    status: str
    order_date: datetime


class UserDetail(BaseModel):
    user: UserRead
    recent_purchases: list[RecentPurchase] = []


# -------------------- products --------------------

class ProductCreate(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    category: Optional[str] = None


class ProductRead(_Priced):
    id: int
    name: str
    price: float
    category: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TopSeller(ProductRead):
    total_quantity: int = 0


# -------------------- orders --------------------

class OrderCreate(BaseModel):
    status: Optional[str] = Field(default=None, description="'active' (default) or 'complete'")


class OrderRead(BaseModel):
    id: int
    user_id: int
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LineItemCreate(BaseModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None


class LineItemRead(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class OrderLine(_Priced):
    product_id: int
    name: str
    price: float
    quantity: int


class OrderDetail(OrderRead):
    products: list[OrderLine] = []
