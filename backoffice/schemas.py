from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, description="First name")
    surname: str = Field(..., min_length=1, description="Last name")
    username: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1)
    email: str = ""


class CustomerCreate(CustomerBase):
    id: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    surname: Optional[str] = None
    username: Optional[str] = None
    shipping_address: Optional[str] = None
    email: Optional[str] = None
    version: Optional[int] = None


class CustomerOut(CustomerBase):
    id: str
    version: Optional[int] = None

    model_config = {"from_attributes": True}


class ProductOut(BaseModel):
    id: str
    name: str
    description: str = ""
    unit_price: Decimal
    stock_available: int
    image_ref: str = ""
    version: Optional[int] = None

    model_config = {"from_attributes": True}


class ProductInfoOut(BaseModel):
    id: str
    name: str
    price: str
    stock: int
    image_url: str = ""


class OrderOut(BaseModel):
    id: str
    customer_id: str
    customer_display_name: str
    product_id: str
    product_display_name: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal
    status: str
    order_date: datetime
    version: Optional[int] = None

    model_config = {"from_attributes": True}


class OrderResultOut(BaseModel):
    order: Optional[OrderOut] = None
    warnings: List[str] = []


class OrderListResponse(BaseModel):
    orders: List[OrderOut]
    total: int


class ReferenceListsOut(BaseModel):
    customers: List[CustomerOut]
    products: List[ProductOut]


class DashboardOut(BaseModel):
    product_count: int
    customer_count: int
    order_count: int
    featured_products: List[ProductOut]
