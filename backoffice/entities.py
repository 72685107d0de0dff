from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .ledger import line_total


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_utc(value: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to already be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def new_key() -> str:
    return str(uuid.uuid4())


class Entity(BaseModel):
    """A record in the schema-less store.

    `id` is the row key inside the class's partition and `version` is the
    concurrency token handed out by the store (None until first persisted).
    Everything else is serialized into the record's properties.
    """

    partition: ClassVar[str]

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_key, min_length=1)
    version: Optional[int] = None

    def to_properties(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id", "version"})

    @classmethod
    def from_properties(cls, key: str, version: int, properties: Dict[str, Any]):
        return cls.model_validate({**properties, "id": key, "version": version})


class Customer(Entity):
    partition: ClassVar[str] = "Customer"

    name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1)
    email: str = ""

    @property
    def display_name(self) -> str:
        return self.username


class Product(Entity):
    partition: ClassVar[str] = "Product"

    name: str = Field(..., min_length=1)
    description: str = ""
    unit_price: Decimal = Field(..., ge=0)
    stock_available: int = Field(..., ge=0)
    image_ref: str = ""


class Order(Entity):
    partition: ClassVar[str] = "Order"

    customer_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    customer_display_name: str = ""
    product_display_name: str = ""
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    status: str = "Submitted"
    order_date: dt.datetime = Field(default_factory=utc_now)

    @field_validator("order_date")
    @classmethod
    def _normalize_order_date(cls, value: dt.datetime) -> dt.datetime:
        return to_utc(value)

    @computed_field
    @property
    def total_price(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)
