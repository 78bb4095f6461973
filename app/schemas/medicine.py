from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.database.types import INT32_MAX
from app.schemas.common import ApiModel


class MedicineBase(ApiModel):
    sku: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=250)
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    expiry_date: Optional[date] = None


class MedicineCreate(MedicineBase):
    quantity_on_hand: int = Field(default=0, ge=0, le=INT32_MAX)


class MedicineUpdate(ApiModel):
    """Metadata only; SKU and quantity are not accepted here."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=250)
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    unit_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    expiry_date: Optional[date] = None

    @field_validator("name", "unit_price")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class MedicineRead(MedicineBase):
    id: int
    quantity_on_hand: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MedicineDeleted(ApiModel):
    deleted: bool = True
