from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.common import ApiModel
from app.schemas.medicine import MedicineRead


class AdjustmentRequest(ApiModel):
    # StrictInt semantics: "5", 5.0 and true are rejected. Zero is rejected by
    # the adjuster itself so that direct callers get the same answer.
    change_amount: int = Field(strict=True)
    reason: Optional[str] = Field(default=None, max_length=500)
    changed_by: Optional[str] = Field(default=None, max_length=200)


class AdjustmentResponse(ApiModel):
    success: bool = True
    medicine: MedicineRead


class StockHistoryRead(ApiModel):
    id: int
    medicine_id: int
    change_amount: int
    reason: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ReconciliationRead(ApiModel):
    medicine_id: int
    initial_quantity: int
    history_total: int
    entry_count: int
    quantity_on_hand: int
    balanced: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
