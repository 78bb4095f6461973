from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    event,
    inspect,
)

from app.core.errors import QuantityOwnershipError
from app.database.base import Base
from app.database.types import UTCDateTime


class Medicine(Base):
    __tablename__ = "medicines"

    id = Column(Integer, primary_key=True)

    sku = Column(String(50), nullable=False)
    name = Column(String(250), nullable=False)
    manufacturer = Column(String(200))
    unit_price = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    quantity_on_hand = Column(Integer, nullable=False, default=0)
    initial_quantity = Column(Integer, nullable=False, default=0)

    expiry_date = Column(Date)

    created_at = Column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("sku", name="uq_medicines_sku"),
        CheckConstraint("quantity_on_hand >= 0", name="ck_medicines_quantity_non_negative"),
        CheckConstraint("initial_quantity >= 0", name="ck_medicines_initial_quantity_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_medicines_unit_price_non_negative"),
        Index("idx_medicines_name", "name"),
    )


@event.listens_for(Medicine, "before_update")
def _reject_quantity_change(_mapper, _connection, target):
    state = inspect(target)
    for attr in ("quantity_on_hand", "initial_quantity"):
        if state.attrs[attr].history.has_changes():
            raise QuantityOwnershipError(target.id)


__all__ = ["Medicine"]
