from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, event

from app.core.errors import ImmutableRecordError
from app.database.base import Base
from app.database.types import UTCDateTime


class StockHistory(Base):
    __tablename__ = "medicine_stock_history"

    id = Column(Integer, primary_key=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False)

    change_amount = Column(Integer, nullable=False)
    reason = Column(String(500))
    changed_by = Column(String(200))
    changed_at = Column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("change_amount <> 0", name="ck_stock_history_change_non_zero"),
        Index("idx_stock_history_medicine_changed", "medicine_id", "changed_at"),
    )


@event.listens_for(StockHistory, "before_update")
def _reject_history_update(_mapper, _connection, target):
    raise ImmutableRecordError("StockHistory", target.id, "updated")


@event.listens_for(StockHistory, "before_delete")
def _reject_history_delete(_mapper, _connection, target):
    raise ImmutableRecordError("StockHistory", target.id, "deleted")


__all__ = ["StockHistory"]
