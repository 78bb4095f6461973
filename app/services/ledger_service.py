"""Read side of the stock ledger.

Quantity and history rows are written only by ``StockAdjuster``; this module
never writes.
"""

from dataclasses import dataclass
from typing import Iterator, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.medicine import Medicine
from app.models.stock_history import StockHistory

HISTORY_BATCH_SIZE = 100


@dataclass(frozen=True)
class Reconciliation:
    medicine_id: int
    initial_quantity: int
    history_total: int
    entry_count: int
    quantity_on_hand: int

    @property
    def balanced(self) -> bool:
        return self.history_total == self.quantity_on_hand - self.initial_quantity


def current_quantity(db: Session, medicine_id: int, *, lock: bool = True) -> Optional[int]:
    """Quantity on hand, or None when the medicine does not exist.

    With ``lock`` the row stays write-locked until the enclosing transaction
    ends (FOR UPDATE; SQLite ignores the clause and relies on BEGIN IMMEDIATE).
    """
    stmt = select(Medicine.quantity_on_hand).where(Medicine.id == medicine_id)
    if lock:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def iter_history(db: Session, medicine_id: int, *, limit: Optional[int] = None) -> Iterator[StockHistory]:
    stmt = (
        select(StockHistory)
        .where(StockHistory.medicine_id == medicine_id)
        .order_by(StockHistory.changed_at.desc(), StockHistory.id.desc())
        .execution_options(yield_per=HISTORY_BATCH_SIZE)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    yield from db.scalars(stmt)


def _reconciliation_query():
    history_total = (
        select(func.coalesce(func.sum(StockHistory.change_amount), 0))
        .where(StockHistory.medicine_id == Medicine.id)
        .scalar_subquery()
    )
    entry_count = (
        select(func.count(StockHistory.id))
        .where(StockHistory.medicine_id == Medicine.id)
        .scalar_subquery()
    )
    # Single statement: quantity and history totals share one read snapshot.
    return select(
        Medicine.id,
        Medicine.initial_quantity,
        Medicine.quantity_on_hand,
        history_total.label("history_total"),
        entry_count.label("entry_count"),
    )


def _to_report(row) -> Reconciliation:
    return Reconciliation(
        medicine_id=row.id,
        initial_quantity=row.initial_quantity,
        history_total=int(row.history_total),
        entry_count=int(row.entry_count),
        quantity_on_hand=row.quantity_on_hand,
    )


def reconcile(db: Session, medicine_id: int) -> Optional[Reconciliation]:
    row = db.execute(_reconciliation_query().where(Medicine.id == medicine_id)).one_or_none()
    if row is None:
        return None
    return _to_report(row)


def reconcile_all(db: Session) -> Iterator[Reconciliation]:
    rows = db.execute(_reconciliation_query().order_by(Medicine.id)).all()
    for row in rows:
        yield _to_report(row)


__all__ = [
    "Reconciliation",
    "current_quantity",
    "iter_history",
    "reconcile",
    "reconcile_all",
]
