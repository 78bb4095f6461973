"""Stock adjustments: the only write path to quantity on hand and history.

One adjustment is one transaction against the backend:

    begin (serializable / BEGIN IMMEDIATE)
      -> locked read of quantity_on_hand
      -> reject if missing or if the result would be negative or out of range
      -> read the database clock
      -> UPDATE quantity + updated_at
      -> INSERT history entry
      -> snapshot the row (lock still held)
    commit

Every storage error inside that window rolls the whole transaction back and
comes back as a ``LedgerError``. Retryable conflicts (serialization failure,
deadlock, lock wait timeout) are re-run under ``RetryPolicy``.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.core.errors import LedgerError
from app.database.engine import Database
from app.database.errors import classify_backend_error
from app.database.types import INT32_MAX, INT32_MIN
from app.models.medicine import Medicine
from app.models.stock_history import StockHistory
from app.schemas.medicine import MedicineRead
from app.schemas.stock import StockHistoryRead
from app.services.ledger_service import current_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 0.05
    max_backoff_seconds: float = 1.0
    multiplier: float = 2.0
    jitter: float = 0.2

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.ADJUST_MAX_ATTEMPTS,
            backoff_seconds=settings.ADJUST_RETRY_BACKOFF_SECONDS,
            max_backoff_seconds=settings.ADJUST_RETRY_MAX_BACKOFF_SECONDS,
            jitter=settings.ADJUST_RETRY_JITTER,
        )

    def delay_for(self, attempt: int) -> float:
        """Sleep before attempt ``attempt + 1``."""
        delay = min(self.backoff_seconds * (self.multiplier ** (attempt - 1)), self.max_backoff_seconds)
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)


@dataclass(frozen=True)
class AdjustmentResult:
    ok: bool
    medicine: Optional[MedicineRead] = None
    entry: Optional[StockHistoryRead] = None
    error: Optional[LedgerError] = None
    attempts: int = 0

    @classmethod
    def success(cls, medicine: MedicineRead, entry: StockHistoryRead, attempts: int = 1) -> "AdjustmentResult":
        return cls(ok=True, medicine=medicine, entry=entry, attempts=attempts)

    @classmethod
    def failure(cls, error: LedgerError, attempts: int = 0) -> "AdjustmentResult":
        return cls(ok=False, error=error, attempts=attempts)


def validate_change_amount(change_amount) -> Optional[LedgerError]:
    if isinstance(change_amount, bool) or not isinstance(change_amount, int):
        return LedgerError.invalid_input("changeAmount must be an integer.")
    if change_amount == 0:
        return LedgerError.invalid_input("changeAmount must be a non-zero number.")
    if not INT32_MIN <= change_amount <= INT32_MAX:
        return LedgerError.invalid_input(
            "changeAmount must be between {} and {}.".format(INT32_MIN, INT32_MAX)
        )
    return None


class StockAdjuster:
    def __init__(
        self,
        database: Database,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._database = database
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def adjust(
        self,
        medicine_id: int,
        change_amount: int,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> AdjustmentResult:
        error = validate_change_amount(change_amount)
        if error is not None:
            return AdjustmentResult.failure(error)

        attempt = 0
        while True:
            attempt += 1
            result = self._attempt(medicine_id, change_amount, reason, changed_by, attempt)
            if result.ok or not result.error.retryable or attempt >= self._retry.max_attempts:
                return result

            delay = self._retry.delay_for(attempt)
            logger.warning(
                "Stock adjustment conflict on medicine %s, retrying in %.3fs (attempt %s of %s)",
                medicine_id,
                delay,
                attempt,
                self._retry.max_attempts,
                extra={"medicine_id": medicine_id, "attempt": attempt, "delay_seconds": delay},
            )
            self._sleep(delay)

    def _attempt(
        self,
        medicine_id: int,
        change_amount: int,
        reason: Optional[str],
        changed_by: Optional[str],
        attempt: int,
    ) -> AdjustmentResult:
        db = self._database.session()
        try:
            db.connection(execution_options=self._database.serializable_options())
            self._database.apply_lock_timeout(db)

            on_hand = current_quantity(db, medicine_id, lock=True)
            if on_hand is None:
                db.rollback()
                return AdjustmentResult.failure(LedgerError.not_found(medicine_id), attempt)

            new_quantity = on_hand + change_amount
            if new_quantity < 0:
                db.rollback()
                logger.info(
                    "Rejected adjustment of %s on medicine %s: %s on hand",
                    change_amount,
                    medicine_id,
                    on_hand,
                    extra={"medicine_id": medicine_id, "change_amount": change_amount},
                )
                return AdjustmentResult.failure(
                    LedgerError.insufficient_stock(medicine_id, on_hand, change_amount),
                    attempt,
                )

            if new_quantity > INT32_MAX:
                db.rollback()
                return AdjustmentResult.failure(
                    LedgerError.invalid_input(
                        "Adjustment would raise quantity on hand above {}.".format(INT32_MAX)
                    ),
                    attempt,
                )

            now = self._database.current_timestamp(db)
            self._apply_quantity(db, medicine_id, new_quantity, now)
            entry = self._append_history(db, medicine_id, change_amount, reason, changed_by, now)

            medicine = db.get(Medicine, medicine_id)
            snapshot = MedicineRead.model_validate(medicine)
            entry_snapshot = StockHistoryRead.model_validate(entry)
            db.commit()
        except SQLAlchemyError as exc:
            return AdjustmentResult.failure(self._abort(db, exc, medicine_id), attempt)
        finally:
            db.close()

        logger.info(
            "Adjusted medicine %s by %s: %s -> %s",
            medicine_id,
            change_amount,
            on_hand,
            new_quantity,
            extra={"medicine_id": medicine_id, "change_amount": change_amount, "attempt": attempt},
        )
        return AdjustmentResult.success(snapshot, entry_snapshot, attempt)

    @staticmethod
    def _apply_quantity(db: Session, medicine_id: int, new_quantity: int, now: datetime) -> None:
        db.execute(
            update(Medicine)
            .where(Medicine.id == medicine_id)
            .values(quantity_on_hand=new_quantity, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _append_history(
        db: Session,
        medicine_id: int,
        change_amount: int,
        reason: Optional[str],
        changed_by: Optional[str],
        now: datetime,
    ) -> StockHistory:
        entry = StockHistory(
            medicine_id=medicine_id,
            change_amount=change_amount,
            reason=reason or None,
            changed_by=changed_by or None,
            changed_at=now,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def _abort(db: Session, exc: SQLAlchemyError, medicine_id: int) -> LedgerError:
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.exception(
                "Rollback failed after storage error on medicine %s",
                medicine_id,
                extra={"medicine_id": medicine_id},
            )
            return LedgerError.backend_failure("Storage backend failure during rollback.", cause=exc)

        error = classify_backend_error(exc)
        if error.retryable:
            logger.warning(
                "Adjustment on medicine %s rolled back: %s",
                medicine_id,
                exc.__class__.__name__,
                extra={"medicine_id": medicine_id, "kind": error.kind.value},
            )
        else:
            logger.error(
                "Adjustment on medicine %s rolled back",
                medicine_id,
                exc_info=exc,
                extra={"medicine_id": medicine_id, "kind": error.kind.value},
            )
        return error


__all__ = [
    "AdjustmentResult",
    "RetryPolicy",
    "StockAdjuster",
    "validate_change_amount",
]
