"""Failure taxonomy shared by the stock ledger and the HTTP layer.

The adjustment path returns a ``LedgerError`` value instead of raising, so a
caller always gets either an updated medicine or exactly one of these kinds:

    INVALID_INPUT       change amount missing, non-integer or zero
    NOT_FOUND           medicine id does not exist
    INSUFFICIENT_STOCK  the adjustment would drive quantity below zero
    CONFLICT            constraint or concurrency failure; ``retryable`` tells
                        whether running the same adjustment again can succeed
    BACKEND_FAILURE     any other storage error

Repository (metadata CRUD) failures are ordinary exceptions, defined at the
bottom of this module.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    CONFLICT = "conflict"
    BACKEND_FAILURE = "backend_failure"


HTTP_STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BACKEND_FAILURE: 500,
}


@dataclass(frozen=True)
class LedgerError:
    kind: ErrorKind
    message: str
    retryable: bool = False
    cause: Optional[BaseException] = None

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_body(self) -> dict:
        return {"success": False, "error": {"kind": self.kind.value, "message": self.message}}

    @classmethod
    def invalid_input(cls, message: str) -> "LedgerError":
        return cls(ErrorKind.INVALID_INPUT, message)

    @classmethod
    def not_found(cls, medicine_id: int) -> "LedgerError":
        return cls(ErrorKind.NOT_FOUND, "Medicine {} not found.".format(medicine_id))

    @classmethod
    def insufficient_stock(cls, medicine_id: int, on_hand: int, change_amount: int) -> "LedgerError":
        return cls(
            ErrorKind.INSUFFICIENT_STOCK,
            "Insufficient stock for this adjustment: medicine {} has {} on hand, change is {}.".format(
                medicine_id, on_hand, change_amount
            ),
        )

    @classmethod
    def conflict(cls, message: str, *, retryable: bool, cause: Optional[BaseException] = None) -> "LedgerError":
        return cls(ErrorKind.CONFLICT, message, retryable=retryable, cause=cause)

    @classmethod
    def backend_failure(cls, message: str, cause: Optional[BaseException] = None) -> "LedgerError":
        return cls(ErrorKind.BACKEND_FAILURE, message, cause=cause)


def error_body(kind: str, message: str) -> dict:
    return {"success": False, "error": {"kind": kind, "message": message}}


class LedgerIntegrityError(Exception):
    """A write would break an invariant of the stock ledger."""


class ImmutableRecordError(LedgerIntegrityError):
    def __init__(self, entity_type: str, entity_id, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        super().__init__(
            "{} {} is append-only and cannot be {}.".format(entity_type, entity_id, action)
        )


class QuantityOwnershipError(LedgerIntegrityError):
    def __init__(self, medicine_id):
        self.medicine_id = medicine_id
        super().__init__(
            "Quantity on hand of medicine {} can only change through a stock adjustment.".format(
                medicine_id
            )
        )


class MedicineNotFoundError(Exception):
    def __init__(self, medicine_id: int):
        self.medicine_id = medicine_id
        super().__init__("Medicine {} not found.".format(medicine_id))


class DuplicateSkuError(Exception):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__("SKU must be unique: {} already exists.".format(sku))


class MedicineHasHistoryError(Exception):
    def __init__(self, medicine_id: int):
        self.medicine_id = medicine_id
        super().__init__(
            "Medicine {} has stock history and cannot be deleted.".format(medicine_id)
        )


__all__ = [
    "DuplicateSkuError",
    "ErrorKind",
    "HTTP_STATUS_BY_KIND",
    "ImmutableRecordError",
    "LedgerError",
    "LedgerIntegrityError",
    "MedicineHasHistoryError",
    "MedicineNotFoundError",
    "QuantityOwnershipError",
    "error_body",
]
