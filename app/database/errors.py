from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from app.core.errors import LedgerError

# serialization_failure, deadlock_detected, lock_not_available
_CONTENTION_SQLSTATES = {"40001", "40P01", "55P03"}
# MySQL: lock wait timeout, deadlock. SQL Server: deadlock victim, lock request timeout.
_CONTENTION_ERROR_NUMBERS = {1205, 1213, 1222}
_SQLITE_CONTENTION_MESSAGES = (
    "database is locked",
    "database table is locked",
    "database is busy",
)


def _sqlstate(orig) -> str | None:
    for attr in ("pgcode", "sqlstate"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    diag = getattr(orig, "diag", None)
    if diag is not None:
        return getattr(diag, "sqlstate", None)
    return None


def is_contention_error(exc: BaseException) -> bool:
    """True when the backend aborted us for concurrency, not for bad data."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    if _sqlstate(orig) in _CONTENTION_SQLSTATES:
        return True
    args = getattr(orig, "args", ())
    if args:
        # pymysql: (errno, message). pyodbc: (sqlstate, message).
        if isinstance(args[0], int) and args[0] in _CONTENTION_ERROR_NUMBERS:
            return True
        if isinstance(args[0], str) and args[0] in _CONTENTION_SQLSTATES:
            return True
    message = str(orig).lower()
    return any(fragment in message for fragment in _SQLITE_CONTENTION_MESSAGES)


def classify_backend_error(exc: SQLAlchemyError) -> LedgerError:
    if is_contention_error(exc):
        return LedgerError.conflict(
            "Concurrent update in progress; the adjustment was not applied.",
            retryable=True,
            cause=exc,
        )
    if isinstance(exc, IntegrityError):
        return LedgerError.conflict(
            "The adjustment violates a stock ledger constraint.",
            retryable=False,
            cause=exc,
        )
    return LedgerError.backend_failure("Storage backend failure.", cause=exc)


__all__ = ["classify_backend_error", "is_contention_error"]
