from app.services.adjustment_service import AdjustmentResult, RetryPolicy, StockAdjuster
from app.services.ledger_service import current_quantity, iter_history, reconcile

__all__ = [
    "AdjustmentResult",
    "RetryPolicy",
    "StockAdjuster",
    "current_quantity",
    "iter_history",
    "reconcile",
]
