from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.dependencies import get_adjuster, get_db, require_auth
from app.schemas.common import error_responses
from app.schemas.stock import (
    AdjustmentRequest,
    AdjustmentResponse,
    ReconciliationRead,
    StockHistoryRead,
)
from app.services.adjustment_service import StockAdjuster
from app.services.ledger_service import iter_history, reconcile

router = APIRouter(tags=["Stock"])


@router.post(
    "/medicines/{medicine_id}/adjust",
    response_model=AdjustmentResponse,
    responses=error_responses(400, 401, 404, 409, 500),
)
def adjust_stock(
    medicine_id: int,
    payload: AdjustmentRequest,
    adjuster: StockAdjuster = Depends(get_adjuster),
    principal=Depends(require_auth),
):
    """Apply a signed quantity change and record it in the stock history.

    Positive changeAmount = stock received, negative = stock dispensed.
    """
    changed_by = payload.changed_by
    if changed_by is None and principal:
        changed_by = principal.get("subject")

    result = adjuster.adjust(
        medicine_id,
        payload.change_amount,
        reason=payload.reason,
        changed_by=changed_by,
    )
    if not result.ok:
        return JSONResponse(status_code=result.error.status_code, content=result.error.to_body())
    return AdjustmentResponse(success=True, medicine=result.medicine)


@router.get(
    "/history/{medicine_id}",
    response_model=list[StockHistoryRead],
    responses=error_responses(400, 500),
)
def stock_history(
    medicine_id: int,
    limit: Optional[int] = Query(None, ge=1, le=10_000),
    db: Session = Depends(get_db),
):
    return [StockHistoryRead.model_validate(entry) for entry in iter_history(db, medicine_id, limit=limit)]


@router.get(
    "/history/{medicine_id}/reconciliation",
    response_model=ReconciliationRead,
    responses=error_responses(404, 500),
)
def stock_reconciliation(medicine_id: int, db: Session = Depends(get_db)):
    report = reconcile(db, medicine_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Medicine {} not found.".format(medicine_id))
    return ReconciliationRead.model_validate(report)


__all__ = ["router"]
