from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.errors import DuplicateSkuError, MedicineHasHistoryError, MedicineNotFoundError
from app.dependencies import get_db, require_auth
from app.schemas.common import error_responses
from app.schemas.medicine import MedicineCreate, MedicineDeleted, MedicineRead, MedicineUpdate
from app.services import medicine_service

router = APIRouter(prefix="/medicines", tags=["Medicines"])


@router.get("", response_model=list[MedicineRead])
def list_medicines(db: Session = Depends(get_db)):
    return medicine_service.list_medicines(db)


@router.get("/{medicine_id}", response_model=MedicineRead, responses=error_responses(404))
def get_medicine(medicine_id: int, db: Session = Depends(get_db)):
    try:
        return medicine_service.get_medicine(db, medicine_id)
    except MedicineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post(
    "",
    response_model=MedicineRead,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses(400, 401, 409),
)
def create_medicine(
    payload: MedicineCreate,
    db: Session = Depends(get_db),
    _auth=Depends(require_auth),
):
    try:
        return medicine_service.create_medicine(db, payload)
    except DuplicateSkuError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.put("/{medicine_id}", response_model=MedicineRead, responses=error_responses(400, 401, 404))
def update_medicine(
    medicine_id: int,
    payload: MedicineUpdate,
    db: Session = Depends(get_db),
    _auth=Depends(require_auth),
):
    try:
        return medicine_service.update_medicine(db, medicine_id, payload)
    except MedicineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{medicine_id}", response_model=MedicineDeleted, responses=error_responses(401, 404, 409))
def delete_medicine(
    medicine_id: int,
    db: Session = Depends(get_db),
    _auth=Depends(require_auth),
):
    try:
        medicine_service.delete_medicine(db, medicine_id)
    except MedicineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except MedicineHasHistoryError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return MedicineDeleted(deleted=True)


__all__ = ["router"]
