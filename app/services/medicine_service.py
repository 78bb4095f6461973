from datetime import datetime, timezone

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import DuplicateSkuError, MedicineHasHistoryError, MedicineNotFoundError
from app.models.medicine import Medicine
from app.models.stock_history import StockHistory
from app.schemas.medicine import MedicineCreate, MedicineUpdate


def list_medicines(db: Session) -> list[Medicine]:
    return list(db.execute(select(Medicine).order_by(Medicine.name, Medicine.id)).scalars().all())


def get_medicine(db: Session, medicine_id: int) -> Medicine:
    medicine = db.get(Medicine, medicine_id)
    if medicine is None:
        raise MedicineNotFoundError(medicine_id)
    return medicine


def create_medicine(db: Session, payload: MedicineCreate) -> Medicine:
    medicine = Medicine(
        sku=payload.sku,
        name=payload.name,
        manufacturer=payload.manufacturer,
        unit_price=payload.unit_price,
        quantity_on_hand=payload.quantity_on_hand,
        initial_quantity=payload.quantity_on_hand,
        expiry_date=payload.expiry_date,
    )
    db.add(medicine)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        sku_taken = db.execute(select(Medicine.id).where(Medicine.sku == medicine.sku)).first()
        if sku_taken:
            raise DuplicateSkuError(medicine.sku) from exc
        raise
    db.refresh(medicine)
    return medicine


def update_medicine(db: Session, medicine_id: int, payload: MedicineUpdate) -> Medicine:
    medicine = get_medicine(db, medicine_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(medicine, field, value)
    medicine.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(medicine)
    return medicine


def delete_medicine(db: Session, medicine_id: int) -> None:
    """Delete a medicine that has never been adjusted.

    History rows are append-only, so a medicine with any history is kept.
    """
    medicine = get_medicine(db, medicine_id)
    has_history = db.execute(
        select(exists().where(StockHistory.medicine_id == medicine_id))
    ).scalar()
    if has_history:
        raise MedicineHasHistoryError(medicine_id)
    db.delete(medicine)
    try:
        db.commit()
    except IntegrityError as exc:
        # An adjustment committed between the check and the delete.
        db.rollback()
        raise MedicineHasHistoryError(medicine_id) from exc


__all__ = [
    "create_medicine",
    "delete_medicine",
    "get_medicine",
    "list_medicines",
    "update_medicine",
]
