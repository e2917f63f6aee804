"""Equipment registry, usage and breakdown endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import atomic, get_db
from ..domain_errors import ConflictError, ValidationError
from ..models import Equipment, EquipmentBreakdown, EquipmentUsage, User
from ..schemas import (
    BreakdownCreate,
    BreakdownResponse,
    BreakdownSeverity,
    BreakdownStatus,
    BreakdownUpdate,
    EquipmentCreate,
    EquipmentResponse,
    EquipmentStatus,
    EquipmentUpdate,
    UsageResponse,
    UsageStart,
)
from ..security import get_or_404
from ..services.query_filters import apply_filters
from ..use_cases.equipment import (
    end_usage_use_case,
    report_breakdown_use_case,
    start_usage_use_case,
    update_breakdown_use_case,
)

router = APIRouter(prefix="/equipment", tags=["equipment"])

_DUPLICATE_SERIAL = "Equipment with this serial number already exists"


def _get_equipment_or_404(db: Session, equipment_id: int) -> Equipment:
    return get_or_404(db, Equipment, equipment_id, not_found="Equipment not found", code="EQUIPMENT_NOT_FOUND")


@router.get("", response_model=list[EquipmentResponse])
def get_equipment_list(
    status: Optional[EquipmentStatus] = None,
    type: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_filters(db.query(Equipment), {Equipment.status: status, Equipment.type: type})
    return query.order_by(Equipment.name).all()


@router.get("/breakdowns/all", response_model=list[BreakdownResponse])
def get_breakdowns(
    status: Optional[BreakdownStatus] = None,
    severity: Optional[BreakdownSeverity] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_filters(
        db.query(EquipmentBreakdown),
        {EquipmentBreakdown.status: status, EquipmentBreakdown.severity: severity},
    )
    return query.order_by(EquipmentBreakdown.breakdown_date.desc()).all()


@router.patch("/breakdowns/{breakdown_id}", response_model=BreakdownResponse)
def update_breakdown(
    breakdown_id: int,
    payload: BreakdownUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Move a breakdown along; fixing it makes the unit available again."""
    return update_breakdown_use_case(
        db=db,
        breakdown_id=breakdown_id,
        current_user=current_user,
        **payload.model_dump(exclude_unset=True),
    )


@router.patch("/usage/{usage_id}/end", response_model=UsageResponse)
def end_usage(
    usage_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return end_usage_use_case(db=db, usage_id=usage_id, current_user=current_user)


@router.get("/{equipment_id}", response_model=EquipmentResponse)
def get_equipment(
    equipment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_equipment_or_404(db, equipment_id)


@router.post("", response_model=EquipmentResponse, status_code=201)
def create_equipment(
    payload: EquipmentCreate,
    current_user: User = Depends(PermissionChecker("canManageEquipment")),
    db: Session = Depends(get_db),
):
    conflict = ConflictError(_DUPLICATE_SERIAL, code="EQUIPMENT_SERIAL_EXISTS")
    with atomic(db, operation="Equipment creation", on_conflict=conflict):
        equipment = Equipment(**payload.model_dump())
        db.add(equipment)
    db.refresh(equipment)
    return equipment


@router.put("/{equipment_id}", response_model=EquipmentResponse)
def update_equipment(
    equipment_id: int,
    payload: EquipmentUpdate,
    current_user: User = Depends(PermissionChecker("canManageEquipment")),
    db: Session = Depends(get_db),
):
    equipment = _get_equipment_or_404(db, equipment_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")

    conflict = ConflictError(_DUPLICATE_SERIAL, code="EQUIPMENT_SERIAL_EXISTS")
    with atomic(db, operation="Equipment update", on_conflict=conflict):
        for field, value in changes.items():
            setattr(equipment, field, value)
    db.refresh(equipment)
    return equipment


@router.post("/{equipment_id}/usage", response_model=UsageResponse, status_code=201)
def start_usage(
    equipment_id: int,
    payload: UsageStart,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Check a unit out to a site; it must be available."""
    return start_usage_use_case(
        db=db,
        equipment_id=equipment_id,
        site_id=payload.site_id,
        current_user=current_user,
        start_date=payload.start_date,
        notes=payload.notes,
    )


@router.get("/{equipment_id}/usage", response_model=list[UsageResponse])
def get_usage_history(
    equipment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    equipment = _get_equipment_or_404(db, equipment_id)
    return (
        db.query(EquipmentUsage)
        .filter(EquipmentUsage.equipment_id == equipment.id)
        .order_by(EquipmentUsage.start_date.desc())
        .all()
    )


@router.post("/{equipment_id}/breakdown", response_model=BreakdownResponse, status_code=201)
def report_breakdown(
    equipment_id: int,
    payload: BreakdownCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Report a breakdown; admins and managers are notified."""
    return report_breakdown_use_case(
        db=db,
        equipment_id=equipment_id,
        description=payload.description,
        current_user=current_user,
        severity=payload.severity,
    )
