"""Equipment usage and breakdown lifecycle.

Equipment.status is shared by both sub-flows, so every mutation here locks the
equipment row (SELECT ... FOR UPDATE) before reading its status.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..database import atomic
from ..domain_errors import ConflictError, NotFoundError, ValidationError
from ..models import Equipment, EquipmentBreakdown, EquipmentUsage, Site, User
from ..security import require_permission
from ..services.notifications import notify_roles

_UNSET = object()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _lock_equipment_or_404(db: Session, equipment_id: int) -> Equipment:
    equipment = db.query(Equipment).filter(Equipment.id == equipment_id).with_for_update().first()
    if not equipment:
        raise NotFoundError("Equipment not found", code="EQUIPMENT_NOT_FOUND")
    return equipment


def start_usage_use_case(
    *,
    db: Session,
    equipment_id: int,
    site_id: int,
    current_user: User,
    start_date: datetime | None = None,
    notes: str | None = None,
) -> EquipmentUsage:
    """Open a usage record and flip the unit to in_use; only available units qualify."""
    if not db.query(Site).filter(Site.id == site_id).first():
        raise ValidationError.for_field("site_id", "Site not found", code="EQUIPMENT_SITE_INVALID")

    with atomic(db, operation="Equipment usage start"):
        equipment = _lock_equipment_or_404(db, equipment_id)
        if equipment.status != "available":
            raise ValidationError("Equipment is not available", code="EQUIPMENT_NOT_AVAILABLE")
        usage = EquipmentUsage(
            equipment_id=equipment.id,
            site_id=site_id,
            user_id=current_user.id,
            start_date=start_date or _utc_now(),
            status="active",
            notes=notes,
        )
        db.add(usage)
        equipment.status = "in_use"
        db.flush()
    return usage


def end_usage_use_case(*, db: Session, usage_id: int, current_user: User) -> EquipmentUsage:
    """Close an active usage record and release the unit."""
    usage = db.query(EquipmentUsage).filter(EquipmentUsage.id == usage_id).first()
    if not usage:
        raise NotFoundError("Usage record not found", code="EQUIPMENT_USAGE_NOT_FOUND")

    with atomic(db, operation="Equipment usage end"):
        equipment = _lock_equipment_or_404(db, usage.equipment_id)
        # Re-read under the equipment lock; a breakdown may have interrupted it meanwhile.
        usage = (
            db.query(EquipmentUsage)
            .filter(EquipmentUsage.id == usage_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if usage.status != "active":
            raise ConflictError("Usage has already ended", code="EQUIPMENT_USAGE_ALREADY_ENDED")
        usage.end_date = _utc_now()
        usage.status = "completed"
        # A unit that broke down mid-session stays broken until its breakdown is fixed.
        if equipment.status == "in_use":
            equipment.status = "available"
    return usage


def report_breakdown_use_case(
    *,
    db: Session,
    equipment_id: int,
    description: str,
    current_user: User,
    severity: str = "medium",
) -> EquipmentBreakdown:
    """Record a breakdown and force the unit to broken regardless of its current status."""
    with atomic(db, operation="Breakdown report"):
        equipment = _lock_equipment_or_404(db, equipment_id)
        breakdown = EquipmentBreakdown(
            equipment_id=equipment.id,
            reported_by=current_user.id,
            description=description,
            severity=severity or "medium",
            status="reported",
        )
        db.add(breakdown)
        equipment.status = "broken"

        if settings.BREAKDOWN_CLOSES_OPEN_USAGE:
            now = _utc_now()
            open_usages = db.query(EquipmentUsage).filter(
                EquipmentUsage.equipment_id == equipment.id,
                EquipmentUsage.status == "active",
            ).all()
            for usage in open_usages:
                usage.end_date = now
                usage.status = "interrupted"

        db.flush()
        notify_roles(
            db,
            title="Equipment Breakdown",
            message=f"{equipment.name} has broken down: {description}",
            type="equipment",
            related_id=breakdown.id,
            related_type="breakdown",
        )
    return breakdown


def update_breakdown_use_case(
    *,
    db: Session,
    breakdown_id: int,
    current_user: User,
    status: str | None = None,
    repair_cost: Decimal | None | object = _UNSET,
    notes: str | None | object = _UNSET,
) -> EquipmentBreakdown:
    """Progress a breakdown; marking it fixed returns the unit to available."""
    require_permission(current_user, "canManageEquipment")
    breakdown = db.query(EquipmentBreakdown).filter(EquipmentBreakdown.id == breakdown_id).first()
    if not breakdown:
        raise NotFoundError("Breakdown not found", code="BREAKDOWN_NOT_FOUND")
    if status is None and repair_cost is _UNSET and notes is _UNSET:
        raise ValidationError("No fields to update", code="BREAKDOWN_NO_FIELDS")

    with atomic(db, operation="Breakdown update"):
        if repair_cost is not _UNSET:
            breakdown.repair_cost = repair_cost
        if notes is not _UNSET:
            breakdown.notes = notes
        if status is not None:
            becomes_fixed = status == "fixed" and breakdown.status != "fixed"
            breakdown.status = status
            if becomes_fixed:
                equipment = _lock_equipment_or_404(db, breakdown.equipment_id)
                breakdown.fixed_at = func.now()
                equipment.status = "available"
    return breakdown
