"""Leave requests and material requisitions: pending -> approved | rejected."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import atomic
from ..domain_errors import ConflictError, NotFoundError, ValidationError
from ..models import LeaveRequest, Material, MaterialRequisition, Site, User
from ..security import require_permission
from ..services.notifications import notify_roles, notify_user
from ..services.workflow_rules import format_quantity

DECISIONS = frozenset({"approved", "rejected"})


def _check_decidable(request, *, status: str, already_decided: str) -> None:
    if status not in DECISIONS:
        raise ValidationError.for_field("status", "Status must be approved or rejected")
    if request.status != "pending":
        raise ConflictError(already_decided, code="REQUEST_ALREADY_DECIDED")


def _apply_decision(request, *, status: str, current_user: User) -> str:
    request.status = status
    request.approved_by = current_user.id
    request.approved_at = func.now()
    return status


def create_leave_request_use_case(
    *,
    db: Session,
    leave_type: str,
    start_date: date,
    end_date: date,
    current_user: User,
    reason: str | None = None,
) -> LeaveRequest:
    """File a leave request for the caller and alert every admin/manager."""
    if end_date < start_date:
        raise ValidationError.for_field("end_date", "end_date must not be before start_date")

    with atomic(db, operation="Leave request creation"):
        leave = LeaveRequest(
            user_id=current_user.id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            reason=reason,
            status="pending",
        )
        db.add(leave)
        db.flush()
        notify_roles(
            db,
            title="Leave Request",
            message=f"New leave request from {current_user.username}",
            type="attendance",
            related_id=leave.id,
            related_type="leave_request",
        )
    return leave


def decide_leave_request_use_case(
    *,
    db: Session,
    leave_request_id: int,
    status: str,
    current_user: User,
) -> LeaveRequest:
    """Approve or reject a pending leave request and tell the requester."""
    require_permission(current_user, "request.decide")
    leave = db.query(LeaveRequest).filter(LeaveRequest.id == leave_request_id).first()
    if not leave:
        raise NotFoundError("Leave request not found", code="LEAVE_REQUEST_NOT_FOUND")
    _check_decidable(leave, status=status, already_decided="Leave request has already been decided")

    with atomic(db, operation="Leave request decision"):
        decision = _apply_decision(leave, status=status, current_user=current_user)
        notify_user(
            db,
            user_id=leave.user_id,
            title=f"Leave Request {decision}",
            message=f"Your leave request has been {decision}",
            type="attendance",
            related_id=leave.id,
            related_type="leave_request",
        )
    return leave


def create_requisition_use_case(
    *,
    db: Session,
    site_id: int,
    material_id: int,
    quantity: Decimal,
    current_user: User,
    notes: str | None = None,
) -> MaterialRequisition:
    if not db.query(Site).filter(Site.id == site_id).first():
        raise ValidationError.for_field("site_id", "Site not found")
    material = db.query(Material).filter(Material.id == material_id).first()
    if not material:
        raise ValidationError.for_field("material_id", "Material not found")

    with atomic(db, operation="Requisition creation"):
        requisition = MaterialRequisition(
            site_id=site_id,
            material_id=material_id,
            quantity=quantity,
            requested_by=current_user.id,
            status="pending",
            notes=notes,
        )
        db.add(requisition)
        db.flush()
        notify_roles(
            db,
            title="Material Requisition Request",
            message=f"New material requisition: {format_quantity(quantity)} {material.name}",
            type="material",
            related_id=requisition.id,
            related_type="requisition",
        )
    return requisition


def decide_requisition_use_case(
    *,
    db: Session,
    requisition_id: int,
    status: str,
    current_user: User,
    notes: str | None = None,
) -> MaterialRequisition:
    """Approve or reject a requisition. Approval does not move stock."""
    require_permission(current_user, "request.decide")
    requisition = db.query(MaterialRequisition).filter(MaterialRequisition.id == requisition_id).first()
    if not requisition:
        raise NotFoundError("Requisition not found", code="REQUISITION_NOT_FOUND")
    _check_decidable(requisition, status=status, already_decided="Requisition has already been decided")

    with atomic(db, operation="Requisition decision"):
        decision = _apply_decision(requisition, status=status, current_user=current_user)
        if notes is not None:
            requisition.notes = notes
        notify_user(
            db,
            user_id=requisition.requested_by,
            title=f"Requisition {decision}",
            message=f"Your material requisition has been {decision}",
            type="material",
            related_id=requisition.id,
            related_type="requisition",
        )
    return requisition
