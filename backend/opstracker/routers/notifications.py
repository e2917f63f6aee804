"""Notification inbox endpoints; every query is scoped to the caller."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import atomic, get_db
from ..domain_errors import NotFoundError
from ..models import Notification, User
from ..schemas import NotificationResponse, UnreadCountResponse
from ..services.query_filters import apply_filters

router = APIRouter(prefix="/notifications", tags=["notifications"])

INBOX_LIMIT = 100


def _own_notification_or_404(db: Session, user: User, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user.id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found", code="NOTIFICATION_NOT_FOUND")
    return notification


@router.get("", response_model=list[NotificationResponse])
def get_notifications(
    is_read: Optional[bool] = None,
    type: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Newest notifications first."""
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    query = apply_filters(query, {Notification.is_read: is_read, Notification.type: type})
    return query.order_by(Notification.created_at.desc()).limit(INBOX_LIMIT).all()


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count = db.query(func.count(Notification.id)).filter(
        Notification.user_id == current_user.id,
        Notification.is_read == False,  # noqa: E712
    ).scalar()
    return UnreadCountResponse(count=count or 0)


@router.patch("/read-all")
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with atomic(db, operation="Mark notifications read"):
        updated = db.query(Notification).filter(
            Notification.user_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        ).update({Notification.is_read: True}, synchronize_session=False)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = _own_notification_or_404(db, current_user, notification_id)
    with atomic(db, operation="Mark notification read"):
        notification.is_read = True
    return notification


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = _own_notification_or_404(db, current_user, notification_id)
    with atomic(db, operation="Notification deletion"):
        db.delete(notification)
    return {"message": "Notification deleted"}
