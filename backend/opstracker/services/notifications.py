"""Table-backed notification inbox.

Helpers here only ``db.add`` rows; the caller's transaction decides whether
they persist together with the mutation that triggered them.
"""
from __future__ import annotations

from typing import Iterable

from sqlalchemy.orm import Session

from ..models import Notification, User

APPROVER_ROLES = ("admin", "manager")


def notify_user(
    db: Session,
    *,
    user_id: int,
    title: str,
    message: str,
    type: str,
    related_id: int | None = None,
    related_type: str | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        related_id=related_id,
        related_type=related_type,
        is_read=False,
    )
    db.add(notification)
    return notification


def notify_roles(
    db: Session,
    *,
    roles: Iterable[str] = APPROVER_ROLES,
    title: str,
    message: str,
    type: str,
    related_id: int | None = None,
    related_type: str | None = None,
) -> list[Notification]:
    """One notification per active user holding any of ``roles``."""
    recipients = db.query(User).filter(User.role.in_(list(roles)), User.is_active == True).all()  # noqa: E712
    return [
        notify_user(
            db,
            user_id=recipient.id,
            title=title,
            message=message,
            type=type,
            related_id=related_id,
            related_type=related_type,
        )
        for recipient in recipients
    ]


def has_unread_notification(
    db: Session,
    *,
    user_id: int,
    title: str,
    related_type: str | None,
    related_id: int | None,
) -> bool:
    existing = db.query(Notification.id).filter(
        Notification.user_id == user_id,
        Notification.title == title,
        Notification.related_type == related_type,
        Notification.related_id == related_id,
        Notification.is_read == False,  # noqa: E712
    ).first()
    return existing is not None
