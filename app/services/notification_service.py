"""
Notification sink
Persists in-app notifications for a user or for every holder of a role.
Delivery is best-effort: failures are logged and never reach the caller.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Notification

logger = logging.getLogger(__name__)


class NotificationCategory:
    APPOINTMENT = "appointment"
    PROJECT = "project"
    BLUEPRINT = "blueprint"
    PAYMENT = "payment"
    FABRICATION = "fabrication"
    SYSTEM = "system"


def format_slot_time(slot_code: str) -> str:
    """'13:00' -> '1:00 PM'"""
    hour = int(slot_code.split(":")[0])
    suffix = "PM" if hour >= 12 else "AM"
    display = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    return f"{display}:00 {suffix}"


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        category: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        *,
        recipient_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> bool:
        """Queue a notification for ``recipient_id`` or for ``role``. Returns False on failure."""
        if recipient_id is None and role is None:
            logger.warning(f"⚠️ Notification '{title}' has no recipient, skipping")
            return False

        target = f"user:{recipient_id}" if recipient_id is not None else f"role:{role}"
        try:
            self.db.add(
                Notification(
                    recipient_id=recipient_id,
                    recipient_role=role,
                    category=category,
                    title=title,
                    message=message,
                    link=link,
                )
            )
            self.db.commit()
            logger.info(f"🔔 Notification '{title}' queued for {target}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to queue notification '{title}' for {target}: {e}")
            return False

    def list_for_user(self, user_id: int, roles: list[str], unread_only: bool = False) -> list:
        query = self.db.query(Notification).filter(
            (Notification.recipient_id == user_id) | (Notification.recipient_role.in_(roles))
        )
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.id.desc()).all()

    def mark_read(self, notification_id: int, user_id: int, roles: list[str]) -> Optional[Notification]:
        notification = (
            self.db.query(Notification)
            .filter(
                Notification.id == notification_id,
                (Notification.recipient_id == user_id) | (Notification.recipient_role.in_(roles)),
            )
            .first()
        )
        if notification is None:
            return None
        notification.is_read = True
        self.db.commit()
        return notification
