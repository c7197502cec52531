"""Notification router - in-app inbox for the current user"""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.notification_service import NotificationService
from ...shared.access import Actor
from ...shared.errors import NotFoundError

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: int
    category: str
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    service: NotificationService = Depends(get_notification_service),
):
    """Notifications addressed to the user or to any of their roles"""
    return service.list_for_user(actor.id, sorted(actor.roles), unread_only)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    service: NotificationService = Depends(get_notification_service),
):
    notification = service.mark_read(notification_id, actor.id, sorted(actor.roles))
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification
