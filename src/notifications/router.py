from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from src.auth.dependencies import get_current_user
from src.database import get_db
from src.notifications.schemas import Notification, MarkAllReadResult
from src.notifications.service import NotificationService

router = APIRouter()

@router.get("", response_model=List[Notification])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return NotificationService(db).list_for_user(current_user, unread_only=unread_only, limit=limit)

@router.post("/{notification_id}/read", response_model=Notification)
def mark_notification_read(
    notification_id: int,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return NotificationService(db).mark_read(current_user, notification_id)

@router.post("/read-all", response_model=MarkAllReadResult)
def mark_all_notifications_read(current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    return MarkAllReadResult(updated=NotificationService(db).mark_all_read(current_user))
