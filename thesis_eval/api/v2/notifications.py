"""当前用户的通知收件箱 API。"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import get_current_actor
from thesis_eval.models import NotificationType
from thesis_eval.services.notifications import notification_inbox
from thesis_eval.services.policy import Actor

router = APIRouter()


# === Schemas ===

class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any]
    read_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int


class MarkAllReadResponse(BaseModel):
    updated: int


# === API 端点 ===

@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    rows = notification_inbox.list_for_user(db, actor, unread_only=unread_only, limit=limit)
    return {"notifications": rows, "total": len(rows)}


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return {"updated": notification_inbox.mark_all_read(db, actor)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return notification_inbox.mark_read(db, actor, notification_id)
