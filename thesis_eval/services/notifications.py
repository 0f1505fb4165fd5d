"""评价状态变更通知。

评价进入 submitted/locked 时，在同一事务内向该答辩小组的所有学生发送
通知。通知写入在 SAVEPOINT 中进行：失败只回滚到保存点并记录日志，
状态迁移本身照常提交。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from thesis_eval.db import atomic
from thesis_eval.errors import NotFoundError
from thesis_eval.models import (
    DefenseSchedule,
    Evaluation,
    EvaluationStatus,
    Notification,
    NotificationType,
    ThesisGroup,
    group_members,
)
from thesis_eval.services.policy import Actor
from thesis_eval.utils.identifiers import parse_uuid

logger = logging.getLogger(__name__)

_MESSAGES = {
    EvaluationStatus.SUBMITTED: (
        NotificationType.EVALUATION_SUBMITTED,
        "New panel evaluation submitted",
        'A panelist submitted an evaluation for your thesis group "{title}".',
    ),
    EvaluationStatus.LOCKED: (
        NotificationType.EVALUATION_LOCKED,
        "Evaluation finalized",
        'Your thesis group "{title}" has a finalized panel evaluation.',
    ),
}


class NotificationSink(Protocol):
    def enqueue(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        body: str,
        data: Dict[str, Any],
    ) -> None:
        ...


class DatabaseNotificationSink:
    """把通知写入 ``notifications`` 表，随调用方事务提交。"""

    def __init__(self, db: Session) -> None:
        self.db = db

    def enqueue(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        body: str,
        data: Dict[str, Any],
    ) -> None:
        self.db.add(Notification(user_id=user_id, type=type, title=title, body=body, data=data))


class NotificationDispatcher:
    """评价状态迁移后的学生通知扇出。"""

    def dispatch_status_change(
        self,
        db: Session,
        evaluation: Evaluation,
        status: EvaluationStatus,
        sink: Optional[NotificationSink] = None,
    ) -> int:
        """返回已入队的通知数量；失败时返回 0 且不抛出异常。"""

        if status not in _MESSAGES:
            return 0
        sink = sink or DatabaseNotificationSink(db)
        try:
            with db.begin_nested():
                return self._fan_out(db, evaluation, status, sink)
        except Exception:
            logger.exception(
                "Failed to notify students for evaluation %s (%s)", evaluation.id, status.value
            )
            return 0

    def _fan_out(
        self,
        db: Session,
        evaluation: Evaluation,
        status: EvaluationStatus,
        sink: NotificationSink,
    ) -> int:
        group = db.execute(
            select(ThesisGroup.id, ThesisGroup.title)
            .join(DefenseSchedule, DefenseSchedule.group_id == ThesisGroup.id)
            .where(DefenseSchedule.id == evaluation.schedule_id)
        ).first()
        if group is None:
            return 0
        group_id, group_title = group

        student_ids = list(
            db.scalars(
                select(group_members.c.student_id).where(group_members.c.group_id == group_id)
            )
        )
        ntype, title, body_template = _MESSAGES[status]
        body = body_template.format(title=group_title or "Untitled Group")
        data = {
            "evaluation_id": str(evaluation.id),
            "schedule_id": str(evaluation.schedule_id),
            "group_id": str(group_id),
            "status": status.value,
        }
        for student_id in student_ids:
            sink.enqueue(student_id, ntype, title, body, dict(data))
        db.flush()
        logger.info(
            "Queued %d %s notifications for evaluation %s", len(student_ids), ntype.value, evaluation.id
        )
        return len(student_ids)


class NotificationInbox:
    """当前用户的通知列表与已读标记。"""

    def list_for_user(
        self, db: Session, actor: Actor, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        limit = max(1, min(int(limit), 200))
        stmt = select(Notification).where(Notification.user_id == actor.id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        return list(db.scalars(stmt))

    def mark_read(self, db: Session, actor: Actor, notification_id: Any) -> Notification:
        parsed = parse_uuid(notification_id, "notification_id")
        notification = db.get(Notification, parsed)
        # 他人的通知同样按不存在处理
        if notification is None or notification.user_id != actor.id:
            raise NotFoundError("Notification not found")
        if notification.read_at is None:
            with atomic(db):
                notification.read_at = datetime.now(timezone.utc)
            db.refresh(notification)
        return notification

    def mark_all_read(self, db: Session, actor: Actor) -> int:
        with atomic(db):
            result = db.execute(
                update(Notification)
                .where(Notification.user_id == actor.id, Notification.read_at.is_(None))
                .values(read_at=datetime.now(timezone.utc))
            )
        return result.rowcount or 0


notification_dispatcher = NotificationDispatcher()
notification_inbox = NotificationInbox()
