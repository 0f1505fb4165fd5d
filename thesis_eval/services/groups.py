"""论文小组、答辩排期及其成员/评委维护。

成员与评委的整体替换采用"比对后增删"：计算新增与移除集合，在同一事务
内只执行必要的插入和删除，任何一步失败整体回滚，不会出现小组成员被
清空的中间状态。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, List, Optional, Set

from sqlalchemy import Table, delete, insert, select
from sqlalchemy.orm import Session

from thesis_eval.db import atomic
from thesis_eval.errors import InvalidArgumentError, NotFoundError
from thesis_eval.models import (
    DefenseSchedule,
    RubricTemplate,
    ThesisGroup,
    User,
    UserRole,
    group_members,
    schedule_panelists,
)
from thesis_eval.services.rubrics import latest_active_template_id
from thesis_eval.utils.identifiers import parse_uuid

logger = logging.getLogger(__name__)


def _parse_ids(raw_ids: Iterable[Any], field: str) -> List[uuid.UUID]:
    seen: List[uuid.UUID] = []
    for idx, raw in enumerate(raw_ids):
        parsed = parse_uuid(raw, f"{field}[{idx}]")
        if parsed not in seen:
            seen.append(parsed)
    return seen


def _require_users_with_roles(
    db: Session, user_ids: List[uuid.UUID], roles: Iterable[UserRole], label: str
) -> None:
    if not user_ids:
        return
    allowed = set(roles)
    found = {
        user_id: role
        for user_id, role in db.execute(select(User.id, User.role).where(User.id.in_(user_ids)))
    }
    missing = [str(user_id) for user_id in user_ids if user_id not in found]
    if missing:
        raise NotFoundError("User not found", details={"user_ids": missing})
    wrong = [str(user_id) for user_id in user_ids if found[user_id] not in allowed]
    if wrong:
        raise InvalidArgumentError(f"Users are not {label}", details={"user_ids": wrong})


def _replace_links(
    db: Session,
    table: Table,
    owner_column: str,
    member_column: str,
    owner_id: uuid.UUID,
    desired: List[uuid.UUID],
) -> None:
    owner = table.c[owner_column]
    member = table.c[member_column]
    current: Set[uuid.UUID] = set(db.scalars(select(member).where(owner == owner_id)))
    to_remove = current - set(desired)
    to_add = [member_id for member_id in desired if member_id not in current]
    if to_remove:
        db.execute(delete(table).where(owner == owner_id, member.in_(to_remove)))
    if to_add:
        db.execute(
            insert(table),
            [{owner_column: owner_id, member_column: member_id} for member_id in to_add],
        )


class GroupService:
    def get_group(self, db: Session, group_id: Any) -> ThesisGroup:
        group = db.get(ThesisGroup, parse_uuid(group_id, "group_id"))
        if group is None:
            raise NotFoundError("Thesis group not found")
        return group

    def get_schedule(self, db: Session, schedule_id: Any) -> DefenseSchedule:
        schedule = db.get(DefenseSchedule, parse_uuid(schedule_id, "schedule_id"))
        if schedule is None:
            raise NotFoundError("Defense schedule not found")
        return schedule

    def create_group(
        self,
        db: Session,
        title: str,
        program: Optional[str] = None,
        term: Optional[str] = None,
        adviser_id: Any = None,
    ) -> ThesisGroup:
        if not title or not str(title).strip():
            raise InvalidArgumentError("title is required")
        adviser = parse_uuid(adviser_id, "adviser_id") if adviser_id is not None else None
        if adviser is not None:
            _require_users_with_roles(db, [adviser], (UserRole.STAFF, UserRole.ADMIN), "staff")
        group = ThesisGroup(title=str(title).strip(), program=program, term=term, adviser_id=adviser)
        with atomic(db):
            db.add(group)
        db.refresh(group)
        return group

    def create_schedule(
        self,
        db: Session,
        group_id: Any,
        scheduled_at: datetime,
        room: Optional[str] = None,
        rubric_template_id: Any = None,
    ) -> DefenseSchedule:
        """创建答辩排期；未指定模板时绑定最近更新的 active 模板。"""

        group = self.get_group(db, group_id)
        if rubric_template_id is not None:
            template_id = parse_uuid(rubric_template_id, "rubric_template_id")
            if db.get(RubricTemplate, template_id) is None:
                raise NotFoundError("Rubric template not found")
        else:
            template_id = latest_active_template_id(db)

        schedule = DefenseSchedule(
            group_id=group.id,
            scheduled_at=scheduled_at,
            room=room,
            rubric_template_id=template_id,
        )
        with atomic(db):
            db.add(schedule)
        db.refresh(schedule)
        return schedule

    def list_group_members(self, db: Session, group_id: Any) -> List[uuid.UUID]:
        group = self.get_group(db, group_id)
        return list(
            db.scalars(
                select(group_members.c.student_id).where(group_members.c.group_id == group.id)
            )
        )

    def set_group_members(self, db: Session, group_id: Any, student_ids: Iterable[Any]) -> List[uuid.UUID]:
        group = self.get_group(db, group_id)
        desired = _parse_ids(student_ids, "student_ids")
        with atomic(db):
            _require_users_with_roles(db, desired, (UserRole.STUDENT,), "students")
            _replace_links(db, group_members, "group_id", "student_id", group.id, desired)
        logger.info("Group %s now has %d members", group.id, len(desired))
        return desired

    def list_schedule_panelists(self, db: Session, schedule_id: Any) -> List[uuid.UUID]:
        schedule = self.get_schedule(db, schedule_id)
        return list(
            db.scalars(
                select(schedule_panelists.c.staff_id).where(
                    schedule_panelists.c.schedule_id == schedule.id
                )
            )
        )

    def set_schedule_panelists(
        self, db: Session, schedule_id: Any, staff_ids: Iterable[Any]
    ) -> List[uuid.UUID]:
        schedule = self.get_schedule(db, schedule_id)
        desired = _parse_ids(staff_ids, "staff_ids")
        with atomic(db):
            _require_users_with_roles(db, desired, (UserRole.STAFF, UserRole.ADMIN), "staff")
            _replace_links(db, schedule_panelists, "schedule_id", "staff_id", schedule.id, desired)
        logger.info("Schedule %s now has %d panelists", schedule.id, len(desired))
        return desired


group_service = GroupService()
