"""论文小组 API - 创建与成员维护。"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import require_admin, require_staff
from thesis_eval.services.groups import group_service
from thesis_eval.services.policy import Actor

router = APIRouter()


# === Schemas ===

class GroupCreate(BaseModel):
    title: str
    program: Optional[str] = None
    term: Optional[str] = None
    adviser_id: Optional[str] = None


class GroupResponse(BaseModel):
    id: UUID
    title: str
    program: Optional[str]
    term: Optional[str]
    adviser_id: Optional[UUID]
    created_at: datetime

    class Config:
        from_attributes = True


class MemberUpdate(BaseModel):
    student_ids: List[str] = Field(default_factory=list)


class MemberListResponse(BaseModel):
    group_id: UUID
    student_ids: List[UUID]


# === API 端点 ===

@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreate,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    return group_service.create_group(
        db,
        title=payload.title,
        program=payload.program,
        term=payload.term,
        adviser_id=payload.adviser_id,
    )


@router.get("/{group_id}/members", response_model=MemberListResponse)
def list_members(
    group_id: str,
    db: Session = Depends(get_db),
    _staff: Actor = Depends(require_staff),
):
    group = group_service.get_group(db, group_id)
    return {"group_id": group.id, "student_ids": group_service.list_group_members(db, group.id)}


@router.put("/{group_id}/members", response_model=MemberListResponse)
def replace_members(
    group_id: str,
    payload: MemberUpdate,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    """整体替换小组成员，只增删有变化的部分。"""

    group = group_service.get_group(db, group_id)
    student_ids = group_service.set_group_members(db, group.id, payload.student_ids)
    return {"group_id": group.id, "student_ids": student_ids}
