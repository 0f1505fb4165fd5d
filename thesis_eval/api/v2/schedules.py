"""答辩排期 API - 创建、评委维护与排期内评价百分比。"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import require_admin, require_staff
from thesis_eval.schemas.scoring import EvaluationPercentage
from thesis_eval.services.groups import group_service
from thesis_eval.services.policy import Actor
from thesis_eval.services.scoring import scoring_aggregator

router = APIRouter()


# === Schemas ===

class ScheduleCreate(BaseModel):
    group_id: str
    scheduled_at: datetime
    room: Optional[str] = None
    rubric_template_id: Optional[str] = None


class ScheduleResponse(BaseModel):
    id: UUID
    group_id: UUID
    scheduled_at: datetime
    room: Optional[str]
    status: str
    rubric_template_id: Optional[UUID]
    created_at: datetime

    class Config:
        from_attributes = True


class PanelistUpdate(BaseModel):
    staff_ids: List[str] = Field(default_factory=list)


class PanelistListResponse(BaseModel):
    schedule_id: UUID
    staff_ids: List[UUID]


class SchedulePercentageList(BaseModel):
    evaluations: List[EvaluationPercentage]
    total: int


# === API 端点 ===

@router.post("", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleCreate,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    """未指定 ``rubric_template_id`` 时绑定最近更新的 active 模板。"""

    return group_service.create_schedule(
        db,
        group_id=payload.group_id,
        scheduled_at=payload.scheduled_at,
        room=payload.room,
        rubric_template_id=payload.rubric_template_id,
    )


@router.get("/{schedule_id}/panelists", response_model=PanelistListResponse)
def list_panelists(
    schedule_id: str,
    db: Session = Depends(get_db),
    _staff: Actor = Depends(require_staff),
):
    schedule = group_service.get_schedule(db, schedule_id)
    return {
        "schedule_id": schedule.id,
        "staff_ids": group_service.list_schedule_panelists(db, schedule.id),
    }


@router.put("/{schedule_id}/panelists", response_model=PanelistListResponse)
def replace_panelists(
    schedule_id: str,
    payload: PanelistUpdate,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    schedule = group_service.get_schedule(db, schedule_id)
    staff_ids = group_service.set_schedule_panelists(db, schedule.id, payload.staff_ids)
    return {"schedule_id": schedule.id, "staff_ids": staff_ids}


@router.get("/{schedule_id}/percentages", response_model=SchedulePercentageList)
def list_schedule_percentages(
    schedule_id: str,
    db: Session = Depends(get_db),
    _staff: Actor = Depends(require_staff),
):
    rows = scoring_aggregator.schedule_percentages(db, schedule_id)
    return {"evaluations": rows, "total": len(rows)}
