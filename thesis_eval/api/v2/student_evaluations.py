"""学生答辩反馈 API。"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import get_current_actor, require_staff, require_student
from thesis_eval.errors import NotFoundError
from thesis_eval.models import EvaluationStatus
from thesis_eval.services.lifecycle import student_evaluation_lifecycle
from thesis_eval.services.policy import Actor

router = APIRouter()


# === Schemas ===

class StudentAnswers(BaseModel):
    answers: Optional[Dict[str, Any]] = None


class StudentEvaluationResponse(BaseModel):
    id: UUID
    schedule_id: UUID
    student_id: UUID
    status: EvaluationStatus
    answers: Dict[str, Any]
    submitted_at: Optional[datetime]
    locked_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StudentEvaluationListResponse(BaseModel):
    student_evaluations: List[StudentEvaluationResponse]
    total: int


# === API 端点 ===

@router.get("", response_model=StudentEvaluationListResponse)
def list_student_evaluations(
    schedule_id: str,
    db: Session = Depends(get_db),
    _staff: Actor = Depends(require_staff),
):
    rows = student_evaluation_lifecycle.list_for_schedule(db, schedule_id)
    return {"student_evaluations": rows, "total": len(rows)}


@router.get("/{schedule_id}/mine", response_model=StudentEvaluationResponse)
def get_my_student_evaluation(
    schedule_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_student),
):
    row = student_evaluation_lifecycle.get_for_student(db, schedule_id, actor.id)
    if row is None:
        raise NotFoundError("Student evaluation not found")
    return row


@router.put("/{schedule_id}/mine", response_model=StudentEvaluationResponse)
def save_my_student_evaluation(
    schedule_id: str,
    payload: StudentAnswers,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """保存草稿（仅 pending 状态）。"""

    return student_evaluation_lifecycle.save(db, actor, schedule_id, payload.answers)


@router.post("/{schedule_id}/submit", response_model=StudentEvaluationResponse)
def submit_my_student_evaluation(
    schedule_id: str,
    payload: Optional[StudentAnswers] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    answers = payload.answers if payload is not None else None
    return student_evaluation_lifecycle.submit(db, actor, schedule_id, answers)


@router.post("/{student_evaluation_id}/lock", response_model=StudentEvaluationResponse)
def lock_student_evaluation(
    student_evaluation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return student_evaluation_lifecycle.lock(db, actor, student_evaluation_id)


@router.delete("/{student_evaluation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_student_evaluation(
    student_evaluation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    student_evaluation_lifecycle.delete(db, actor, student_evaluation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
