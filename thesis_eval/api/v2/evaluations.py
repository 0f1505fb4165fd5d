"""评委评价 API - 创建、提交、锁定、逐项评分与百分比。"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import get_current_actor, require_admin, require_staff
from thesis_eval.models import Evaluation, EvaluationStatus
from thesis_eval.schemas.scoring import EvaluationPercentage
from thesis_eval.services.lifecycle import evaluation_lifecycle
from thesis_eval.services.policy import Actor, require_owner_or_admin
from thesis_eval.services.scores import score_store
from thesis_eval.services.scoring import scoring_aggregator
from thesis_eval.utils.identifiers import parse_uuid

router = APIRouter()


# === Schemas ===

class EvaluationCreate(BaseModel):
    schedule_id: str
    evaluator_id: str
    template_id: Optional[str] = None


class EvaluationResponse(BaseModel):
    id: UUID
    schedule_id: UUID
    evaluator_id: UUID
    template_id: Optional[UUID]
    status: EvaluationStatus
    submitted_at: Optional[datetime]
    locked_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class EvaluationCreateResult(BaseModel):
    created: bool
    evaluation: EvaluationResponse


class EvaluationListResponse(BaseModel):
    evaluations: List[EvaluationResponse]
    total: int


class ScoreResponse(BaseModel):
    evaluation_id: UUID
    criterion_id: UUID
    score: float
    comment: Optional[str]

    class Config:
        from_attributes = True


class ScoreBatch(BaseModel):
    # 每项：{criterion_id | criterionId, score, comment?}
    scores: List[Dict[str, Any]] = Field(default_factory=list)


class ScoreListResponse(BaseModel):
    scores: List[ScoreResponse]
    total: int


# === API 端点 ===

@router.post("", response_model=EvaluationCreateResult)
def create_evaluation(
    payload: EvaluationCreate,
    response: Response,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    """分配评委。已存在的分配不会重复创建，直接返回原记录。"""

    evaluation = evaluation_lifecycle.create(
        db, payload.schedule_id, payload.evaluator_id, payload.template_id
    )
    if evaluation is not None:
        response.status_code = status.HTTP_201_CREATED
        return {"created": True, "evaluation": evaluation}

    existing = db.scalar(
        select(Evaluation).where(
            Evaluation.schedule_id == parse_uuid(payload.schedule_id, "schedule_id"),
            Evaluation.evaluator_id == parse_uuid(payload.evaluator_id, "evaluator_id"),
        )
    )
    return {"created": False, "evaluation": existing}


@router.get("", response_model=EvaluationListResponse)
def list_evaluations(
    schedule_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """指定排期时列出该排期全部评价，否则列出当前评委自己的评价。"""

    if schedule_id is not None:
        evaluations = evaluation_lifecycle.list_for_schedule(db, schedule_id)
    else:
        evaluations = evaluation_lifecycle.list_for_evaluator(db, actor.id)
    return {"evaluations": evaluations, "total": len(evaluations)}


@router.get("/{evaluation_id}", response_model=EvaluationResponse)
def get_evaluation(
    evaluation_id: str,
    db: Session = Depends(get_db),
    _staff: Actor = Depends(require_staff),
):
    return evaluation_lifecycle.get(db, evaluation_id)


@router.post("/{evaluation_id}/submit", response_model=EvaluationResponse)
def submit_evaluation(
    evaluation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return evaluation_lifecycle.submit(db, actor, evaluation_id)


@router.post("/{evaluation_id}/lock", response_model=EvaluationResponse)
def lock_evaluation(
    evaluation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return evaluation_lifecycle.lock(db, actor, evaluation_id)


@router.delete("/{evaluation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_evaluation(
    evaluation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    evaluation_lifecycle.delete(db, actor, evaluation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{evaluation_id}/scores", response_model=ScoreListResponse)
def list_scores(
    evaluation_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    evaluation = evaluation_lifecycle.get(db, evaluation_id)
    require_owner_or_admin(actor, evaluation.evaluator_id, "view")
    scores = score_store.list_scores(db, evaluation.id)
    return {"scores": scores, "total": len(scores)}


@router.put("/{evaluation_id}/scores", response_model=ScoreListResponse)
def put_scores(
    evaluation_id: str,
    payload: ScoreBatch,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """批量写入评分，整批成功或整批回滚。"""

    scores = evaluation_lifecycle.record_scores(db, actor, evaluation_id, payload.scores)
    return {"scores": scores, "total": len(scores)}


@router.get("/{evaluation_id}/percentage", response_model=EvaluationPercentage)
def get_percentage(
    evaluation_id: str,
    db: Session = Depends(get_db),
    _staff: Actor = Depends(require_staff),
):
    return scoring_aggregator.evaluation_percentage(db, evaluation_id)
