"""学生评价汇总 API。"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import require_student
from thesis_eval.schemas.scoring import StudentEvaluationSummary
from thesis_eval.services.policy import Actor
from thesis_eval.services.summary import MAX_SCHEDULES, student_summary_service

router = APIRouter()


@router.get("", response_model=StudentEvaluationSummary)
def get_evaluation_summary(
    schedule_id: Optional[str] = None,
    limit: int = Query(default=10, ge=1, le=MAX_SCHEDULES),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_student),
):
    """本组已提交/已锁定的评委评价，含逐项得分与百分比。"""

    return student_summary_service.summary(db, actor, schedule_id=schedule_id, limit=limit)
