"""学生查看本组答辩评价结果。

只返回 submitted/locked 的评委评价，附带逐项得分、评语与加权百分比；
pending 评价对学生不可见。
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from thesis_eval.errors import ForbiddenError, NotFoundError
from thesis_eval.models import (
    COUNTED_STATUSES,
    DefenseSchedule,
    Evaluation,
    EvaluationScore,
    RubricCriterion,
    ThesisGroup,
    UserRole,
    group_members,
)
from thesis_eval.schemas.scoring import (
    CriterionScore,
    EvaluationSummary,
    ScheduleSummary,
    StudentEvaluationSummary,
)
from thesis_eval.services.policy import Actor, require_role
from thesis_eval.services.ranking import average_percentage
from thesis_eval.services.scoring import ScoringAggregator, scoring_aggregator
from thesis_eval.utils.identifiers import parse_uuid

MAX_SCHEDULES = 20


class StudentSummaryService:
    def __init__(self, aggregator: ScoringAggregator = scoring_aggregator) -> None:
        self.aggregator = aggregator

    def summary(
        self, db: Session, actor: Actor, schedule_id: Any = None, limit: int = 10
    ) -> StudentEvaluationSummary:
        """当前学生所在小组的答辩评价汇总，按答辩时间倒序。"""

        require_role(actor, UserRole.STUDENT, action="view evaluation summaries")
        group_ids = set(
            db.scalars(
                select(group_members.c.group_id).where(group_members.c.student_id == actor.id)
            )
        )

        stmt = select(DefenseSchedule, ThesisGroup.title).join(
            ThesisGroup, ThesisGroup.id == DefenseSchedule.group_id
        )
        if schedule_id is not None:
            parsed = parse_uuid(schedule_id, "schedule_id")
            schedule = db.get(DefenseSchedule, parsed)
            if schedule is None:
                raise NotFoundError("Defense schedule not found")
            if schedule.group_id not in group_ids:
                raise ForbiddenError("You are not a member of this thesis group")
            stmt = stmt.where(DefenseSchedule.id == parsed)
        elif not group_ids:
            return StudentEvaluationSummary(student_id=actor.id)
        else:
            stmt = (
                stmt.where(DefenseSchedule.group_id.in_(group_ids))
                .order_by(DefenseSchedule.scheduled_at.desc())
                .limit(min(MAX_SCHEDULES, max(1, limit)))
            )

        schedules = db.execute(stmt).all()
        schedule_ids = [schedule.id for schedule, _ in schedules]
        rows = self.aggregator.load_rows(
            db,
            Evaluation.schedule_id.in_(schedule_ids),
            Evaluation.status.in_(COUNTED_STATUSES),
        )
        percentages = self.aggregator.percentages_for(db, rows)
        scores = self._scores_by_evaluation(db, [row.evaluation_id for row in percentages])

        by_schedule: Dict[uuid.UUID, List[EvaluationSummary]] = defaultdict(list)
        for row in percentages:
            by_schedule[row.schedule_id].append(
                EvaluationSummary(**row.model_dump(), scores=scores.get(row.evaluation_id, []))
            )

        summaries = []
        for schedule, group_title in schedules:
            evaluations = by_schedule.get(schedule.id, [])
            summaries.append(
                ScheduleSummary(
                    schedule_id=schedule.id,
                    group_id=schedule.group_id,
                    group_title=group_title,
                    scheduled_at=schedule.scheduled_at,
                    room=schedule.room,
                    average_percentage=average_percentage(
                        item.overall_percentage for item in evaluations
                    ),
                    evaluations=evaluations,
                )
            )
        return StudentEvaluationSummary(
            student_id=actor.id, schedules=summaries, total=len(summaries)
        )

    def _scores_by_evaluation(
        self, db: Session, evaluation_ids: List[uuid.UUID]
    ) -> Dict[uuid.UUID, List[CriterionScore]]:
        grouped: Dict[uuid.UUID, List[CriterionScore]] = defaultdict(list)
        if not evaluation_ids:
            return grouped
        stmt = (
            select(
                EvaluationScore.evaluation_id,
                EvaluationScore.criterion_id,
                RubricCriterion.criterion,
                EvaluationScore.score,
                RubricCriterion.max_score,
                EvaluationScore.comment,
            )
            .join(RubricCriterion, RubricCriterion.id == EvaluationScore.criterion_id)
            .where(EvaluationScore.evaluation_id.in_(evaluation_ids))
            .order_by(RubricCriterion.created_at.asc())
        )
        for evaluation_id, criterion_id, label, score, max_score, comment in db.execute(stmt):
            grouped[evaluation_id].append(
                CriterionScore(
                    criterion_id=criterion_id,
                    criterion=label,
                    score=score,
                    max_score=max_score,
                    comment=comment,
                )
            )
        return grouped


student_summary_service = StudentSummaryService()
