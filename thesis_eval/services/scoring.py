"""加权百分比计算。

对每条评价::

    weighted_score = Σ (score(c) 若已评分 否则 0) × weight(c)
    weighted_max   = Σ max_score(c) × weight(c)
    overall_percentage = round(weighted_score / weighted_max × 100, 2)   (weighted_max > 0)
                       = 0                                               (其他情况)

未评分的评分项分子记 0，但仍计入分母：未完成的评价按缺项得零处理，
而不是从平均中剔除。结果每次读取时根据当前模板、权重与得分重新计算，
不落库，因此修改模板会追溯影响历史评价的百分比。
"""

from __future__ import annotations

import uuid
from collections import Counter, defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from thesis_eval.errors import NotFoundError
from thesis_eval.models import DefenseSchedule, Evaluation, EvaluationScore, RubricCriterion
from thesis_eval.schemas.scoring import CriterionSpec, EvaluationPercentage, WeightedResult
from thesis_eval.services.rubrics import latest_active_template_id
from thesis_eval.utils.identifiers import parse_uuid
from thesis_eval.utils.numbers import round_half_up, to_decimal

# (evaluation, group_id, schedule 绑定的模板)
EvaluationRow = Tuple[Evaluation, uuid.UUID, Optional[uuid.UUID]]


def compute_weighted_percentage(
    criteria: Iterable[Any], scores: Mapping[Any, Any]
) -> WeightedResult:
    """按模板评分项计算加权百分比。

    ``criteria`` 中的元素需提供 ``id``/``weight``/``max_score`` 属性；
    ``scores`` 以评分项 id 为键。不属于该模板的得分会被忽略。
    """

    weighted_score = Decimal(0)
    weighted_max = Decimal(0)
    criteria_count = 0
    criteria_scored = 0

    for criterion in criteria:
        weight = to_decimal(criterion.weight)
        criteria_count += 1
        score = scores.get(criterion.id)
        if score is not None:
            criteria_scored += 1
            weighted_score += to_decimal(score) * weight
        weighted_max += to_decimal(criterion.max_score) * weight

    if weighted_max > 0:
        percentage = round_half_up(weighted_score / weighted_max * 100, 2)
    else:
        percentage = Decimal(0)

    return WeightedResult(
        weighted_score=float(round_half_up(weighted_score, 3)),
        weighted_max=float(round_half_up(weighted_max, 3)),
        overall_percentage=float(percentage),
        criteria_count=criteria_count,
        criteria_scored=criteria_scored,
    )


def choose_template_id(
    explicit: Optional[uuid.UUID],
    scored_template_ids: Sequence[uuid.UUID],
    schedule_template_id: Optional[uuid.UUID],
    fallback: Optional[uuid.UUID],
) -> Optional[uuid.UUID]:
    """按优先级确定评价使用的模板。

    1. 评价创建时固定的模板；
    2. 已评分评分项所属的模板（多个时取出现次数最多者）；
    3. 答辩排期绑定的模板；
    4. 最近更新的 active 模板。
    """

    if explicit is not None:
        return explicit
    if scored_template_ids:
        return Counter(scored_template_ids).most_common(1)[0][0]
    if schedule_template_id is not None:
        return schedule_template_id
    return fallback


def resolve_template_id(db: Session, evaluation: Evaluation) -> Optional[uuid.UUID]:
    if evaluation.template_id is not None:
        return evaluation.template_id
    scored = list(
        db.scalars(
            select(RubricCriterion.template_id)
            .join(EvaluationScore, EvaluationScore.criterion_id == RubricCriterion.id)
            .where(EvaluationScore.evaluation_id == evaluation.id)
        )
    )
    schedule_template = db.scalar(
        select(DefenseSchedule.rubric_template_id).where(
            DefenseSchedule.id == evaluation.schedule_id
        )
    )
    fallback = None
    if not scored and schedule_template is None:
        fallback = latest_active_template_id(db)
    return choose_template_id(None, scored, schedule_template, fallback)


class ScoringAggregator:
    """评价百分比读取：单条、按排期、批量。"""

    def evaluation_percentage(self, db: Session, evaluation_id: Any) -> EvaluationPercentage:
        parsed = parse_uuid(evaluation_id, "evaluation_id")
        rows = self.load_rows(db, Evaluation.id == parsed)
        if not rows:
            raise NotFoundError("Evaluation not found")
        return self.percentages_for(db, rows)[0]

    def schedule_percentages(self, db: Session, schedule_id: Any) -> List[EvaluationPercentage]:
        parsed = parse_uuid(schedule_id, "schedule_id")
        return self.percentages_for(db, self.load_rows(db, Evaluation.schedule_id == parsed))

    def percentages_for(
        self, db: Session, rows: Sequence[EvaluationRow]
    ) -> List[EvaluationPercentage]:
        if not rows:
            return []

        evaluation_ids = [evaluation.id for evaluation, _, _ in rows]
        scores_by_evaluation: Dict[uuid.UUID, Dict[uuid.UUID, float]] = defaultdict(dict)
        scored_templates: Dict[uuid.UUID, List[uuid.UUID]] = defaultdict(list)
        score_rows = db.execute(
            select(
                EvaluationScore.evaluation_id,
                EvaluationScore.criterion_id,
                EvaluationScore.score,
                RubricCriterion.template_id,
            )
            .join(RubricCriterion, RubricCriterion.id == EvaluationScore.criterion_id)
            .where(EvaluationScore.evaluation_id.in_(evaluation_ids))
        ).all()
        for evaluation_id, criterion_id, score, template_id in score_rows:
            scores_by_evaluation[evaluation_id][criterion_id] = score
            scored_templates[evaluation_id].append(template_id)

        fallback = latest_active_template_id(db)
        criteria_cache: Dict[uuid.UUID, List[CriterionSpec]] = {}
        results: List[EvaluationPercentage] = []

        for evaluation, group_id, schedule_template_id in rows:
            template_id = choose_template_id(
                evaluation.template_id,
                scored_templates.get(evaluation.id, []),
                schedule_template_id,
                fallback,
            )
            criteria: List[CriterionSpec] = []
            if template_id is not None:
                if template_id not in criteria_cache:
                    criteria_cache[template_id] = [
                        CriterionSpec(id=criterion_id, weight=weight, max_score=max_score)
                        for criterion_id, weight, max_score in db.execute(
                            select(
                                RubricCriterion.id, RubricCriterion.weight, RubricCriterion.max_score
                            ).where(RubricCriterion.template_id == template_id)
                        )
                    ]
                criteria = criteria_cache[template_id]

            result = compute_weighted_percentage(criteria, scores_by_evaluation.get(evaluation.id, {}))
            results.append(
                EvaluationPercentage(
                    **result.model_dump(),
                    evaluation_id=evaluation.id,
                    schedule_id=evaluation.schedule_id,
                    group_id=group_id,
                    evaluator_id=evaluation.evaluator_id,
                    status=evaluation.status.value,
                    template_id=template_id,
                    submitted_at=evaluation.submitted_at,
                    locked_at=evaluation.locked_at,
                    created_at=evaluation.created_at,
                )
            )
        return results

    def load_rows(self, db: Session, *criteria) -> List[EvaluationRow]:
        stmt = (
            select(Evaluation, DefenseSchedule.group_id, DefenseSchedule.rubric_template_id)
            .join(DefenseSchedule, DefenseSchedule.id == Evaluation.schedule_id)
            .where(*criteria)
            .order_by(Evaluation.created_at.asc())
        )
        return [tuple(row) for row in db.execute(stmt).all()]


scoring_aggregator = ScoringAggregator()
