"""Read models produced by the scoring aggregator and ranking engine.

Percentages are always derived from current criteria, weights and
scores; none of these models is ever persisted.
"""

from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class CriterionSpec(BaseModel):
    """Minimal view of a rubric criterion needed for weighting."""

    id: Union[UUID, str]
    weight: float
    max_score: float


class WeightedResult(BaseModel):
    """Outcome of the weighted-percentage computation."""

    weighted_score: float
    weighted_max: float
    overall_percentage: float
    criteria_count: int
    criteria_scored: int


class EvaluationPercentage(WeightedResult):
    """Aggregated percentage of a single panel evaluation."""

    evaluation_id: UUID
    schedule_id: UUID
    group_id: UUID
    evaluator_id: UUID
    status: str
    template_id: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    created_at: datetime


class GroupRanking(BaseModel):
    """One row of the thesis group ranking."""

    group_id: UUID
    group_title: str
    group_percentage: Optional[float] = None
    submitted_evaluations: int = 0
    latest_defense_at: Optional[datetime] = None
    rank: int = 0


class GroupRankingList(BaseModel):
    rankings: List[GroupRanking] = Field(default_factory=list)
    total: int = 0


class CriterionScore(BaseModel):
    """One scored criterion as shown to students."""

    criterion_id: UUID
    criterion: str
    score: float
    max_score: float
    comment: Optional[str] = None


class EvaluationSummary(EvaluationPercentage):
    scores: List[CriterionScore] = Field(default_factory=list)


class ScheduleSummary(BaseModel):
    """Submitted and locked panel evaluations of one defense."""

    schedule_id: UUID
    group_id: UUID
    group_title: str
    scheduled_at: datetime
    room: Optional[str] = None
    average_percentage: Optional[float] = None
    evaluations: List[EvaluationSummary] = Field(default_factory=list)


class StudentEvaluationSummary(BaseModel):
    student_id: UUID
    schedules: List[ScheduleSummary] = Field(default_factory=list)
    total: int = 0
