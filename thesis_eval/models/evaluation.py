"""评价与评分模型定义 - 评委评价、逐项得分、学生反馈。"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from thesis_eval.db import Base
from thesis_eval.models.enums import EvaluationStatus, value_enum


class Evaluation(Base):
    """一位评委对一次答辩排期的评分。

    同一 (schedule_id, evaluator_id) 只允许一条记录。``template_id`` 在创建时
    固定，避免模板变更后历史评价被错误地按其他模板重算。
    """

    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("schedule_id", "evaluator_id", name="evaluations_unique_assignment_ux"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("defense_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    evaluator_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("rubric_templates.id", ondelete="SET NULL")
    )
    status: Mapped[EvaluationStatus] = mapped_column(
        value_enum(EvaluationStatus), default=EvaluationStatus.PENDING, nullable=False
    )

    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    schedule = relationship("DefenseSchedule")
    evaluator = relationship("User", foreign_keys=[evaluator_id])
    scores: Mapped[List["EvaluationScore"]] = relationship(
        back_populates="evaluation", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Evaluation(id={self.id}, schedule_id={self.schedule_id}, status={self.status.value})>"


class EvaluationScore(Base):
    """逐项得分，以 (evaluation_id, criterion_id) 为主键。"""

    __tablename__ = "evaluation_scores"

    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("evaluations.id", ondelete="CASCADE"), primary_key=True
    )
    criterion_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("rubric_criteria.id", ondelete="CASCADE"), primary_key=True
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text)

    evaluation: Mapped[Evaluation] = relationship(back_populates="scores")
    criterion = relationship("RubricCriterion")

    def __repr__(self) -> str:
        return f"<EvaluationScore(evaluation_id={self.evaluation_id}, criterion_id={self.criterion_id}, score={self.score})>"


class StudentEvaluation(Base):
    """学生对答辩的反馈问卷，生命周期独立于评委评价。"""

    __tablename__ = "student_evaluations"
    __table_args__ = (
        UniqueConstraint("schedule_id", "student_id", name="student_evaluations_unique_ux"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("defense_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[EvaluationStatus] = mapped_column(
        value_enum(EvaluationStatus), default=EvaluationStatus.PENDING, nullable=False
    )

    # 问卷答案，结构由前端表单决定
    answers: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    schedule = relationship("DefenseSchedule")
    student = relationship("User", foreign_keys=[student_id])

    def __repr__(self) -> str:
        return f"<StudentEvaluation(id={self.id}, schedule_id={self.schedule_id}, status={self.status.value})>"
