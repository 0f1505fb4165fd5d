"""评分量表模型定义 - 模板与加权评分项。"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from thesis_eval.db import Base


class RubricTemplate(Base):
    """评分量表模板。

    同名模板通过 ``version`` 递增区分；允许多个模板同时处于 active 状态，
    未指定模板时取最近更新的 active 模板。
    """

    __tablename__ = "rubric_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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

    criteria: Mapped[List["RubricCriterion"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RubricCriterion.created_at",
    )

    def __repr__(self) -> str:
        return f"<RubricTemplate(id={self.id}, name={self.name}, version={self.version})>"


class RubricCriterion(Base):
    """模板下的单个评分项，带权重与分值区间。"""

    __tablename__ = "rubric_criteria"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("rubric_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # max_score > 0 由调用方保证，这里不做约束
    weight: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    min_score: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    max_score: Mapped[float] = mapped_column(Float, default=5.0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    template: Mapped[RubricTemplate] = relationship(back_populates="criteria")

    def __repr__(self) -> str:
        return f"<RubricCriterion(id={self.id}, criterion={self.criterion}, weight={self.weight})>"
