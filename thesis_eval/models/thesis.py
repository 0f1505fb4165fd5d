"""论文小组与答辩排期模型定义。"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from thesis_eval.db import Base
from thesis_eval.models.user import User


# 小组成员（学生）多对多关联
group_members = Table(
    "group_members",
    Base.metadata,
    Column("group_id", ForeignKey("thesis_groups.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

# 答辩评委（教职工）多对多关联
schedule_panelists = Table(
    "schedule_panelists",
    Base.metadata,
    Column("schedule_id", ForeignKey("defense_schedules.id", ondelete="CASCADE"), primary_key=True),
    Column("staff_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class ThesisGroup(Base):
    """论文小组。"""

    __tablename__ = "thesis_groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    program: Mapped[Optional[str]] = mapped_column(String(255))
    term: Mapped[Optional[str]] = mapped_column(String(100))
    adviser_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

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

    adviser = relationship("User", foreign_keys=[adviser_id])
    members: Mapped[List[User]] = relationship(secondary=group_members)
    schedules: Mapped[List["DefenseSchedule"]] = relationship(
        back_populates="group", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<ThesisGroup(id={self.id}, title={self.title})>"


class DefenseSchedule(Base):
    """一次答辩排期，可绑定评分量表模板。"""

    __tablename__ = "defense_schedules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("thesis_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    room: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(32), default="scheduled", nullable=False)
    rubric_template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("rubric_templates.id", ondelete="SET NULL"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    group: Mapped[ThesisGroup] = relationship(back_populates="schedules")
    panelists: Mapped[List[User]] = relationship(secondary=schedule_panelists)
    rubric_template = relationship("RubricTemplate")

    def __repr__(self) -> str:
        return f"<DefenseSchedule(id={self.id}, group_id={self.group_id}, scheduled_at={self.scheduled_at})>"
