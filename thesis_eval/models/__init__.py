"""核心 SQLAlchemy 模型导出。"""

from thesis_eval.models.enums import (
    COUNTED_STATUSES,
    EvaluationStatus,
    NotificationType,
    UserRole,
)
from thesis_eval.models.user import User
from thesis_eval.models.rubric import RubricCriterion, RubricTemplate
from thesis_eval.models.thesis import (
    DefenseSchedule,
    ThesisGroup,
    group_members,
    schedule_panelists,
)
from thesis_eval.models.evaluation import Evaluation, EvaluationScore, StudentEvaluation
from thesis_eval.models.notification import Notification

__all__ = [
    "COUNTED_STATUSES",
    "DefenseSchedule",
    "Evaluation",
    "EvaluationScore",
    "EvaluationStatus",
    "Notification",
    "NotificationType",
    "RubricCriterion",
    "RubricTemplate",
    "StudentEvaluation",
    "ThesisGroup",
    "User",
    "UserRole",
    "group_members",
    "schedule_panelists",
]
