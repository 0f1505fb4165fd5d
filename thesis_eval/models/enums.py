"""评分引擎枚举定义 - 角色、评价状态、通知类型。"""

import enum
from typing import Type

from sqlalchemy import Enum


class UserRole(str, enum.Enum):
    """用户角色。staff 同时涵盖指导教师与答辩评委。"""
    STUDENT = "student"
    STAFF = "staff"
    ADMIN = "admin"


class EvaluationStatus(str, enum.Enum):
    """评价生命周期：pending → submitted → locked，locked 为终态。"""
    PENDING = "pending"
    SUBMITTED = "submitted"
    LOCKED = "locked"


# 计入小组排名的状态
COUNTED_STATUSES = (EvaluationStatus.SUBMITTED, EvaluationStatus.LOCKED)


class NotificationType(str, enum.Enum):
    GENERAL = "general"
    EVALUATION_SUBMITTED = "evaluation_submitted"
    EVALUATION_LOCKED = "evaluation_locked"


def value_enum(enum_cls: Type[enum.Enum]) -> Enum:
    """以枚举值（小写字符串）而非成员名入库，便于与 SQL 迁移脚本互通。"""

    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )
