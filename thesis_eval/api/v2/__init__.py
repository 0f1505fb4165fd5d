"""API v2 路由包入口。"""

from fastapi import APIRouter

from thesis_eval.api.v2 import (
    evaluations,
    groups,
    notifications,
    rankings,
    rubric_criteria,
    rubric_templates,
    schedules,
    student_evaluations,
    student_summary,
)

router = APIRouter(prefix="/api/v2")

# 注册子路由
router.include_router(rubric_templates.router, prefix="/rubric-templates", tags=["评分模板"])
router.include_router(rubric_criteria.router, prefix="/rubric-criteria", tags=["评分项"])
router.include_router(evaluations.router, prefix="/evaluations", tags=["评委评价"])
router.include_router(student_evaluations.router, prefix="/student-evaluations", tags=["学生反馈"])
router.include_router(
    student_summary.router, prefix="/student/evaluation-summary", tags=["学生反馈"]
)
router.include_router(rankings.router, prefix="/rankings", tags=["排名"])
router.include_router(groups.router, prefix="/groups", tags=["论文小组"])
router.include_router(schedules.router, prefix="/schedules", tags=["答辩排期"])
router.include_router(notifications.router, prefix="/notifications", tags=["通知"])
