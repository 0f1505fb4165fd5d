"""评委评价与学生反馈的生命周期。

状态流转：pending → submitted → locked，locked 为终态。

状态迁移使用带条件的 UPDATE（``WHERE id = :id AND status = :from``），
状态与时间戳在同一条语句内变更；影响行数为 0 时重新读取当前状态，
区分 NotFound 与被拒绝的迁移。评委评价状态真正发生变化时，在提交前
通知该答辩小组的学生。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from thesis_eval.db import atomic
from thesis_eval.errors import (
    ConflictError,
    EvaluationEngineError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from thesis_eval.models import (
    DefenseSchedule,
    Evaluation,
    EvaluationScore,
    EvaluationStatus,
    RubricCriterion,
    RubricTemplate,
    StudentEvaluation,
    User,
    UserRole,
    group_members,
)
from thesis_eval.services.notifications import NotificationDispatcher, notification_dispatcher
from thesis_eval.services.policy import Actor, require_owner_or_admin, require_role
from thesis_eval.services.rubrics import latest_active_template_id
from thesis_eval.services.scores import ScoreStore, normalize_score_items, score_store
from thesis_eval.services.scoring import resolve_template_id
from thesis_eval.utils.identifiers import parse_uuid

logger = logging.getLogger(__name__)

SUBMIT = "submit"
LOCK = "lock"

# 允许的迁移：源状态 → 目标状态，按顺序尝试
TRANSITIONS: Dict[str, Dict[EvaluationStatus, EvaluationStatus]] = {
    SUBMIT: {
        EvaluationStatus.PENDING: EvaluationStatus.SUBMITTED,
        EvaluationStatus.SUBMITTED: EvaluationStatus.SUBMITTED,
    },
    LOCK: {
        EvaluationStatus.SUBMITTED: EvaluationStatus.LOCKED,
        EvaluationStatus.LOCKED: EvaluationStatus.LOCKED,
    },
}

# 被拒绝的迁移及其错误类型
REJECTIONS: Dict[str, Dict[EvaluationStatus, Type[EvaluationEngineError]]] = {
    SUBMIT: {EvaluationStatus.LOCKED: ForbiddenError},
    LOCK: {EvaluationStatus.PENDING: InvalidStateError},
}

_STAMPS = {
    EvaluationStatus.SUBMITTED: "submitted_at",
    EvaluationStatus.LOCKED: "locked_at",
}


def apply_transition(
    db: Session,
    model: Any,
    record_id: uuid.UUID,
    op: str,
    extra_values: Optional[Mapping[str, Any]] = None,
) -> bool:
    """执行一次状态迁移，不提交；返回状态是否真正发生变化。"""

    now = datetime.now(timezone.utc)
    for source, target in TRANSITIONS[op].items():
        values = {"status": target, _STAMPS[target]: now}
        if extra_values:
            values.update(extra_values)
        result = db.execute(
            update(model)
            .where(model.id == record_id, model.status == source)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return source != target

    current = db.scalar(select(model.status).where(model.id == record_id))
    if current is None:
        raise NotFoundError(f"{model.__name__} not found")
    error_cls = REJECTIONS[op].get(current, InvalidStateError)
    raise error_cls(
        f"Cannot {op} an evaluation that is {current.value}",
        details={"status": current.value},
    )


class EvaluationLifecycle:
    """评委评价：创建、提交、锁定、删除以及带状态检查的评分写入。"""

    def __init__(
        self,
        dispatcher: NotificationDispatcher = notification_dispatcher,
        scores: ScoreStore = score_store,
    ) -> None:
        self.dispatcher = dispatcher
        self.scores = scores

    def get(self, db: Session, evaluation_id: Any) -> Evaluation:
        evaluation = db.get(Evaluation, parse_uuid(evaluation_id, "evaluation_id"))
        if evaluation is None:
            raise NotFoundError("Evaluation not found")
        return evaluation

    def list_for_schedule(self, db: Session, schedule_id: Any) -> List[Evaluation]:
        parsed = parse_uuid(schedule_id, "schedule_id")
        stmt = (
            select(Evaluation)
            .where(Evaluation.schedule_id == parsed)
            .order_by(Evaluation.created_at.asc())
        )
        return list(db.scalars(stmt))

    def list_for_evaluator(self, db: Session, evaluator_id: Any) -> List[Evaluation]:
        parsed = parse_uuid(evaluator_id, "evaluator_id")
        stmt = (
            select(Evaluation)
            .where(Evaluation.evaluator_id == parsed)
            .order_by(Evaluation.created_at.desc())
        )
        return list(db.scalars(stmt))

    def create(
        self,
        db: Session,
        schedule_id: Any,
        evaluator_id: Any,
        template_id: Any = None,
    ) -> Optional[Evaluation]:
        """新建 pending 评价；同一评委对同一排期已存在评价时返回 ``None``。"""

        schedule = db.get(DefenseSchedule, parse_uuid(schedule_id, "schedule_id"))
        if schedule is None:
            raise NotFoundError("Defense schedule not found")
        evaluator = db.get(User, parse_uuid(evaluator_id, "evaluator_id"))
        if evaluator is None:
            raise NotFoundError("Evaluator not found")
        if evaluator.role not in (UserRole.STAFF, UserRole.ADMIN):
            raise InvalidArgumentError("Evaluator must be a staff member")

        if template_id is not None:
            pinned = parse_uuid(template_id, "template_id")
            if db.get(RubricTemplate, pinned) is None:
                raise NotFoundError("Rubric template not found")
        else:
            pinned = schedule.rubric_template_id or latest_active_template_id(db)

        existing = db.scalar(
            select(Evaluation.id).where(
                Evaluation.schedule_id == schedule.id,
                Evaluation.evaluator_id == evaluator.id,
            )
        )
        if existing is not None:
            return None

        evaluation = Evaluation(
            schedule_id=schedule.id,
            evaluator_id=evaluator.id,
            template_id=pinned,
            status=EvaluationStatus.PENDING,
        )
        db.add(evaluation)
        try:
            db.commit()
        except IntegrityError:
            # 并发创建同一分配
            db.rollback()
            logger.info(
                "Evaluation for schedule %s / evaluator %s already exists", schedule.id, evaluator.id
            )
            return None
        db.refresh(evaluation)
        logger.info("Created evaluation %s (template %s)", evaluation.id, pinned)
        return evaluation

    def _check_evaluator(self, actor: Actor, evaluation: Evaluation, action: str) -> None:
        require_role(actor, UserRole.STAFF, UserRole.ADMIN, action=action)
        require_owner_or_admin(actor, evaluation.evaluator_id, "modify")

    def submit(self, db: Session, actor: Actor, evaluation_id: Any) -> Evaluation:
        evaluation = self.get(db, evaluation_id)
        self._check_evaluator(actor, evaluation, "submit evaluations")
        return self._transition(db, evaluation.id, SUBMIT)

    def lock(self, db: Session, actor: Actor, evaluation_id: Any) -> Evaluation:
        require_role(actor, UserRole.STAFF, UserRole.ADMIN, action="lock evaluations")
        evaluation = self.get(db, evaluation_id)
        return self._transition(db, evaluation.id, LOCK)

    def _transition(self, db: Session, evaluation_id: uuid.UUID, op: str) -> Evaluation:
        with atomic(db):
            changed = apply_transition(db, Evaluation, evaluation_id, op)
            evaluation = db.get(Evaluation, evaluation_id, populate_existing=True)
            if changed:
                self.dispatcher.dispatch_status_change(db, evaluation, evaluation.status)
        db.refresh(evaluation)
        logger.info(
            "Evaluation %s %s (status=%s, changed=%s)", evaluation.id, op, evaluation.status.value, changed
        )
        return evaluation

    def delete(self, db: Session, actor: Actor, evaluation_id: Any) -> None:
        require_role(actor, UserRole.ADMIN, action="delete evaluations")
        evaluation = self.get(db, evaluation_id)
        with atomic(db):
            db.delete(evaluation)
        logger.info("Deleted evaluation %s", evaluation_id)

    def record_scores(
        self, db: Session, actor: Actor, evaluation_id: Any, items: Iterable[Mapping[str, Any]]
    ) -> List[EvaluationScore]:
        """批量写入评分；锁定后拒绝写入，评分项必须属于评价使用的模板。"""

        parsed = parse_uuid(evaluation_id, "evaluation_id")
        rows = normalize_score_items(items)
        with atomic(db):
            evaluation = db.scalar(
                select(Evaluation)
                .where(Evaluation.id == parsed)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if evaluation is None:
                raise NotFoundError("Evaluation not found")
            self._check_evaluator(actor, evaluation, "record scores")
            if evaluation.status == EvaluationStatus.LOCKED:
                raise ForbiddenError("Evaluation is locked; scores can no longer be changed")

            template_id = resolve_template_id(db, evaluation)
            criterion_ids = [criterion_id for criterion_id, _, _ in rows]
            if template_id is not None and criterion_ids:
                owners = dict(
                    db.execute(
                        select(RubricCriterion.id, RubricCriterion.template_id).where(
                            RubricCriterion.id.in_(criterion_ids)
                        )
                    ).all()
                )
                outside = sorted(
                    str(criterion_id)
                    for criterion_id in criterion_ids
                    if criterion_id in owners and owners[criterion_id] != template_id
                )
                if outside:
                    raise InvalidArgumentError(
                        "Criteria do not belong to the evaluation's rubric template",
                        details={"criterion_ids": outside, "template_id": str(template_id)},
                    )
            self.scores.write_scores(db, parsed, rows)
        logger.info("Recorded %d scores for evaluation %s", len(rows), parsed)
        return self.scores.list_scores(db, parsed)


class StudentEvaluationLifecycle:
    """学生答辩反馈。学生只能操作自己的记录，迁移不产生通知。"""

    def list_for_schedule(self, db: Session, schedule_id: Any) -> List[StudentEvaluation]:
        parsed = parse_uuid(schedule_id, "schedule_id")
        stmt = (
            select(StudentEvaluation)
            .where(StudentEvaluation.schedule_id == parsed)
            .order_by(StudentEvaluation.created_at.asc())
        )
        return list(db.scalars(stmt))

    def get_for_student(
        self, db: Session, schedule_id: Any, student_id: Any
    ) -> Optional[StudentEvaluation]:
        return db.scalar(
            select(StudentEvaluation).where(
                StudentEvaluation.schedule_id == parse_uuid(schedule_id, "schedule_id"),
                StudentEvaluation.student_id == parse_uuid(student_id, "student_id"),
            )
        )

    def get(self, db: Session, student_evaluation_id: Any) -> StudentEvaluation:
        row = db.get(StudentEvaluation, parse_uuid(student_evaluation_id, "student_evaluation_id"))
        if row is None:
            raise NotFoundError("Student evaluation not found")
        return row

    def _check_student(self, db: Session, actor: Actor, schedule_id: Any) -> DefenseSchedule:
        require_role(actor, UserRole.STUDENT, action="answer student evaluations")
        schedule = db.get(DefenseSchedule, parse_uuid(schedule_id, "schedule_id"))
        if schedule is None:
            raise NotFoundError("Defense schedule not found")
        member = db.scalar(
            select(group_members.c.student_id).where(
                group_members.c.group_id == schedule.group_id,
                group_members.c.student_id == actor.id,
            )
        )
        if member is None:
            raise ForbiddenError("You are not a member of this thesis group")
        return schedule

    @staticmethod
    def _validate_answers(answers: Any) -> Dict[str, Any]:
        if answers is None:
            return {}
        if not isinstance(answers, Mapping):
            raise InvalidArgumentError("answers must be an object")
        return dict(answers)

    def _own_row(self, db: Session, schedule_id: uuid.UUID, student_id: uuid.UUID):
        return db.scalar(
            select(StudentEvaluation)
            .where(
                StudentEvaluation.schedule_id == schedule_id,
                StudentEvaluation.student_id == student_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _insert(self, db: Session, row: StudentEvaluation) -> None:
        db.add(row)
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConflictError("Student evaluation was created concurrently; retry") from exc

    def save(
        self, db: Session, actor: Actor, schedule_id: Any, answers: Any
    ) -> StudentEvaluation:
        """保存草稿：替换 answers，仅限 pending 状态。"""

        schedule = self._check_student(db, actor, schedule_id)
        payload = self._validate_answers(answers)
        with atomic(db):
            row = self._own_row(db, schedule.id, actor.id)
            if row is None:
                row = StudentEvaluation(
                    schedule_id=schedule.id,
                    student_id=actor.id,
                    status=EvaluationStatus.PENDING,
                    answers=payload,
                )
                self._insert(db, row)
            elif row.status != EvaluationStatus.PENDING:
                raise InvalidStateError(
                    f"Cannot save a student evaluation that is {row.status.value}",
                    details={"status": row.status.value},
                )
            else:
                row.answers = payload
        db.refresh(row)
        return row

    def submit(
        self, db: Session, actor: Actor, schedule_id: Any, answers: Any = None
    ) -> StudentEvaluation:
        schedule = self._check_student(db, actor, schedule_id)
        payload = self._validate_answers(answers) if answers is not None else None
        with atomic(db):
            row = self._own_row(db, schedule.id, actor.id)
            if row is None:
                row = StudentEvaluation(
                    schedule_id=schedule.id,
                    student_id=actor.id,
                    status=EvaluationStatus.SUBMITTED,
                    answers=payload or {},
                    submitted_at=datetime.now(timezone.utc),
                )
                self._insert(db, row)
                row_id = row.id
            else:
                row_id = row.id
                extra = {"answers": payload} if payload is not None else None
                apply_transition(db, StudentEvaluation, row_id, SUBMIT, extra)
        row = db.get(StudentEvaluation, row_id, populate_existing=True)
        logger.info("Student %s submitted feedback for schedule %s", actor.id, schedule.id)
        return row

    def lock(self, db: Session, actor: Actor, student_evaluation_id: Any) -> StudentEvaluation:
        require_role(actor, UserRole.STAFF, UserRole.ADMIN, action="lock student evaluations")
        row = self.get(db, student_evaluation_id)
        row_id = row.id
        with atomic(db):
            apply_transition(db, StudentEvaluation, row_id, LOCK)
        return db.get(StudentEvaluation, row_id, populate_existing=True)

    def delete(self, db: Session, actor: Actor, student_evaluation_id: Any) -> None:
        require_role(actor, UserRole.ADMIN, action="delete student evaluations")
        row = self.get(db, student_evaluation_id)
        with atomic(db):
            db.delete(row)


evaluation_lifecycle = EvaluationLifecycle()
student_evaluation_lifecycle = StudentEvaluationLifecycle()
