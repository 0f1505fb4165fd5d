import uuid

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import make_group, make_template, make_user, run_concurrently
from thesis_eval.errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from thesis_eval.models import (
    Evaluation,
    EvaluationScore,
    EvaluationStatus,
    Notification,
    NotificationType,
    UserRole,
)
from thesis_eval.services.lifecycle import evaluation_lifecycle, student_evaluation_lifecycle
from thesis_eval.services.policy import Actor


def _actor(user) -> Actor:
    return Actor(id=user.id, role=user.role)


@pytest.fixture()
def setup(session, staff, student):
    template, criteria = make_template(session, [(1, 5), (1, 5)])
    group, schedule = make_group(session, "Group A", students=[student], template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)
    return template, criteria, schedule, evaluation


def test_create_pins_schedule_template_and_is_idempotent(session, staff, setup) -> None:
    template, _, schedule, evaluation = setup
    assert evaluation.status == EvaluationStatus.PENDING
    assert evaluation.template_id == template.id

    assert evaluation_lifecycle.create(session, schedule.id, staff.id) is None
    assert session.query(Evaluation).count() == 1


def test_create_validates_inputs(session, student, setup) -> None:
    _, _, schedule, _ = setup
    with pytest.raises(NotFoundError):
        evaluation_lifecycle.create(session, uuid.uuid4(), student.id)
    with pytest.raises(InvalidArgumentError):
        evaluation_lifecycle.create(session, schedule.id, student.id)
    with pytest.raises(InvalidArgumentError):
        evaluation_lifecycle.create(session, "bad-id", student.id)


def test_create_with_explicit_template(session, other_staff, setup) -> None:
    _, _, schedule, _ = setup
    other, _ = make_template(session, [(1, 5)], name="Other")
    evaluation = evaluation_lifecycle.create(session, schedule.id, other_staff.id, other.id)
    assert evaluation.template_id == other.id


def test_submit_then_lock(session, staff, admin, setup) -> None:
    evaluation = setup[3]

    submitted = evaluation_lifecycle.submit(session, _actor(staff), evaluation.id)
    assert submitted.status == EvaluationStatus.SUBMITTED
    assert submitted.submitted_at is not None

    locked = evaluation_lifecycle.lock(session, _actor(admin), evaluation.id)
    assert locked.status == EvaluationStatus.LOCKED
    assert locked.locked_at is not None


def test_lock_from_pending_is_invalid_state(session, admin, setup) -> None:
    evaluation = setup[3]
    with pytest.raises(InvalidStateError):
        evaluation_lifecycle.lock(session, _actor(admin), evaluation.id)
    assert evaluation_lifecycle.get(session, evaluation.id).status == EvaluationStatus.PENDING


def test_locked_is_terminal(session, staff, setup) -> None:
    evaluation = setup[3]
    evaluation_lifecycle.submit(session, _actor(staff), evaluation.id)
    evaluation_lifecycle.lock(session, _actor(staff), evaluation.id)

    with pytest.raises(ForbiddenError):
        evaluation_lifecycle.submit(session, _actor(staff), evaluation.id)

    # 重复锁定不报错
    relocked = evaluation_lifecycle.lock(session, _actor(staff), evaluation.id)
    assert relocked.status == EvaluationStatus.LOCKED


def test_resubmit_overwrites_timestamp(session, staff, setup) -> None:
    evaluation = setup[3]
    first = evaluation_lifecycle.submit(session, _actor(staff), evaluation.id).submitted_at
    second = evaluation_lifecycle.submit(session, _actor(staff), evaluation.id)
    assert second.status == EvaluationStatus.SUBMITTED
    assert second.submitted_at >= first


def test_submit_role_and_ownership(session, other_staff, student, admin, setup) -> None:
    evaluation = setup[3]
    with pytest.raises(ForbiddenError):
        evaluation_lifecycle.submit(session, _actor(student), evaluation.id)
    with pytest.raises(ForbiddenError):
        evaluation_lifecycle.submit(session, _actor(other_staff), evaluation.id)
    with pytest.raises(ForbiddenError):
        evaluation_lifecycle.lock(session, _actor(student), evaluation.id)

    submitted = evaluation_lifecycle.submit(session, _actor(admin), evaluation.id)
    assert submitted.status == EvaluationStatus.SUBMITTED


def test_submit_unknown_evaluation(session, staff) -> None:
    with pytest.raises(NotFoundError):
        evaluation_lifecycle.submit(session, _actor(staff), uuid.uuid4())


def test_delete_requires_admin_and_cascades(session, staff, admin, setup) -> None:
    _, (c1, _), _, evaluation = setup
    evaluation_lifecycle.record_scores(
        session, _actor(staff), evaluation.id, [{"criterion_id": str(c1.id), "score": 4}]
    )
    with pytest.raises(ForbiddenError):
        evaluation_lifecycle.delete(session, _actor(staff), evaluation.id)

    evaluation_lifecycle.delete(session, _actor(admin), evaluation.id)
    assert session.query(Evaluation).count() == 0
    assert session.query(EvaluationScore).count() == 0
    with pytest.raises(NotFoundError):
        evaluation_lifecycle.delete(session, _actor(admin), evaluation.id)


def test_record_scores_rejected_when_locked(session, staff, setup) -> None:
    _, (c1, _), _, evaluation = setup
    evaluation_lifecycle.record_scores(
        session, _actor(staff), evaluation.id, [{"criterion_id": c1.id, "score": 3}]
    )
    evaluation_lifecycle.submit(session, _actor(staff), evaluation.id)
    # submitted 状态仍可修改评分
    evaluation_lifecycle.record_scores(
        session, _actor(staff), evaluation.id, [{"criterion_id": c1.id, "score": 4}]
    )
    evaluation_lifecycle.lock(session, _actor(staff), evaluation.id)

    with pytest.raises(ForbiddenError):
        evaluation_lifecycle.record_scores(
            session, _actor(staff), evaluation.id, [{"criterion_id": c1.id, "score": 5}]
        )
    scores = evaluation_lifecycle.scores.list_scores(session, evaluation.id)
    assert [s.score for s in scores] == [4.0]


def test_record_scores_rejects_criteria_from_other_template(session, staff, setup) -> None:
    evaluation = setup[3]
    _, (foreign,) = make_template(session, [(1, 5)], name="Other")
    with pytest.raises(InvalidArgumentError):
        evaluation_lifecycle.record_scores(
            session, _actor(staff), evaluation.id, [{"criterion_id": foreign.id, "score": 5}]
        )
    assert session.query(EvaluationScore).count() == 0


def test_list_reads(session, staff, other_staff, setup) -> None:
    _, _, schedule, evaluation = setup
    second = evaluation_lifecycle.create(session, schedule.id, other_staff.id)

    assert [e.id for e in evaluation_lifecycle.list_for_schedule(session, schedule.id)] == [
        evaluation.id,
        second.id,
    ]
    assert [e.id for e in evaluation_lifecycle.list_for_evaluator(session, staff.id)] == [evaluation.id]


# === 学生反馈 ===

def test_student_save_then_submit(session, student, setup) -> None:
    schedule = setup[2]
    actor = _actor(student)

    draft = student_evaluation_lifecycle.save(session, actor, schedule.id, {"q1": "good"})
    assert draft.status == EvaluationStatus.PENDING
    assert draft.answers == {"q1": "good"}

    draft = student_evaluation_lifecycle.save(session, actor, schedule.id, {"q1": "great"})
    assert draft.answers == {"q1": "great"}

    submitted = student_evaluation_lifecycle.submit(session, actor, schedule.id)
    assert submitted.status == EvaluationStatus.SUBMITTED
    assert submitted.answers == {"q1": "great"}
    assert submitted.submitted_at is not None

    with pytest.raises(InvalidStateError):
        student_evaluation_lifecycle.save(session, actor, schedule.id, {"q1": "changed"})


def test_student_submit_creates_row(session, student, setup) -> None:
    schedule = setup[2]
    row = student_evaluation_lifecycle.submit(session, _actor(student), schedule.id, {"q1": "yes"})
    assert row.status == EvaluationStatus.SUBMITTED
    assert row.answers == {"q1": "yes"}
    assert student_evaluation_lifecycle.get_for_student(session, schedule.id, student.id).id == row.id


def test_student_lock_and_terminal(session, student, staff, admin, setup) -> None:
    schedule = setup[2]
    actor = _actor(student)
    row = student_evaluation_lifecycle.save(session, actor, schedule.id, {})

    with pytest.raises(InvalidStateError):
        student_evaluation_lifecycle.lock(session, _actor(staff), row.id)

    student_evaluation_lifecycle.submit(session, actor, schedule.id, {"q1": "final"})
    with pytest.raises(ForbiddenError):
        student_evaluation_lifecycle.lock(session, actor, row.id)

    locked = student_evaluation_lifecycle.lock(session, _actor(staff), row.id)
    assert locked.status == EvaluationStatus.LOCKED
    with pytest.raises(ForbiddenError):
        student_evaluation_lifecycle.submit(session, actor, schedule.id)

    with pytest.raises(ForbiddenError):
        student_evaluation_lifecycle.delete(session, _actor(staff), row.id)
    student_evaluation_lifecycle.delete(session, _actor(admin), row.id)
    assert student_evaluation_lifecycle.list_for_schedule(session, schedule.id) == []


def test_student_must_belong_to_group(session, staff, student, setup) -> None:
    schedule = setup[2]
    outsider = make_user(session, UserRole.STUDENT, "Outsider")
    with pytest.raises(ForbiddenError):
        student_evaluation_lifecycle.save(session, _actor(outsider), schedule.id, {})
    with pytest.raises(ForbiddenError):
        student_evaluation_lifecycle.save(session, _actor(staff), schedule.id, {})
    with pytest.raises(InvalidArgumentError):
        student_evaluation_lifecycle.save(session, _actor(student), schedule.id, ["not", "a", "dict"])


# === 多连接并发 ===

def _seed_submitted(file_engine, student_count: int = 2):
    """在文件库中准备一条已提交的评价，返回 (评委 Actor, 评价 id)。"""

    with sessionmaker(bind=file_engine)() as db:
        panelist = make_user(db, UserRole.STAFF, "Panelist One")
        members = [make_user(db, UserRole.STUDENT, f"Student {idx}") for idx in range(student_count)]
        template, _ = make_template(db, [(1, 5)])
        _, schedule = make_group(db, "Group C", students=members, template=template)
        evaluation = evaluation_lifecycle.create(db, schedule.id, panelist.id)
        evaluation_lifecycle.submit(db, _actor(panelist), evaluation.id)
        return _actor(panelist), evaluation.id


def _notification_count(file_engine, ntype: NotificationType) -> int:
    with sessionmaker(bind=file_engine)() as db:
        return db.query(Notification).filter(Notification.type == ntype).count()


def test_concurrent_locks_both_succeed_and_notify_once(file_engine) -> None:
    actor, evaluation_id = _seed_submitted(file_engine)

    def lock(db):
        return evaluation_lifecycle.lock(db, actor, evaluation_id).status

    results, errors = run_concurrently(file_engine, lock, lock)

    assert errors == []
    assert results == [EvaluationStatus.LOCKED, EvaluationStatus.LOCKED]
    # 只有真正改变状态的那次锁定产生通知
    assert _notification_count(file_engine, NotificationType.EVALUATION_LOCKED) == 2


def test_concurrent_submit_and_lock_end_locked(file_engine) -> None:
    actor, evaluation_id = _seed_submitted(file_engine)

    def submit(db):
        return evaluation_lifecycle.submit(db, actor, evaluation_id).status

    def lock(db):
        return evaluation_lifecycle.lock(db, actor, evaluation_id).status

    results, errors = run_concurrently(file_engine, submit, lock)

    # 锁定在前时重新提交被拒绝，其余情况两者都成功
    assert all(isinstance(error, ForbiddenError) for error in errors)
    assert EvaluationStatus.LOCKED in results
    with sessionmaker(bind=file_engine)() as db:
        assert db.get(Evaluation, evaluation_id).status == EvaluationStatus.LOCKED
    assert _notification_count(file_engine, NotificationType.EVALUATION_SUBMITTED) == 2
    assert _notification_count(file_engine, NotificationType.EVALUATION_LOCKED) == 2
