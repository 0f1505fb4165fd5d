import uuid

import pytest

from conftest import make_group, make_template, make_user
from thesis_eval.errors import ForbiddenError, NotFoundError
from thesis_eval.models import UserRole
from thesis_eval.services.lifecycle import evaluation_lifecycle
from thesis_eval.services.policy import Actor
from thesis_eval.services.summary import student_summary_service


def _actor(user) -> Actor:
    return Actor(id=user.id, role=user.role)


@pytest.fixture()
def scored_group(session, staff, other_staff, student):
    template, (c1, _c2) = make_template(session, [(1, 10), (1, 10)])
    _, schedule = make_group(session, "Group A", students=[student], template=template)
    submitted = evaluation_lifecycle.create(session, schedule.id, staff.id)
    pending = evaluation_lifecycle.create(session, schedule.id, other_staff.id)
    evaluation_lifecycle.record_scores(
        session, _actor(staff), submitted.id, [{"criterion_id": c1.id, "score": 8, "comment": "Clear"}]
    )
    evaluation_lifecycle.record_scores(
        session, _actor(other_staff), pending.id, [{"criterion_id": c1.id, "score": 2}]
    )
    evaluation_lifecycle.submit(session, _actor(staff), submitted.id)
    return schedule, submitted, pending


def test_summary_lists_only_submitted_and_locked(session, student, scored_group) -> None:
    schedule, submitted, _ = scored_group

    summary = student_summary_service.summary(session, _actor(student))

    assert summary.total == 1
    item = summary.schedules[0]
    assert item.schedule_id == schedule.id
    assert item.group_title == "Group A"
    assert item.average_percentage == 40.0
    assert [row.evaluation_id for row in item.evaluations] == [submitted.id]
    evaluation = item.evaluations[0]
    assert evaluation.overall_percentage == 40.0
    assert evaluation.status == "submitted"
    assert [(s.criterion, s.score, s.max_score, s.comment) for s in evaluation.scores] == [
        ("Criterion 1", 8.0, 10.0, "Clear")
    ]


def test_summary_for_single_schedule(session, student, scored_group) -> None:
    schedule = scored_group[0]
    summary = student_summary_service.summary(session, _actor(student), schedule_id=str(schedule.id))
    assert [item.schedule_id for item in summary.schedules] == [schedule.id]


def test_summary_requires_group_membership(session, staff, scored_group) -> None:
    schedule = scored_group[0]
    outsider = make_user(session, UserRole.STUDENT, "Outsider")

    with pytest.raises(ForbiddenError):
        student_summary_service.summary(session, _actor(outsider), schedule_id=schedule.id)
    with pytest.raises(NotFoundError):
        student_summary_service.summary(session, _actor(outsider), schedule_id=uuid.uuid4())
    with pytest.raises(ForbiddenError):
        student_summary_service.summary(session, _actor(staff))

    # 不属于任何小组时返回空汇总
    empty = student_summary_service.summary(session, _actor(outsider))
    assert empty.total == 0
    assert empty.schedules == []
