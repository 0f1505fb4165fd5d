import uuid

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import make_group, make_template, make_user, run_concurrently
from thesis_eval.errors import InvalidArgumentError, NotFoundError
from thesis_eval.models import Evaluation, EvaluationScore, UserRole
from thesis_eval.schemas.scoring import CriterionSpec
from thesis_eval.services.lifecycle import evaluation_lifecycle
from thesis_eval.services.policy import Actor
from thesis_eval.services.rubrics import rubric_catalog
from thesis_eval.services.scores import normalize_score_items, score_store
from thesis_eval.services.scoring import (
    choose_template_id,
    compute_weighted_percentage,
    resolve_template_id,
    scoring_aggregator,
)


def _specs(*pairs):
    return [CriterionSpec(id=f"c{idx}", weight=w, max_score=m) for idx, (w, m) in enumerate(pairs, 1)]


def test_two_criteria_one_unscored_gives_forty_percent() -> None:
    criteria = _specs((1, 10), (1, 10))
    result = compute_weighted_percentage(criteria, {"c1": 8})
    assert result.weighted_score == 8
    assert result.weighted_max == 20
    assert result.overall_percentage == 40.0
    assert result.criteria_count == 2
    assert result.criteria_scored == 1


def test_no_scores_gives_zero() -> None:
    result = compute_weighted_percentage(_specs((1, 5), (2, 5)), {})
    assert result.overall_percentage == 0
    assert result.criteria_scored == 0


def test_all_max_scores_give_hundred_for_any_weights() -> None:
    criteria = _specs((3, 5), (1, 10), (0.5, 4))
    result = compute_weighted_percentage(criteria, {"c1": 5, "c2": 10, "c3": 4})
    assert result.overall_percentage == 100.0


def test_zero_weighted_max_gives_zero() -> None:
    result = compute_weighted_percentage(_specs((0, 5)), {"c1": 5})
    assert result.overall_percentage == 0
    assert result.weighted_max == 0


def test_empty_template_gives_zero() -> None:
    result = compute_weighted_percentage([], {"c1": 5})
    assert result.overall_percentage == 0
    assert result.criteria_count == 0


def test_scores_outside_template_are_ignored() -> None:
    result = compute_weighted_percentage(_specs((1, 5)), {"c1": 5, "other": 5})
    assert result.overall_percentage == 100.0
    assert result.criteria_scored == 1


def test_percentage_rounds_half_up() -> None:
    # 1/3 * 100 = 33.333...; 2/3 * 100 = 66.666...
    assert compute_weighted_percentage(_specs((1, 3)), {"c1": 1}).overall_percentage == 33.33
    assert compute_weighted_percentage(_specs((1, 3)), {"c1": 2}).overall_percentage == 66.67
    # 0.125 * 100 = 12.5 exactly; 1/8 of 100 -> 12.50
    assert compute_weighted_percentage(_specs((1, 8)), {"c1": 1}).overall_percentage == 12.5


def test_choose_template_id_priority() -> None:
    explicit, a, b, schedule, fallback = (uuid.uuid4() for _ in range(5))
    assert choose_template_id(explicit, [a], schedule, fallback) == explicit
    assert choose_template_id(None, [a, b, b], schedule, fallback) == b
    assert choose_template_id(None, [], schedule, fallback) == schedule
    assert choose_template_id(None, [], None, fallback) == fallback
    assert choose_template_id(None, [], None, None) is None


def test_normalize_score_items_last_duplicate_wins() -> None:
    cid = uuid.uuid4()
    rows = normalize_score_items(
        [{"criterion_id": str(cid), "score": 2}, {"criterionId": str(cid), "score": "4", "comment": "ok"}]
    )
    assert rows == [(cid, 4.0, "ok")]
    with pytest.raises(InvalidArgumentError):
        normalize_score_items([{"criterion_id": str(cid), "score": "high"}])
    with pytest.raises(InvalidArgumentError):
        normalize_score_items([{"score": 1}])


# === 数据库场景 ===

def test_evaluation_percentage_scenario(session, staff) -> None:
    template, (c1, _c2) = make_template(session, [(1, 10), (1, 10)])
    _, schedule = make_group(session, "Group A", template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)

    score_store.bulk_upsert_scores(session, evaluation.id, [{"criterion_id": c1.id, "score": 8}])
    result = scoring_aggregator.evaluation_percentage(session, evaluation.id)

    assert result.overall_percentage == 40.0
    assert result.weighted_score == 8
    assert result.weighted_max == 20
    assert result.template_id == template.id
    assert result.status == "pending"


def test_repeated_bulk_upsert_is_idempotent(session, staff) -> None:
    template, (c1, c2) = make_template(session, [(2, 5), (1, 5)])
    _, schedule = make_group(session, "Group A", template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)
    items = [{"criterion_id": c1.id, "score": 4}, {"criterion_id": c2.id, "score": 3}]

    score_store.bulk_upsert_scores(session, evaluation.id, items)
    first = scoring_aggregator.evaluation_percentage(session, evaluation.id)
    score_store.bulk_upsert_scores(session, evaluation.id, items)
    second = scoring_aggregator.evaluation_percentage(session, evaluation.id)

    assert first.overall_percentage == second.overall_percentage == 73.33
    assert session.query(EvaluationScore).count() == 2


def test_upsert_overwrites_existing_score(session, staff) -> None:
    template, (c1,) = make_template(session, [(1, 5)])
    _, schedule = make_group(session, "Group A", template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)

    score_store.upsert_score(session, evaluation.id, c1.id, 2)
    row = score_store.upsert_score(session, evaluation.id, c1.id, 5, comment="better")

    assert row.score == 5
    assert row.comment == "better"
    assert len(score_store.list_scores(session, evaluation.id)) == 1


def test_bulk_upsert_rolls_back_whole_batch(session, staff) -> None:
    template, (c1,) = make_template(session, [(1, 5)])
    _, schedule = make_group(session, "Group A", template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)

    with pytest.raises(NotFoundError):
        score_store.bulk_upsert_scores(
            session,
            evaluation.id,
            [{"criterion_id": c1.id, "score": 5}, {"criterion_id": uuid.uuid4(), "score": 5}],
        )
    assert score_store.list_scores(session, evaluation.id) == []


def test_delete_scores(session, staff) -> None:
    template, (c1, c2) = make_template(session, [(1, 5), (1, 5)])
    _, schedule = make_group(session, "Group A", template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)
    score_store.bulk_upsert_scores(
        session, evaluation.id, [{"criterion_id": c1.id, "score": 1}, {"criterion_id": c2.id, "score": 1}]
    )
    assert score_store.delete_scores(session, evaluation.id) == 2
    assert score_store.list_scores(session, evaluation.id) == []


def test_weight_change_applies_retroactively(session, staff) -> None:
    template, (c1, c2) = make_template(session, [(1, 10), (1, 10)])
    _, schedule = make_group(session, "Group A", template=template)
    evaluation = evaluation_lifecycle.create(session, schedule.id, staff.id)
    score_store.bulk_upsert_scores(session, evaluation.id, [{"criterion_id": c1.id, "score": 10}])

    assert scoring_aggregator.evaluation_percentage(session, evaluation.id).overall_percentage == 50.0
    rubric_catalog.update_criterion(session, c1.id, {"weight": 3})
    assert scoring_aggregator.evaluation_percentage(session, evaluation.id).overall_percentage == 75.0


def test_legacy_evaluation_uses_template_of_scored_criteria(session, staff) -> None:
    bound, _ = make_template(session, [(1, 5)], name="Bound")
    scored, (s1, _s2) = make_template(session, [(1, 5), (1, 5)], name="Scored")
    _, schedule = make_group(session, "Group A", template=bound)

    evaluation = Evaluation(schedule_id=schedule.id, evaluator_id=staff.id, template_id=None)
    session.add(evaluation)
    session.commit()
    score_store.bulk_upsert_scores(session, evaluation.id, [{"criterion_id": s1.id, "score": 5}])

    assert resolve_template_id(session, evaluation) == scored.id
    result = scoring_aggregator.evaluation_percentage(session, evaluation.id)
    assert result.template_id == scored.id
    assert result.overall_percentage == 50.0


def test_legacy_evaluation_without_scores_uses_schedule_template(session, staff) -> None:
    bound, _ = make_template(session, [(1, 5)], name="Bound")
    make_template(session, [(1, 5)], name="Other")
    _, schedule = make_group(session, "Group A", template=bound)
    evaluation = Evaluation(schedule_id=schedule.id, evaluator_id=staff.id, template_id=None)
    session.add(evaluation)
    session.commit()

    assert resolve_template_id(session, evaluation) == bound.id


def test_schedule_percentages(session, staff, other_staff) -> None:
    template, (c1,) = make_template(session, [(1, 4)])
    _, schedule = make_group(session, "Group A", template=template)
    first = evaluation_lifecycle.create(session, schedule.id, staff.id)
    second = evaluation_lifecycle.create(session, schedule.id, other_staff.id)
    score_store.bulk_upsert_scores(session, first.id, [{"criterion_id": c1.id, "score": 4}])
    score_store.bulk_upsert_scores(session, second.id, [{"criterion_id": c1.id, "score": 1}])

    results = {r.evaluation_id: r.overall_percentage for r in scoring_aggregator.schedule_percentages(session, schedule.id)}
    assert results == {first.id: 100.0, second.id: 25.0}


def test_evaluation_percentage_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        scoring_aggregator.evaluation_percentage(session, uuid.uuid4())


def test_concurrent_writes_to_different_criteria_both_apply(file_engine) -> None:
    with sessionmaker(bind=file_engine)() as db:
        panelist = make_user(db, UserRole.STAFF, "Panelist One")
        template, (c1, c2) = make_template(db, [(1, 10), (1, 10)])
        _, schedule = make_group(db, "Group A", template=template)
        evaluation_id = evaluation_lifecycle.create(db, schedule.id, panelist.id).id
        actor = Actor(id=panelist.id, role=panelist.role)
        criterion_ids = (c1.id, c2.id)

    def write(criterion_id, score):
        def _job(db):
            items = [{"criterion_id": criterion_id, "score": score}]
            return len(evaluation_lifecycle.record_scores(db, actor, evaluation_id, items))

        return _job

    results, errors = run_concurrently(
        file_engine, write(criterion_ids[0], 8), write(criterion_ids[1], 6)
    )

    assert errors == []
    assert sorted(results) == [1, 2]
    with sessionmaker(bind=file_engine)() as db:
        scores = {row.criterion_id: row.score for row in score_store.list_scores(db, evaluation_id)}
        assert scores == {criterion_ids[0]: 8.0, criterion_ids[1]: 6.0}
        assert scoring_aggregator.evaluation_percentage(db, evaluation_id).overall_percentage == 70.0
