"""逐项得分存储：以 (evaluation_id, criterion_id) 为键的 upsert。

批量写入在单个事务内完成，任何一项失败整批回滚，避免部分评分项
残留旧值导致加权百分比失真。锁定后的写入限制由生命周期层负责。
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from thesis_eval.db import atomic
from thesis_eval.errors import InvalidArgumentError, NotFoundError
from thesis_eval.models import Evaluation, EvaluationScore, RubricCriterion
from thesis_eval.utils.identifiers import parse_uuid
from thesis_eval.utils.numbers import coerce_number

ScoreInput = Tuple[uuid.UUID, float, Optional[str]]


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    return insert


def normalize_score_items(items: Iterable[Mapping[str, Any]]) -> List[ScoreInput]:
    """校验并归一化批量评分；同一评分项出现多次时以最后一次为准。"""

    normalized: Dict[uuid.UUID, ScoreInput] = {}
    for idx, item in enumerate(items):
        raw_criterion = item.get("criterion_id", item.get("criterionId"))
        criterion_id = parse_uuid(raw_criterion, f"scores[{idx}].criterion_id")
        score = coerce_number(item.get("score"))
        if score is None:
            raise InvalidArgumentError(f"scores[{idx}].score must be a number")
        comment = item.get("comment")
        normalized[criterion_id] = (criterion_id, score, None if comment is None else str(comment))
    return list(normalized.values())


class ScoreStore:
    """评分读写。"""

    def list_scores(self, db: Session, evaluation_id: Any) -> List[EvaluationScore]:
        parsed = parse_uuid(evaluation_id, "evaluation_id")
        stmt = (
            select(EvaluationScore)
            .where(EvaluationScore.evaluation_id == parsed)
            .order_by(EvaluationScore.criterion_id.asc())
        )
        return list(db.scalars(stmt))

    def upsert_score(
        self,
        db: Session,
        evaluation_id: Any,
        criterion_id: Any,
        score: Any,
        comment: Optional[str] = None,
    ) -> EvaluationScore:
        items = [{"criterion_id": criterion_id, "score": score, "comment": comment}]
        self.bulk_upsert_scores(db, evaluation_id, items)
        return db.get(
            EvaluationScore,
            (parse_uuid(evaluation_id, "evaluation_id"), parse_uuid(criterion_id, "criterion_id")),
        )

    def bulk_upsert_scores(
        self, db: Session, evaluation_id: Any, items: Iterable[Mapping[str, Any]]
    ) -> List[EvaluationScore]:
        parsed = parse_uuid(evaluation_id, "evaluation_id")
        rows = normalize_score_items(items)
        with atomic(db):
            if db.get(Evaluation, parsed) is None:
                raise NotFoundError("Evaluation not found")
            self.write_scores(db, parsed, rows)
        return self.list_scores(db, parsed)

    def write_scores(self, db: Session, evaluation_id: uuid.UUID, rows: List[ScoreInput]) -> None:
        """在调用方的事务内写入，不提交。"""

        if not rows:
            return
        criterion_ids = {criterion_id for criterion_id, _, _ in rows}
        found = set(
            db.scalars(select(RubricCriterion.id).where(RubricCriterion.id.in_(criterion_ids)))
        )
        missing = criterion_ids - found
        if missing:
            raise NotFoundError(
                "Rubric criterion not found",
                details={"criterion_ids": sorted(str(m) for m in missing)},
            )

        insert = _dialect_insert(db)
        for criterion_id, score, comment in rows:
            if insert is None:
                db.merge(
                    EvaluationScore(
                        evaluation_id=evaluation_id,
                        criterion_id=criterion_id,
                        score=score,
                        comment=comment,
                    )
                )
                continue
            stmt = insert(EvaluationScore).values(
                evaluation_id=evaluation_id,
                criterion_id=criterion_id,
                score=score,
                comment=comment,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[EvaluationScore.evaluation_id, EvaluationScore.criterion_id],
                set_={"score": stmt.excluded.score, "comment": stmt.excluded.comment},
            )
            db.execute(stmt)
        db.flush()

    def delete_scores(self, db: Session, evaluation_id: Any) -> int:
        parsed = parse_uuid(evaluation_id, "evaluation_id")
        with atomic(db):
            result = db.execute(
                delete(EvaluationScore).where(EvaluationScore.evaluation_id == parsed)
            )
        return result.rowcount or 0


score_store = ScoreStore()
