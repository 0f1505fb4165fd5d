"""论文小组排名。

小组百分比 = 该组所有排期下 submitted/locked 评价百分比的平均值（保留两位）；
pending 评价不计入。排序依次为：百分比降序（无评价的小组排最后）、
最近答辩时间降序、标题升序。名次采用密集排名：完全相同的小组并列，
下一个不同的小组名次为前一名次 + 1。
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from thesis_eval.errors import NotFoundError
from thesis_eval.models import COUNTED_STATUSES, DefenseSchedule, Evaluation, ThesisGroup
from thesis_eval.schemas.scoring import GroupRanking, GroupRankingList
from thesis_eval.services.scoring import ScoringAggregator, scoring_aggregator
from thesis_eval.utils.identifiers import parse_uuid
from thesis_eval.utils.numbers import round_half_up, to_decimal


def average_percentage(percentages: Iterable[float]) -> Optional[float]:
    values = [to_decimal(value) for value in percentages]
    if not values:
        return None
    return float(round_half_up(sum(values, Decimal(0)) / len(values), 2))


def _rank_value(row: GroupRanking) -> Tuple[Optional[float], Optional[datetime], str]:
    return (row.group_percentage, row.latest_defense_at, row.group_title)


def ranking_sort_key(row: GroupRanking) -> Tuple[Any, ...]:
    pct = row.group_percentage
    latest = row.latest_defense_at
    return (
        pct is None,
        -pct if pct is not None else 0.0,
        latest is None,
        -latest.timestamp() if latest is not None else 0.0,
        row.group_title,
    )


def dense_rank(rows: Iterable[GroupRanking]) -> List[GroupRanking]:
    """排序并按密集排名写入 ``rank``。"""

    ordered = sorted(rows, key=ranking_sort_key)
    rank = 0
    previous = None
    for row in ordered:
        current = _rank_value(row)
        if current != previous:
            rank += 1
            previous = current
        row.rank = rank
    return ordered


class RankingEngine:
    def __init__(self, aggregator: ScoringAggregator = scoring_aggregator) -> None:
        self.aggregator = aggregator

    def group_rankings(self, db: Session) -> GroupRankingList:
        groups = db.execute(select(ThesisGroup.id, ThesisGroup.title)).all()

        latest_by_group: Dict[uuid.UUID, datetime] = {
            group_id: latest
            for group_id, latest in db.execute(
                select(DefenseSchedule.group_id, func.max(DefenseSchedule.scheduled_at)).group_by(
                    DefenseSchedule.group_id
                )
            ).all()
        }

        rows = self.aggregator.load_rows(db, Evaluation.status.in_(COUNTED_STATUSES))
        percentages: Dict[uuid.UUID, List[float]] = defaultdict(list)
        for result in self.aggregator.percentages_for(db, rows):
            percentages[result.group_id].append(result.overall_percentage)

        rankings = [
            GroupRanking(
                group_id=group_id,
                group_title=title,
                group_percentage=average_percentage(percentages.get(group_id, [])),
                submitted_evaluations=len(percentages.get(group_id, [])),
                latest_defense_at=latest_by_group.get(group_id),
            )
            for group_id, title in groups
        ]
        ranked = dense_rank(rankings)
        return GroupRankingList(rankings=ranked, total=len(ranked))

    def group_ranking(self, db: Session, group_id: Any) -> GroupRanking:
        parsed = parse_uuid(group_id, "group_id")
        for row in self.group_rankings(db).rankings:
            if row.group_id == parsed:
                return row
        raise NotFoundError("Thesis group not found")


ranking_engine = RankingEngine()
