"""论文小组排名 API。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import get_current_actor
from thesis_eval.schemas.scoring import GroupRanking, GroupRankingList
from thesis_eval.services.policy import Actor
from thesis_eval.services.ranking import ranking_engine

router = APIRouter()


@router.get("", response_model=GroupRankingList)
def list_rankings(
    db: Session = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return ranking_engine.group_rankings(db)


@router.get("/{group_id}", response_model=GroupRanking)
def get_group_ranking(
    group_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return ranking_engine.group_ranking(db, group_id)
