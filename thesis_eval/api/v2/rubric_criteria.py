"""评分项 API。

管理端表单的字段命名并不统一，请求体与查询参数都接受若干别名，
统一归一化后再交给 ``RubricCatalog``。
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Request, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import get_current_actor, require_admin
from thesis_eval.services.policy import Actor
from thesis_eval.services.rubrics import rubric_catalog

router = APIRouter()

TEMPLATE_ID_ALIASES = ("template_id", "templateId", "rubricTemplateId", "rubric_template_id", "rubricId")

FIELD_ALIASES = {
    "template_id": TEMPLATE_ID_ALIASES,
    "criterion": ("criterion", "title", "name", "label"),
    "description": ("description", "desc"),
    "weight": ("weight", "points", "score"),
    "min_score": ("min_score", "minScore"),
    "max_score": ("max_score", "maxScore"),
}


def pick_alias(source: Mapping[str, Any], aliases) -> Optional[str]:
    """返回 ``source`` 中第一个出现的别名。"""

    for alias in aliases:
        if alias in source:
            return alias
    return None


def normalize_criterion_payload(body: Mapping[str, Any]) -> Dict[str, Any]:
    """把别名映射为标准字段名，只保留请求中实际出现的字段。"""

    normalized: Dict[str, Any] = {}
    for field, aliases in FIELD_ALIASES.items():
        alias = pick_alias(body, aliases)
        if alias is not None:
            normalized[field] = body[alias]
    return normalized


# === Schemas ===

class RubricCriterionResponse(BaseModel):
    id: UUID
    template_id: UUID
    criterion: str
    description: Optional[str]
    weight: float
    min_score: float
    max_score: float
    created_at: datetime

    class Config:
        from_attributes = True


class RubricCriterionListResponse(BaseModel):
    criteria: List[RubricCriterionResponse]
    total: int


# === API 端点 ===

@router.get("", response_model=RubricCriterionListResponse)
def list_criteria(
    request: Request,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    """按模板过滤；过滤参数缺失或不是合法 UUID 时返回全部评分项。"""

    alias = pick_alias(request.query_params, TEMPLATE_ID_ALIASES)
    raw = request.query_params.get(alias) if alias else None
    criteria = rubric_catalog.list_criteria_filtered(db, raw)
    return {"criteria": criteria, "total": len(criteria)}


@router.post("", response_model=RubricCriterionResponse, status_code=status.HTTP_201_CREATED)
def create_criterion(
    body: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    payload = normalize_criterion_payload(body)
    return rubric_catalog.create_criterion(
        db,
        template_id=payload.get("template_id"),
        criterion=payload.get("criterion"),
        description=payload.get("description"),
        weight=payload.get("weight"),
        min_score=payload.get("min_score"),
        max_score=payload.get("max_score"),
    )


@router.get("/{criterion_id}", response_model=RubricCriterionResponse)
def get_criterion(
    criterion_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return rubric_catalog.get_criterion(db, criterion_id)


@router.patch("/{criterion_id}", response_model=RubricCriterionResponse)
def update_criterion(
    criterion_id: str,
    body: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    changes = normalize_criterion_payload(body)
    changes.pop("template_id", None)
    return rubric_catalog.update_criterion(db, criterion_id, changes)


@router.delete("/{criterion_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_criterion(
    criterion_id: str,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    rubric_catalog.delete_criterion(db, criterion_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
