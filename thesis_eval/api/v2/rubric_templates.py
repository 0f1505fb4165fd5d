"""评分量表模板 API。"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from thesis_eval.db import get_db
from thesis_eval.dependencies import get_current_actor, require_admin
from thesis_eval.services.policy import Actor
from thesis_eval.services.rubrics import rubric_catalog

router = APIRouter()


# === Schemas ===

class RubricTemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    version: Any = None
    active: Optional[bool] = None


class RubricTemplateResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str]
    version: int
    active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RubricTemplateListResponse(BaseModel):
    templates: List[RubricTemplateResponse]
    total: int


# === API 端点 ===

@router.get("", response_model=RubricTemplateListResponse)
def list_templates(
    active_only: bool = False,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    templates = rubric_catalog.list_templates(db, active_only=active_only)
    return {"templates": templates, "total": len(templates)}


@router.post("", response_model=RubricTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: RubricTemplateCreate,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    return rubric_catalog.create_template(
        db,
        name=payload.name,
        description=payload.description,
        version=payload.version,
        active=payload.active,
    )


@router.get("/{template_id}", response_model=RubricTemplateResponse)
def get_template(
    template_id: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return rubric_catalog.get_template(db, template_id)


@router.patch("/{template_id}", response_model=RubricTemplateResponse)
def update_template(
    template_id: str,
    changes: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    """部分更新。显式传入 ``description: null`` 会清空描述，未传则保持不变。"""

    return rubric_catalog.update_template(db, template_id, changes)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: str,
    db: Session = Depends(get_db),
    _admin: Actor = Depends(require_admin),
):
    rubric_catalog.delete_template(db, template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
