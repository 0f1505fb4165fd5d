"""评分量表目录：模板与评分项的增删改查。

数值字段（weight/min_score/max_score/version）采用宽松转换：无法解析为
有限数字的输入视为"未提供"，不会报错。``description`` 采用三态语义：
键不存在 → 保持不变；显式 ``None`` → 清空；字符串 → 覆盖。
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from thesis_eval.errors import InvalidArgumentError, NotFoundError
from thesis_eval.models import RubricCriterion, RubricTemplate
from thesis_eval.utils.identifiers import parse_optional_uuid, parse_uuid
from thesis_eval.utils.numbers import coerce_number

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1.0
DEFAULT_MIN_SCORE = 1.0
DEFAULT_MAX_SCORE = 5.0


def _clean_label(value: Any, field: str) -> str:
    if value is None:
        raise InvalidArgumentError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise InvalidArgumentError(f"{field} is required")
    return text


def _coerce_version(value: Any) -> Optional[int]:
    number = coerce_number(value)
    return int(number) if number is not None else None


def _coerce_description(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class RubricCatalog:
    """封装评分量表模板与评分项的查询与维护逻辑。"""

    # === 模板 ===

    def list_templates(self, db: Session, active_only: bool = False) -> List[RubricTemplate]:
        stmt = select(RubricTemplate)
        if active_only:
            stmt = stmt.where(RubricTemplate.active.is_(True))
        stmt = stmt.order_by(RubricTemplate.active.desc(), RubricTemplate.updated_at.desc())
        return list(db.scalars(stmt))

    def get_template(self, db: Session, template_id: Any) -> RubricTemplate:
        template = db.get(RubricTemplate, parse_uuid(template_id, "template_id"))
        if template is None:
            raise NotFoundError("Rubric template not found")
        return template

    def create_template(
        self,
        db: Session,
        name: Any,
        description: Optional[str] = None,
        version: Any = None,
        active: Optional[bool] = None,
    ) -> RubricTemplate:
        template = RubricTemplate(
            name=_clean_label(name, "name"),
            description=_coerce_description(description),
            version=_coerce_version(version) or 1,
            active=True if active is None else bool(active),
        )
        db.add(template)
        db.commit()
        db.refresh(template)
        logger.info("Created rubric template %s (%s v%s)", template.id, template.name, template.version)
        return template

    def update_template(
        self, db: Session, template_id: Any, changes: Mapping[str, Any]
    ) -> RubricTemplate:
        template = self.get_template(db, template_id)
        dirty = False

        if changes.get("name") is not None:
            template.name = _clean_label(changes["name"], "name")
            dirty = True
        if "description" in changes:
            template.description = _coerce_description(changes["description"])
            dirty = True
        version = _coerce_version(changes.get("version"))
        if version is not None:
            template.version = version
            dirty = True
        if isinstance(changes.get("active"), bool):
            template.active = changes["active"]
            dirty = True

        if not dirty:
            return template
        db.commit()
        db.refresh(template)
        return template

    def delete_template(self, db: Session, template_id: Any) -> None:
        template = self.get_template(db, template_id)
        db.delete(template)
        db.commit()
        logger.info("Deleted rubric template %s", template_id)

    # === 评分项 ===

    def list_criteria(self, db: Session, template_id: Any) -> List[RubricCriterion]:
        parsed = parse_uuid(template_id, "template_id")
        stmt = (
            select(RubricCriterion)
            .where(RubricCriterion.template_id == parsed)
            .order_by(RubricCriterion.created_at.asc())
        )
        return list(db.scalars(stmt))

    def list_all_criteria(self, db: Session) -> List[RubricCriterion]:
        stmt = select(RubricCriterion).order_by(
            RubricCriterion.template_id, RubricCriterion.created_at.asc()
        )
        return list(db.scalars(stmt))

    def list_criteria_filtered(self, db: Session, raw_template_id: Any) -> List[RubricCriterion]:
        """管理端列表：过滤参数缺失或格式错误时返回全部评分项。"""

        template_id = parse_optional_uuid(raw_template_id)
        if template_id is None:
            return self.list_all_criteria(db)
        return self.list_criteria(db, template_id)

    def get_criterion(self, db: Session, criterion_id: Any) -> RubricCriterion:
        criterion = db.get(RubricCriterion, parse_uuid(criterion_id, "id"))
        if criterion is None:
            raise NotFoundError("Rubric criterion not found")
        return criterion

    def create_criterion(
        self,
        db: Session,
        template_id: Any,
        criterion: Any,
        description: Optional[str] = None,
        weight: Any = None,
        min_score: Any = None,
        max_score: Any = None,
    ) -> RubricCriterion:
        template = self.get_template(db, template_id)
        label = _clean_label(criterion, "criterion")
        weight_value = coerce_number(weight)
        min_value = coerce_number(min_score)
        max_value = coerce_number(max_score)

        row = RubricCriterion(
            template_id=template.id,
            criterion=label,
            description=_coerce_description(description),
            weight=DEFAULT_WEIGHT if weight_value is None else weight_value,
            min_score=DEFAULT_MIN_SCORE if min_value is None else min_value,
            max_score=DEFAULT_MAX_SCORE if max_value is None else max_value,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    def update_criterion(
        self, db: Session, criterion_id: Any, changes: Mapping[str, Any]
    ) -> RubricCriterion:
        row = self.get_criterion(db, criterion_id)
        dirty = False

        if changes.get("criterion") is not None:
            row.criterion = _clean_label(changes["criterion"], "criterion")
            dirty = True
        if "description" in changes:
            row.description = _coerce_description(changes["description"])
            dirty = True
        weight = coerce_number(changes.get("weight"))
        if weight is not None:
            row.weight = weight
            dirty = True
        for field in ("min_score", "max_score"):
            value = coerce_number(changes.get(field))
            if value is not None:
                setattr(row, field, value)
                dirty = True

        if not dirty:
            return row
        db.commit()
        db.refresh(row)
        return row

    def delete_criterion(self, db: Session, criterion_id: Any) -> None:
        row = self.get_criterion(db, criterion_id)
        db.delete(row)
        db.commit()


def latest_active_template_id(db: Session) -> Optional[uuid.UUID]:
    """最近更新的 active 模板；没有 active 模板时返回 ``None``。"""

    stmt = (
        select(RubricTemplate.id)
        .where(RubricTemplate.active.is_(True))
        .order_by(RubricTemplate.updated_at.desc(), RubricTemplate.created_at.desc())
        .limit(1)
    )
    return db.scalar(stmt)


rubric_catalog = RubricCatalog()
