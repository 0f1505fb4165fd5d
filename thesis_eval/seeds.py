"""内置评分模板：CCS Thesis Form 3-C，四个评分项各占 25，按 1-5 分评分。"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from thesis_eval.db import atomic
from thesis_eval.models import RubricCriterion, RubricTemplate

logger = logging.getLogger(__name__)

FORM_3C_NAME = "CCS Thesis Form 3-C (Draft November 2, 2021)"
FORM_3C_DESCRIPTION = "Rubric based on CCS Thesis Form 3-C categories; configured for 1-5 scoring."

FORM_3C_CRITERIA = [
    (
        "Introduction (Context/Background)",
        "Background information should clearly establish project context and link sources to the current project.",
    ),
    (
        "Research Concept (Question/Problem/Thesis/Hypothesis/Purpose/Objectives)",
        "The thesis/problem/question/purpose/objectives should be clear, specific, and well-defined.",
    ),
    (
        "Methodology/Experimental Plan/Creative-Scholarly Process",
        "Method or scholarly process should be detailed enough for expert understanding and potential replication.",
    ),
    (
        "Project Presentation",
        "Presenters should be prepared, knowledgeable, and able to answer questions effectively.",
    ),
]


def seed_form3c(db: Session) -> RubricTemplate:
    """写入 Form 3-C 模板；可重复执行，已存在的模板与评分项不会重复创建。"""

    with atomic(db):
        template = db.scalar(
            select(RubricTemplate)
            .where(
                func.lower(RubricTemplate.name) == FORM_3C_NAME.lower(),
                RubricTemplate.version == 1,
            )
            .order_by(RubricTemplate.created_at.desc())
            .limit(1)
        )
        if template is None:
            template = RubricTemplate(
                name=FORM_3C_NAME, description=FORM_3C_DESCRIPTION, version=1, active=True
            )
            db.add(template)
            db.flush()

        existing = {
            name.lower()
            for name in db.scalars(
                select(RubricCriterion.criterion).where(RubricCriterion.template_id == template.id)
            )
        }
        added = 0
        for criterion, description in FORM_3C_CRITERIA:
            if criterion.lower() in existing:
                continue
            db.add(
                RubricCriterion(
                    template_id=template.id,
                    criterion=criterion,
                    description=description,
                    weight=25,
                    min_score=1,
                    max_score=5,
                )
            )
            added += 1
    db.refresh(template)
    logger.info("Form 3-C template %s ready (%d criteria added)", template.id, added)
    return template
