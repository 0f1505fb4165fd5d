"""初始化数据库并写入内置的 Form 3-C 评分模板。"""
import logging
import sys
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from thesis_eval.db import Base, engine, session_scope
from thesis_eval.migrations import run_migrations
from thesis_eval.seeds import seed_form3c
import thesis_eval.models  # noqa: F401


def seed():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)
    with session_scope() as db:
        template = seed_form3c(db)
        print(f"Form 3-C template: {template.id} ({len(template.criteria)} criteria)")


if __name__ == "__main__":
    seed()
