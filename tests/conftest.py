import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# 必须在导入 thesis_eval 之前设置，避免测试写入本地数据库文件
os.environ["THESIS_EVAL_DATABASE_URL"] = "sqlite:///:memory:"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from thesis_eval.db import Base, configure_engine, get_db
from thesis_eval.dependencies import create_token
from thesis_eval.main import app
from thesis_eval.models import (
    DefenseSchedule,
    RubricCriterion,
    RubricTemplate,
    ThesisGroup,
    User,
    UserRole,
    group_members,
)

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = configure_engine(
    create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def file_engine(tmp_path):
    """多连接并发场景使用的文件型 SQLite 引擎，每个线程各自取连接。"""

    target = configure_engine(
        create_engine(
            f"sqlite:///{tmp_path / 'concurrent.db'}",
            connect_args={"check_same_thread": False},
        )
    )
    Base.metadata.create_all(bind=target)
    yield target
    target.dispose()


def run_concurrently(engine, *jobs):
    """每个 job 在独立线程、独立 Session 中执行，返回 (结果列表, 异常列表)。"""

    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    barrier = threading.Barrier(len(jobs))

    def _run(job):
        with factory() as db:
            barrier.wait(timeout=10)
            return job(db)

    results, errors = [], []
    with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
        futures = [pool.submit(_run, job) for job in jobs]
        for future in futures:
            try:
                results.append(future.result(timeout=60))
            except Exception as exc:  # noqa: BLE001  由调用方断言异常类型
                errors.append(exc)
    return results, errors


@pytest.fixture(scope="function")
def client(session):
    """
    Create a TestClient that uses the override_get_db dependency.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# === 数据构造 ===

def make_user(session, role: UserRole, name: str) -> User:
    user = User(name=name, email=f"{name.lower().replace(' ', '.')}@example.edu", role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_template(session, weights_and_max, name: str = "Panel Rubric", active: bool = True):
    """按 [(weight, max_score), ...] 创建模板，返回 (template, criteria)。"""

    template = RubricTemplate(name=name, version=1, active=active)
    session.add(template)
    session.flush()
    criteria = []
    for idx, (weight, max_score) in enumerate(weights_and_max, start=1):
        criterion = RubricCriterion(
            template_id=template.id,
            criterion=f"Criterion {idx}",
            weight=weight,
            min_score=1,
            max_score=max_score,
        )
        session.add(criterion)
        criteria.append(criterion)
    session.commit()
    for criterion in criteria:
        session.refresh(criterion)
    session.refresh(template)
    return template, criteria


def make_group(session, title: str, students=(), scheduled_at=None, template=None):
    """创建小组及一次答辩排期，返回 (group, schedule)。"""

    group = ThesisGroup(title=title)
    session.add(group)
    session.flush()
    for student in students:
        session.execute(insert(group_members).values(group_id=group.id, student_id=student.id))
    schedule = DefenseSchedule(
        group_id=group.id,
        scheduled_at=scheduled_at or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
        rubric_template_id=template.id if template is not None else None,
    )
    session.add(schedule)
    session.commit()
    session.refresh(group)
    session.refresh(schedule)
    return group, schedule


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token(user.id, user.role.value)}"}


@pytest.fixture()
def admin(session):
    return make_user(session, UserRole.ADMIN, "Admin")


@pytest.fixture()
def staff(session):
    return make_user(session, UserRole.STAFF, "Panelist One")


@pytest.fixture()
def other_staff(session):
    return make_user(session, UserRole.STAFF, "Panelist Two")


@pytest.fixture()
def student(session):
    return make_user(session, UserRole.STUDENT, "Student One")
