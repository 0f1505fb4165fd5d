"""数据库连接与会话管理。"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings


settings = get_settings()


class Base(DeclarativeBase):
    """SQLAlchemy 基类。"""

    pass


def configure_engine(target: Engine) -> Engine:
    """SQLite 连接设置。

    - 开启外键约束，评分记录的级联删除依赖它；
    - 由 SQLAlchemy 自行发出 ``BEGIN IMMEDIATE``：事务开始即持有写锁，
      先读后写的事务彼此排队，而不是在升级锁时以 ``database is locked`` 失败；
      同时保证通知写入使用的 SAVEPOINT 行为正确；
    - ``busy_timeout`` 决定排队等待的上限。
    """

    if target.url.get_backend_name() == "sqlite":

        @event.listens_for(target, "connect")
        def _on_connect(dbapi_connection, _record) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={int(settings.sqlite_busy_timeout_ms)}")
            cursor.close()

        @event.listens_for(target, "begin")
        def _on_begin(conn) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return target


def _ensure_sqlite_directory(url: str) -> None:
    if not url.startswith("sqlite:///") or url.endswith(":memory:"):
        return
    Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)


_ensure_sqlite_directory(settings.database_url)

# SQLite 需要 ``check_same_thread=False`` 以支持多线程；其他数据库可忽略
engine = configure_engine(
    create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False}
        if settings.database_url.startswith("sqlite")
        else {},
    )
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """提供事务范围的 Session 上下文管理器。"""

    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """在已有 Session 上执行一个完整事务：成功提交，异常回滚后继续抛出。"""

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_db() -> Iterator[Session]:
    """FastAPI 依赖，用于获取数据库会话。"""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
