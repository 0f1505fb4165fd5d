"""FastAPI 入口：日志、异常映射、路由注册与数据库初始化。"""

import logging

from fastapi import FastAPI

from thesis_eval.api.v2 import router as api_v2_router
from thesis_eval.config import get_settings
from thesis_eval.db import Base, engine
from thesis_eval.errors import register_exception_handlers
from thesis_eval.migrations import run_migrations
import thesis_eval.models  # noqa: F401  注册全部表

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """应用工厂，便于测试时替换依赖。"""

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(title=settings.app_name, version="0.1.0")
    register_exception_handlers(app)
    app.include_router(api_v2_router)

    @app.on_event("startup")
    def init_models() -> None:
        """启动时建表，再补齐旧 SQLite 库缺少的列。"""

        Base.metadata.create_all(bind=engine)
        run_migrations(engine)
        logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "app": settings.app_name}

    return app


app = create_app()


def run() -> None:
    """命令行入口：``thesis-eval`` 或 ``python -m thesis_eval.main``。"""

    import uvicorn

    settings = get_settings()
    logger.info("Starting server on %s:%s", settings.host, settings.port)
    uvicorn.run(
        "thesis_eval.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
