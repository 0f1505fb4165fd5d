"""应用配置管理。

使用 Pydantic Settings 统一读取环境变量，便于在本地/生产之间切换。
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """核心配置项。

    - ``database_url``：默认使用本地 SQLite，生产环境指向 PostgreSQL。
    - ``secret_key``：校验外部平台签发的 Bearer Token。
    - ``log_level``：应用日志级别。
    - ``sqlite_busy_timeout_ms``：SQLite 事务等待其他写事务释放锁的时间。
    """

    app_name: str = Field(default="Thesis Defense Evaluation API")
    database_url: str = Field(
        default="sqlite:///./storage/thesis_eval.db", description="SQLAlchemy 数据库 URL"
    )
    secret_key: str = Field(
        default="change-me-in-production", description="Token 签名密钥"
    )
    token_expire_hours: int = Field(default=24, description="Token 有效期（小时）")
    log_level: str = Field(default="INFO", description="日志级别")
    host: str = Field(default="0.0.0.0", description="服务监听地址")
    port: int = Field(default=8000, description="服务监听端口")
    sqlite_busy_timeout_ms: int = Field(
        default=30000, description="SQLite 等待写锁的最长时间（毫秒）"
    )

    model_config = {
        "env_prefix": "THESIS_EVAL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """缓存后的全局配置实例。"""

    return Settings()
