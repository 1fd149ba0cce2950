"""
roomrelay.core.config
~~~~~~~~~~~~~~~~~~~~~

运行配置。字段来自环境变量或 ``.env`` 文件（pydantic-settings 负责解析）。

``ENVIRONMENT`` 决定额外读取哪个 ``.env.{ENVIRONMENT}`` 文件，并影响
日志级别、CORS、热重载等默认行为。环境变量始终优先于文件。
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]

# 各环境未显式设置 LOG_LEVEL 时的日志级别
_DEFAULT_LOG_LEVELS: dict[str, str] = {
    "dev": "INFO",
    "test": "DEBUG",
    "prod": "WARNING",
}


def _env_files() -> tuple[str, ...]:
    # 元组中靠后的文件优先级更高
    return ".env", f".env.{os.getenv('ENVIRONMENT', 'dev')}"


class Settings(BaseSettings):
    """聊天中继的全部可调参数。"""

    model_config = SettingsConfigDict(
        env_file=_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    PROJECT_NAME: str = "Room Relay"
    VERSION: str = "0.1.0"
    ENVIRONMENT: Environment = "dev"

    # ── 房间 ──
    DEFAULT_ROOM: str = Field(default="general", min_length=1, description="不可删除的默认房间")
    PERSIST_INTERVAL: float = Field(default=2.0, gt=0, description="内容落库间隔（秒）")
    BROADCAST_CAPACITY: int = Field(default=100, ge=1, description="单个订阅者的事件缓冲容量")

    # ── 存储（可选）──
    MONGO_URI: str | None = None
    MONGO_DB_NAME: str = "roomrelay"

    # ── HTTP 服务 ──
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    LOG_LEVEL: str | None = Field(default=None, description="不设置时按环境推断")
    RATE_LIMIT_ENABLED: bool = True
    STATIC_DIR: str | None = Field(default=None, description="前端构建产物目录，挂载到 /")

    @field_validator("MONGO_URI", "STATIC_DIR", "LOG_LEVEL", mode="before")
    @classmethod
    def _blank_as_none(cls, v: object) -> object:
        """``.env`` 里写成 ``KEY=`` 的空值按未设置处理。"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_prod(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def debug(self) -> bool:
        """只有 dev 环境打开 FastAPI debug 与 uvicorn 热重载。"""
        return self.ENVIRONMENT == "dev"

    @property
    def reload(self) -> bool:
        return self.debug

    @property
    def storage_enabled(self) -> bool:
        return self.MONGO_URI is not None

    @property
    def effective_log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return _DEFAULT_LOG_LEVELS[self.ENVIRONMENT]

    @property
    def allow_cors_all_origins(self) -> bool:
        # 浏览器端调试页面可能来自任意端口，只有 prod 收紧
        return not self.is_prod


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings: Settings = get_settings()
