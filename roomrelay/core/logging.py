"""
roomrelay.core.logging
~~~~~~~~~~~~~~~~~~~~~~

进程级日志初始化。业务模块只需 ``logger = get_logger(__name__)``。
"""
from __future__ import annotations

import logging
import sys

from roomrelay.core.config import settings

_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_DATEFMT = "%H:%M:%S"

# 这些库在 INFO 级别会刷屏（心跳、连接池、每个请求一行）
_QUIET_LOGGERS: tuple[str, ...] = (
    "pymongo",
    "motor",
    "httpx",
    "uvicorn.access",
)


def setup_logging(level: str | None = None) -> None:
    """配置根 logger。重复调用会覆盖之前的配置。

    Args:
        level: 日志级别名称，缺省时取 ``settings.effective_log_level``。
    """
    name = (level or settings.effective_log_level).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=_FORMAT,
        datefmt=_DATEFMT,
        stream=sys.stdout,
        force=True,
    )
    for noisy in _QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
