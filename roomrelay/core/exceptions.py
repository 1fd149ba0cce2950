"""
roomrelay.core.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~

房间操作的业务异常。由 ``main`` 中注册的异常处理器统一转换为
``400 {"error": message}`` 响应，不会导致进程崩溃。
"""
from __future__ import annotations


class RoomError(Exception):
    """房间操作失败的基类。

    Attributes:
        message: 返回给客户端的可读错误信息。
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RoomForbiddenError(RoomError):
    """操作被禁止（例如删除默认房间）。"""


class RoomConflictError(RoomError):
    """操作与当前房间状态冲突（最后一个房间、房间内多于一人）。"""
