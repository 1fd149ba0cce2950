"""
roomrelay.main
~~~~~~~~~~~~~~

ASGI 入口。组装房间注册表、REST / WebSocket 路由与错误处理。

本地运行::

    python -m roomrelay.main
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from roomrelay.api import rooms, ws
from roomrelay.api.static import SpaStaticFiles
from roomrelay.core.config import settings
from roomrelay.core.exceptions import RoomError
from roomrelay.core.logging import get_logger, setup_logging
from roomrelay.core.rate_limit import limiter
from roomrelay.db import close_mongo, connect_mongo
from roomrelay.db.room_repository import RoomRepository
from roomrelay.schemas.rooms import ErrorResponse
from roomrelay.services.registry import RoomRegistry

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """启动时恢复房间并开始落库；关闭时把未写入的内容刷到存储。"""
    repo = RoomRepository(await connect_mongo()) if settings.storage_enabled else None
    if repo is None:
        logger.info("未配置 MONGO_URI，房间内容只保存在内存中")

    registry = RoomRegistry(
        repo,
        default_room=settings.DEFAULT_ROOM,
        persist_interval=settings.PERSIST_INTERVAL,
        broadcast_capacity=settings.BROADCAST_CAPACITY,
    )
    await registry.open()
    app.state.registry = registry
    logger.info(
        "聊天中继已启动 | env=%s | port=%d | default_room=%s | storage=%s",
        settings.ENVIRONMENT, settings.PORT, settings.DEFAULT_ROOM, settings.storage_enabled,
    )
    try:
        yield
    finally:
        await registry.close()
        if repo is not None:
            await close_mongo()
        logger.info("聊天中继已停止")


app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="多房间实时聊天中继",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# prod 只允许同源访问（前端由 STATIC_DIR 同域提供）
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.allow_cors_all_origins else [],
    allow_methods=["GET", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(rooms.router, prefix="/api", tags=["Rooms"])
app.include_router(ws.router, tags=["Chat"])


@app.exception_handler(RoomError)
async def room_error_handler(request: Request, exc: RoomError) -> JSONResponse:
    logger.info("拒绝房间操作 | %s %s | %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=400, content=ErrorResponse(error=exc.message).model_dump())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """兜底：保证客户端总是拿到 ``{"error": ...}``，而不是 HTML 错误页。"""
    logger.error("未处理异常 | %s %s", request.method, request.url.path, exc_info=exc)
    message = "Internal server error" if settings.is_prod else str(exc)
    return JSONResponse(status_code=500, content=ErrorResponse(error=message).model_dump())


@app.get("/health", tags=["System"])
async def health(request: Request) -> dict[str, object]:
    registry: RoomRegistry = request.app.state.registry
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "storage": settings.storage_enabled,
        "rooms": len(registry),
    }


# 放在所有路由之后，否则 "/" 会吞掉 /api 与 /ws
if settings.STATIC_DIR:
    app.mount("/", SpaStaticFiles(settings.STATIC_DIR), name="static")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "roomrelay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,
        log_level=settings.effective_log_level.lower(),
    )
