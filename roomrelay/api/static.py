"""
roomrelay.api.static
~~~~~~~~~~~~~~~~~~~~

前端单页应用的静态资源。

``/c/general`` 这类前端路由在磁盘上没有对应文件，统一返回 ``index.html``
交给前端路由处理；路径里带扩展名（``.js``、``.css`` 等）的缺失文件仍返回 404。
"""
from __future__ import annotations

from starlette.exceptions import HTTPException
from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

INDEX_HTML = "index.html"


class SpaStaticFiles(StaticFiles):
    """带 ``index.html`` 回退的 ``StaticFiles``。"""

    def __init__(self, directory: str) -> None:
        super().__init__(directory=directory, html=True)

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as e:
            if e.status_code != 404 or "." in path:
                raise
            return await super().get_response(INDEX_HTML, scope)
