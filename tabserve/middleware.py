"""
中间件：Request ID

- RequestIDMiddleware：为每个请求注入 X-Request-ID，便于日志与追踪关联
- RequestIDLogFilter：把当前 Request ID 写入日志记录的 request_id 字段
"""
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")


def get_request_id() -> str:
    """获取当前请求的 Request ID（请求之外为 "-"）。"""
    return request_id_ctx.get()


class RequestIDLogFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def install_log_filter(logger: logging.Logger = None) -> None:
    """为 logger（默认 root）的所有 handler 安装 RequestIDLogFilter。"""
    logger = logger or logging.getLogger()
    for handler in logger.handlers:
        if not any(isinstance(f, RequestIDLogFilter) for f in handler.filters):
            handler.addFilter(RequestIDLogFilter())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """若请求头已带 X-Request-ID 则复用，否则生成 UUID。"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            request_id_ctx.reset(token)
