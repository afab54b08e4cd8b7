"""
请求追踪中间件

为每个请求建立追踪上下文，支持跨服务全链路追踪。

功能：
- 接收或生成 X-Trace-Id
- 读取 X-Request-User / X-Token / X-Department-Full-Path，供跨服务调用透传
- 在响应头中返回 X-Trace-Id 和 X-Response-Time
- 记录请求耗时

使用示例：
    from app.middleware.request_trace import RequestTraceMiddleware

    app.add_middleware(RequestTraceMiddleware)
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.infra.logging import (
    RequestContext,
    RequestTimer,
    bind_request_context,
    get_logger,
    set_request_id,
)

logger = get_logger(__name__)

# 轮询接口，成功时不记录日志
_QUIET_PATHS = ("/health", "/favicon.ico", "/agent/chat/function_gen/status")


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """
    请求追踪中间件

    - 从 X-Trace-Id 头获取追踪 ID，或自动生成
    - 把透传请求头写入上下文变量
    - 记录请求日志（路径、方法、耗时、状态码）
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = request.headers.get("X-Trace-Id") or str(uuid.uuid4())
        set_request_id(request.headers.get("X-Request-ID") or trace_id)
        bind_request_context(
            RequestContext(
                trace_id=trace_id,
                request_user=request.headers.get("X-Request-User") or None,
                token=request.headers.get("X-Token") or None,
                department_full_path=request.headers.get("X-Department-Full-Path") or None,
            )
        )

        timer = RequestTimer()

        try:
            response = await call_next(request)
        except Exception as e:
            metrics = timer.get_metrics()
            logger.error(
                f"{request.method} {request.url.path} - 500 - {metrics['total_ms']:.0f}ms",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": 500,
                    "duration_ms": metrics["total_ms"],
                    "error": str(e),
                },
            )
            raise

        metrics = timer.get_metrics()
        log_extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": metrics["total_ms"],
        }
        message = f"{request.method} {request.url.path} - {response.status_code} - {metrics['total_ms']:.0f}ms"

        if response.status_code >= 500:
            logger.error(message, extra=log_extra)
        elif response.status_code >= 400:
            logger.warning(message, extra=log_extra)
        elif request.url.path not in _QUIET_PATHS:
            logger.info(message, extra=log_extra)

        response.headers["X-Trace-Id"] = trace_id
        response.headers["X-Response-Time"] = f"{metrics['total_ms']:.0f}ms"

        return response
