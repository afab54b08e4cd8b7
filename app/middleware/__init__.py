"""
中间件模块

提供 FastAPI 中间件：
- RequestTraceMiddleware: 请求追踪、上下文绑定和日志记录
"""

from app.middleware.request_trace import RequestTraceMiddleware

__all__ = ["RequestTraceMiddleware"]
