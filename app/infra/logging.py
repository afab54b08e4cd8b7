"""
结构化日志与请求上下文

功能：
- JSON 格式输出，便于日志聚合（ELK/Loki）
- 追踪 ID（X-Trace-Id）与请求用户（X-Request-User）关联到每条日志
- 跨服务调用需要透传的请求头快照（RequestContext）
- 请求耗时记录

使用示例：
    from app.infra.logging import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("开始生成", extra={"record_id": 1})

    # 在异步任务中恢复请求上下文
    ctx = current_request_context()
    bind_request_context(ctx)
"""

import logging
import sys
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from contextvars import ContextVar

from app.config import get_settings

# 请求上下文变量
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
request_user_var: ContextVar[str | None] = ContextVar("request_user", default=None)
token_var: ContextVar[str | None] = ContextVar("token", default=None)
department_var: ContextVar[str | None] = ContextVar("department_full_path", default=None)


def get_request_id() -> str | None:
    """获取当前请求 ID"""
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """设置当前请求 ID"""
    request_id_var.set(request_id)


def get_trace_id() -> str | None:
    """获取当前追踪 ID"""
    return trace_id_var.get()


def get_request_user() -> str | None:
    """获取当前请求用户"""
    return request_user_var.get()


@dataclass(frozen=True)
class RequestContext:
    """
    跨服务调用需要透传的请求信息快照

    异步任务比 HTTP 请求活得更久，因此在请求阶段拍下快照，
    显式传给后台任务，而不是依赖请求对象。
    """
    trace_id: str | None = None
    request_user: str | None = None
    token: str | None = None
    department_full_path: str | None = None

    def headers(self) -> dict[str, str]:
        """生成透传请求头（空值不发送）"""
        pairs = {
            "X-Trace-Id": self.trace_id,
            "X-Request-User": self.request_user,
            "X-Token": self.token,
            "X-Department-Full-Path": self.department_full_path,
        }
        return {k: v for k, v in pairs.items() if v}


def current_request_context() -> RequestContext:
    """读取当前上下文变量，生成 RequestContext"""
    return RequestContext(
        trace_id=trace_id_var.get(),
        request_user=request_user_var.get(),
        token=token_var.get(),
        department_full_path=department_var.get(),
    )


def bind_request_context(ctx: RequestContext) -> None:
    """把 RequestContext 写回上下文变量（中间件和后台任务使用）"""
    trace_id_var.set(ctx.trace_id)
    request_user_var.set(ctx.request_user)
    token_var.set(ctx.token)
    department_var.set(ctx.department_full_path)


class JSONFormatter(logging.Formatter):
    """
    JSON 格式日志格式化器

    输出格式：
    {
        "timestamp": "2024-01-01T00:00:00.000Z",
        "level": "INFO",
        "logger": "app.services.function_gen_chat",
        "message": "开始生成",
        "trace_id": "abc123",
        "request_user": "beiluo",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = get_trace_id()
        if trace_id:
            log_data["trace_id"] = trace_id

        request_user = get_request_user()
        if request_user:
            log_data["request_user"] = request_user

        # 添加源代码位置（仅 DEBUG 级别）
        if record.levelno <= logging.DEBUG:
            log_data["location"] = f"{record.pathname}:{record.lineno}"

        # 添加 extra 字段（排除标准字段）
        standard_attrs = {
            "name", "msg", "args", "created", "filename", "funcName",
            "levelname", "levelno", "lineno", "module", "msecs",
            "pathname", "process", "processName", "relativeCreated",
            "stack_info", "exc_info", "exc_text", "thread", "threadName",
            "taskName", "message",
        }
        extra = {
            k: v for k, v in record.__dict__.items()
            if k not in standard_attrs and not k.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    控制台友好的日志格式化器（开发环境）

    输出格式：
    2024-01-01 00:00:00 INFO [trace_id] logger_name - message
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        color = self.COLORS.get(level, "")

        parts = [f"{timestamp} {color}{level:8}{self.RESET}"]

        trace_id = get_trace_id()
        if trace_id:
            parts.append(f"[{trace_id[:8]}]")

        parts.append(f"{record.name} -")
        parts.append(record.getMessage())

        result = " ".join(parts)

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    配置应用日志

    Args:
        level: 日志级别（DEBUG/INFO/WARNING/ERROR），默认从配置读取
        json_format: 是否使用 JSON 格式，默认生产环境使用 JSON
    """
    settings = get_settings()

    if level is None:
        level = settings.log_level
    log_level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # 降低第三方库日志级别
    for noisy_logger in (
        "uvicorn.access",
        "uvicorn.error",
        "httpx",
        "httpcore",
        "openai",
        "sqlalchemy.engine",
    ):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("app").setLevel(log_level)


def get_logger(name: str) -> logging.Logger:
    """获取 logger 实例，name 通常使用 __name__"""
    return logging.getLogger(name)


class RequestTimer:
    """
    请求计时器

    使用示例：
        timer = RequestTimer()
        timer.mark("plugin")
        timer.mark("llm")
        metrics = timer.get_metrics()
        # {"total_ms": 150, "plugin_ms": 50, "llm_ms": 100}
    """

    def __init__(self):
        self.start_time = time.perf_counter()
        self.marks: list[tuple[str, float]] = []
        self._last_mark = self.start_time

    def mark(self, name: str) -> None:
        """记录一个时间点"""
        now = time.perf_counter()
        self.marks.append((name, now - self._last_mark))
        self._last_mark = now

    def get_metrics(self) -> dict[str, float]:
        """获取各阶段耗时（毫秒）"""
        total = time.perf_counter() - self.start_time
        metrics = {"total_ms": round(total * 1000, 2)}
        for name, duration in self.marks:
            metrics[f"{name}_ms"] = round(duration * 1000, 2)
        return metrics
