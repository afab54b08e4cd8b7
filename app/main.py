"""
FastAPI 应用实例

这是 FastAPI 应用的核心配置文件，负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（启动建表、清理中断任务、关闭时等待后台任务）
3. 注册所有 API 路由
4. 配置结构化日志、请求追踪和统一错误响应
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.config import get_settings
from app.db.session import SessionLocal, init_models
from app.exceptions import AgentServerError
from app.infra.logging import get_logger, setup_logging
from app.middleware import RequestTraceMiddleware
from app.services import store
from app.services.function_gen_chat import get_function_gen_chat_service

setup_logging()
logger = get_logger(__name__)

settings = get_settings()


async def _mark_interrupted_records():
    """
    检测并标记中断的生成任务

    服务重启时，generating 状态的记录已没有后台任务在处理，
    标记为 failed，避免会话一直处于"生成中"。
    """
    try:
        async with SessionLocal() as session:
            count = await store.mark_stale_records_failed(session)
            if count > 0:
                logger.warning(f"检测到 {count} 个中断的生成任务，已标记为 failed")
    except AgentServerError as e:
        # 表还不存在（首次启动，尚未迁移）
        logger.debug(f"检测中断任务时出错（可能是首次启动）: {e.message}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    - 开发/测试环境：使用 init_models() 自动创建表
    - 生产环境：使用 Alembic 进行数据库迁移
    """
    logger.info(f"应用启动中... 环境: {settings.environment}")

    if settings.environment in ("dev", "development", "test"):
        await init_models()
        logger.info("数据库表初始化完成（开发模式）")
    else:
        logger.info("跳过自动建表，请使用 Alembic 迁移")

    if settings.sweep_stale_records_on_startup:
        await _mark_interrupted_records()

    yield

    pending = get_function_gen_chat_service().pending
    if pending:
        logger.info(f"等待 {pending} 个后台生成任务结束...")
    await get_function_gen_chat_service().shutdown()


app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
)

app.add_middleware(RequestTraceMiddleware)

# CORS 配置：允许前端跨域访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(AgentServerError)
async def agent_server_error_handler(_: Request, exc: AgentServerError):
    """业务错误统一映射为 {"detail", "code"}，HTTP 状态码由错误类型决定"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": code},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    # 将 Pydantic 校验错误统一映射为 VALIDATION_ERROR
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "code": "VALIDATION_ERROR"},
    )
