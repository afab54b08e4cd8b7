"""
数据库会话管理

这个模块负责：
1. 创建数据库引擎（连接池）
2. 提供异步会话工厂
3. 实现 FastAPI 依赖注入的数据库会话获取函数

核心概念：
- Engine: 数据库连接池，管理与数据库的物理连接
- SessionLocal: 会话工厂；HTTP 请求通过 get_db 获取会话，
  后台生成任务直接用 SessionLocal() 打开独立会话

使用方式（在 FastAPI 路由中）：
    from app.db.session import get_db

    @router.get("/sessions")
    async def list_sessions(db: AsyncSession = Depends(get_db)):
        ...
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.db.base import Base

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    """连接池参数；SQLite（测试/本地）使用驱动默认连接池"""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,  # 取连接前先探活，避免使用已断开的连接
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,   # 防止数据库端超时断开
    }


# ==================== 创建数据库引擎 ====================
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    **_engine_options(settings.database_url),
)

# ==================== 创建会话工厂 ====================
SessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,  # 提交后仍可访问对象属性
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话（FastAPI 依赖注入函数）

    为每个请求创建一个新的数据库会话，请求结束后自动关闭。
    """
    async with SessionLocal() as session:
        yield session


async def init_models() -> None:
    """
    初始化数据库表（仅开发/测试环境使用）

    生产环境应使用 Alembic 迁移；此方法不会修改已存在的表结构。
    """
    from app import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
