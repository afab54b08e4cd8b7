"""
健康检查接口

用于 Kubernetes 等容器编排系统进行存活探测和就绪探测。
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session
from app.infra.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health")
async def healthcheck() -> dict:
    """存活探测，返回 {"status": "ok"}"""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness(db: AsyncSession = Depends(get_db_session)) -> dict:
    """就绪探测：检查数据库连接"""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"数据库连接检查失败: {e}")
        return {"status": "degraded", "database": "error"}
    return {"status": "ok", "database": "ok"}
