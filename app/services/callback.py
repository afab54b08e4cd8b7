"""
Workspace 回调处理

workspace 完成代码入库后回调 agent server，写入生成记录的终态：
- success=true:  completed，写入 full_code_paths，清空 error_msg
- success=false: failed，error_msg 取回调中的 error，缺省为 DEFAULT_CALLBACK_ERROR

同一终态的重复回调是幂等的；与已有终态冲突的回调由 store 抛出 CallbackConflictError。
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.logging import get_logger
from app.models import RecordStatus
from app.schemas.agent_chat import FunctionGenCallback
from app.services import store

logger = get_logger(__name__)

DEFAULT_CALLBACK_ERROR = "processing failed"


async def process_callback(db: AsyncSession, callback: FunctionGenCallback) -> tuple[str, bool]:
    """
    处理 workspace 回调

    Returns:
        (记录当前状态, 本次是否改变了状态)
    """
    if callback.success:
        status = RecordStatus.COMPLETED
        changed = await store.finish_record(
            db,
            callback.record_id,
            status,
            error_msg="",
            full_code_paths=callback.full_code_paths or [],
        )
    else:
        status = RecordStatus.FAILED
        changed = await store.finish_record(
            db,
            callback.record_id,
            status,
            error_msg=callback.error or DEFAULT_CALLBACK_ERROR,
        )

    if changed:
        logger.info(
            f"生成记录已更新 - RecordID: {callback.record_id}, Status: {status}, "
            f"AppCode: {callback.app_code or ''}, Paths: {callback.full_code_paths or []}"
        )
    else:
        logger.info(f"重复回调，忽略 - RecordID: {callback.record_id}, Status: {status}")
    return status, changed
