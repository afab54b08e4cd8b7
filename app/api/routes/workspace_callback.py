"""
Workspace 回调路由

- POST /agent/api/v1/workspace/update/callback

workspace 完成代码入库后回调此接口。重复的终态回调返回 200 且不修改记录；
与已有终态冲突的回调返回 409（CALLBACK_CONFLICT）。
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session
from app.schemas.agent_chat import CallbackResponse, FunctionGenCallback
from app.services.callback import process_callback

router = APIRouter(prefix="/agent/api/v1/workspace", tags=["workspace-callback"])


@router.post("/update/callback", response_model=CallbackResponse)
async def workspace_update_callback(
    payload: FunctionGenCallback,
    db: AsyncSession = Depends(get_db_session),
):
    """接收 workspace 的处理结果"""
    status, changed = await process_callback(db, payload)
    return CallbackResponse(record_id=payload.record_id, status=status, changed=changed)
