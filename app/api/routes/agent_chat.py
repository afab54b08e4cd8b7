"""
智能体对话路由

端点：
- POST /agent/chat/function_gen            函数生成对话（立即返回，LLM 在后台执行）
- GET  /agent/chat/function_gen/status     查询生成记录状态
- GET  /agent/chat/function_gen/records    生成记录列表
- GET  /agent/chat/sessions                会话列表（按服务目录分页）
- GET  /agent/chat/messages                会话消息列表（按时间升序）
- POST /agent/chat/session/close           关闭会话
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_chat_service, get_db_session
from app.exceptions import NotFoundError
from app.schemas.agent_chat import (
    ChatMessageInfo,
    ChatMessageListResponse,
    ChatSessionInfo,
    ChatSessionListResponse,
    CloseSessionRequest,
    FunctionGenChatRequest,
    FunctionGenChatResponse,
    FunctionGenRecordListResponse,
    FunctionGenRecordResponse,
)
from app.services import store
from app.services.function_gen_chat import FunctionGenChatService

router = APIRouter(prefix="/agent/chat", tags=["agent-chat"])


# ==================== 函数生成 ====================

@router.post("/function_gen", response_model=FunctionGenChatResponse)
async def function_gen_chat(
    payload: FunctionGenChatRequest,
    db: AsyncSession = Depends(get_db_session),
    service: FunctionGenChatService = Depends(get_chat_service),
):
    """
    函数生成对话

    首次对话 session_id 留空，后端创建会话并返回 session_id。
    返回 status=generating 和 record_id，客户端轮询 /function_gen/status 获取结果。
    """
    return await service.chat(db, payload)


@router.get("/function_gen/status", response_model=FunctionGenRecordResponse)
async def function_gen_status(
    record_id: int = Query(..., gt=0, description="生成记录 ID"),
    db: AsyncSession = Depends(get_db_session),
):
    """查询生成记录当前状态"""
    record = await store.get_record(db, record_id)
    if record is None:
        raise NotFoundError(f"生成记录不存在: {record_id}")
    return FunctionGenRecordResponse.model_validate(record)


@router.get("/function_gen/records", response_model=FunctionGenRecordListResponse)
async def list_function_gen_records(
    tree_id: int | None = Query(None, description="服务目录 ID"),
    agent_id: int | None = Query(None, description="智能体 ID"),
    status: str | None = Query(None, description="记录状态"),
    limit: int = Query(50, ge=1, le=200, description="返回数量"),
    db: AsyncSession = Depends(get_db_session),
):
    """按服务目录、智能体、状态过滤生成记录（按 ID 倒序）"""
    records = await store.list_records(
        db, tree_id=tree_id, agent_id=agent_id, status=status, limit=limit
    )
    return FunctionGenRecordListResponse(
        records=[FunctionGenRecordResponse.model_validate(r) for r in records]
    )


# ==================== 会话与消息 ====================

@router.get("/sessions", response_model=ChatSessionListResponse)
async def list_sessions(
    tree_id: int = Query(..., description="服务目录 ID"),
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(20, ge=1, le=100, description="每页数量"),
    db: AsyncSession = Depends(get_db_session),
):
    """会话列表，按创建时间倒序"""
    sessions, total = await store.list_sessions(db, tree_id, page, page_size)
    return ChatSessionListResponse(
        sessions=[ChatSessionInfo.model_validate(s) for s in sessions],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/messages", response_model=ChatMessageListResponse)
async def list_messages(
    session_id: str = Query(..., min_length=1, description="会话 ID"),
    db: AsyncSession = Depends(get_db_session),
):
    """会话消息列表，按创建时间升序"""
    if await store.get_session(db, session_id) is None:
        raise NotFoundError(f"会话不存在: {session_id}")
    messages = await store.list_messages(db, session_id)
    return ChatMessageListResponse(
        messages=[ChatMessageInfo.model_validate(m) for m in messages]
    )


@router.post("/session/close", response_model=ChatSessionInfo)
async def close_session(
    payload: CloseSessionRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """关闭会话，之后不再接受输入"""
    chat_session = await store.close_session(db, payload.session_id)
    return ChatSessionInfo.model_validate(chat_session)
