"""
记录存储服务

封装会话、消息、生成记录、智能体、LLM 配置、知识库文档的持久化操作。

并发约束在这里以条件 UPDATE + 行数检查实现：
- acquire_session: idle -> generating 的抢占，同一会话只有一个请求能成功
- finish_record: 记录只能从 generating 离开一次，终态不再变化
- set_default_llm_config: 在同一事务内重置并设置默认 LLM

所有 SQLAlchemyError 统一转换为 PersistenceError。
"""

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    CallbackConflictError,
    NotFoundError,
    PersistenceError,
    SessionBusyError,
    SessionClosedError,
)
from app.infra.logging import get_logger
from app.models import (
    Agent,
    ChatMessage,
    ChatSession,
    FunctionGenRecord,
    KnowledgeDocument,
    LLMConfig,
    RecordStatus,
    SessionStatus,
)
from app.models.mixins import elapsed_seconds

logger = get_logger(__name__)

T = TypeVar("T")

STALE_RECORD_ERROR = "interrupted by server restart"


def _persistence(func_: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """把数据库异常转换为 PersistenceError，并回滚当前事务"""

    @functools.wraps(func_)
    async def wrapper(session: AsyncSession, *args: Any, **kwargs: Any) -> T:
        try:
            return await func_(session, *args, **kwargs)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"数据库操作失败 ({func_.__name__}): {e}")
            raise PersistenceError(f"{func_.__name__} 失败: {e}") from e

    return wrapper


# ==================== 智能体 ====================

@_persistence
async def get_agent(session: AsyncSession, agent_id: int) -> Agent | None:
    stmt = (
        select(Agent)
        .where(Agent.id == agent_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@_persistence
async def increment_generation_count(session: AsyncSession, agent_id: int) -> None:
    await session.execute(
        update(Agent)
        .where(Agent.id == agent_id)
        .values(generation_count=Agent.generation_count + 1)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


# ==================== LLM 配置 ====================

@_persistence
async def get_llm_config(session: AsyncSession, llm_config_id: int) -> LLMConfig | None:
    return await session.get(LLMConfig, llm_config_id)


@_persistence
async def get_default_llm_config(session: AsyncSession) -> LLMConfig | None:
    stmt = (
        select(LLMConfig)
        .where(LLMConfig.is_default.is_(True))
        .order_by(LLMConfig.id)
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@_persistence
async def set_default_llm_config(session: AsyncSession, llm_config_id: int) -> LLMConfig:
    """
    设置默认 LLM

    先把所有行 is_default 置为 false，再设置目标行，二者在同一事务中提交，
    保证任意时刻至多一个默认配置。
    """
    config = await session.get(LLMConfig, llm_config_id)
    if config is None:
        raise NotFoundError(f"LLM 配置不存在: {llm_config_id}")

    await session.execute(
        update(LLMConfig)
        .where(LLMConfig.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(LLMConfig)
        .where(LLMConfig.id == llm_config_id)
        .values(is_default=True)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(config)
    return config


# ==================== 知识库 ====================

@_persistence
async def list_documents(session: AsyncSession, knowledge_base_id: int) -> list[KnowledgeDocument]:
    """按插入顺序返回知识库的全部文档（状态过滤由调用方完成）"""
    stmt = (
        select(KnowledgeDocument)
        .where(KnowledgeDocument.knowledge_base_id == knowledge_base_id)
        .order_by(KnowledgeDocument.id)
    )
    return list((await session.execute(stmt)).scalars().all())


# ==================== 会话 ====================

@_persistence
async def create_session(
    session: AsyncSession,
    *,
    session_id: str,
    tree_id: int,
    agent_id: int,
    user: str = "",
    status: str = SessionStatus.GENERATING,
    title: str = "",
) -> ChatSession:
    chat_session = ChatSession(
        session_id=session_id,
        tree_id=tree_id,
        agent_id=agent_id,
        user=user,
        status=status,
        title=title,
    )
    session.add(chat_session)
    await session.commit()
    await session.refresh(chat_session)
    return chat_session


@_persistence
async def get_session(session: AsyncSession, session_id: str) -> ChatSession | None:
    stmt = (
        select(ChatSession)
        .where(ChatSession.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@_persistence
async def list_sessions(
    session: AsyncSession,
    tree_id: int,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ChatSession], int]:
    """按创建时间倒序分页列出服务目录下的会话"""
    count_stmt = select(func.count()).select_from(ChatSession).where(ChatSession.tree_id == tree_id)
    total = (await session.execute(count_stmt)).scalar() or 0

    stmt = (
        select(ChatSession)
        .where(ChatSession.tree_id == tree_id)
        .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    sessions = list((await session.execute(stmt)).scalars().all())
    return sessions, total


@_persistence
async def acquire_session(session: AsyncSession, session_id: str) -> ChatSession:
    """
    抢占会话：idle -> generating

    条件 UPDATE 同时要求会话为 idle 且不存在 generating 的生成记录，
    并发请求中只有一个能拿到 rowcount == 1，其余得到 SessionBusyError。
    """
    in_flight = exists().where(
        FunctionGenRecord.session_id == session_id,
        FunctionGenRecord.status == RecordStatus.GENERATING,
    )
    result = await session.execute(
        update(ChatSession)
        .where(
            ChatSession.session_id == session_id,
            ChatSession.status == SessionStatus.IDLE,
            ~in_flight,
        )
        .values(status=SessionStatus.GENERATING)
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    chat_session = await get_session(session, session_id)
    if result.rowcount == 1 and chat_session is not None:
        return chat_session

    if chat_session is None:
        raise NotFoundError(f"会话不存在: {session_id}")
    if chat_session.status == SessionStatus.DONE:
        raise SessionClosedError("会话已结束，不能再输入，请新建会话继续生成")
    raise SessionBusyError("会话正在生成中，请等待完成后再试")


@_persistence
async def release_session(session: AsyncSession, session_id: str) -> bool:
    """generating -> idle；已关闭的会话保持 done"""
    result = await session.execute(
        update(ChatSession)
        .where(
            ChatSession.session_id == session_id,
            ChatSession.status == SessionStatus.GENERATING,
        )
        .values(status=SessionStatus.IDLE)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount == 1


@_persistence
async def close_session(session: AsyncSession, session_id: str) -> ChatSession:
    """关闭会话（终态 done）"""
    await session.execute(
        update(ChatSession)
        .where(ChatSession.session_id == session_id)
        .values(status=SessionStatus.DONE)
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    chat_session = await get_session(session, session_id)
    if chat_session is None:
        raise NotFoundError(f"会话不存在: {session_id}")
    return chat_session


@_persistence
async def update_session_title(session: AsyncSession, session_id: str, title: str) -> None:
    await session.execute(
        update(ChatSession)
        .where(ChatSession.session_id == session_id)
        .values(title=title)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


# ==================== 消息 ====================

@_persistence
async def append_message(
    session: AsyncSession,
    *,
    session_id: str,
    agent_id: int,
    role: str,
    content: str,
    files: str | None = None,
    user: str = "",
) -> ChatMessage:
    message = ChatMessage(
        session_id=session_id,
        agent_id=agent_id,
        role=role,
        content=content,
        files=files,
        user=user,
    )
    session.add(message)
    await session.commit()
    await session.refresh(message)
    return message


@_persistence
async def list_messages(session: AsyncSession, session_id: str) -> list[ChatMessage]:
    """按 created_at 升序列出会话全部消息，时间相同按 id"""
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


@_persistence
async def list_recent_messages(session: AsyncSession, session_id: str, limit: int) -> list[ChatMessage]:
    """取最近 limit 条消息（倒序查询后反转为升序）"""
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    messages = list((await session.execute(stmt)).scalars().all())
    messages.reverse()
    return messages


# ==================== 生成记录 ====================

@_persistence
async def create_record(
    session: AsyncSession,
    *,
    session_id: str,
    message_id: int,
    agent_id: int,
    tree_id: int,
    user: str = "",
    metadata: dict | None = None,
) -> FunctionGenRecord:
    record = FunctionGenRecord(
        session_id=session_id,
        message_id=message_id,
        agent_id=agent_id,
        tree_id=tree_id,
        user=user,
        status=RecordStatus.GENERATING,
        full_code_paths=[],
        extra_metadata=metadata or {},
    )
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


@_persistence
async def get_record(session: AsyncSession, record_id: int) -> FunctionGenRecord | None:
    stmt = (
        select(FunctionGenRecord)
        .where(FunctionGenRecord.id == record_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@_persistence
async def get_latest_record_by_session(session: AsyncSession, session_id: str) -> FunctionGenRecord | None:
    stmt = (
        select(FunctionGenRecord)
        .where(FunctionGenRecord.session_id == session_id)
        .order_by(FunctionGenRecord.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


@_persistence
async def list_records(
    session: AsyncSession,
    *,
    tree_id: int | None = None,
    agent_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[FunctionGenRecord]:
    stmt = select(FunctionGenRecord)
    if tree_id is not None:
        stmt = stmt.where(FunctionGenRecord.tree_id == tree_id)
    if agent_id is not None:
        stmt = stmt.where(FunctionGenRecord.agent_id == agent_id)
    if status is not None:
        stmt = stmt.where(FunctionGenRecord.status == status)
    stmt = (
        stmt.order_by(FunctionGenRecord.id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list((await session.execute(stmt)).scalars().all())


@_persistence
async def update_record_code(session: AsyncSession, record_id: int, code: str) -> None:
    await session.execute(
        update(FunctionGenRecord)
        .where(FunctionGenRecord.id == record_id)
        .values(code=code)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


@_persistence
async def update_record_metadata(session: AsyncSession, record_id: int, metadata: dict) -> None:
    await session.execute(
        update(FunctionGenRecord)
        .where(FunctionGenRecord.id == record_id)
        .values(extra_metadata=metadata)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


@_persistence
async def finish_record(
    session: AsyncSession,
    record_id: int,
    status: str,
    *,
    error_msg: str = "",
    full_code_paths: list[str] | None = None,
) -> bool:
    """
    把记录从 generating 推进到终态

    status、error_msg、duration_seconds、full_code_paths 在同一条 UPDATE 中写入。

    Returns:
        True 表示本次完成了状态迁移；False 表示记录已处于同一终态（幂等，无修改）

    Raises:
        NotFoundError: 记录不存在
        CallbackConflictError: 记录已处于另一个终态
    """
    record = await get_record(session, record_id)
    if record is None:
        raise NotFoundError(f"生成记录不存在: {record_id}")

    values: dict[str, Any] = {
        "status": status,
        "error_msg": error_msg,
        "duration_seconds": elapsed_seconds(record.created_at),
    }
    if full_code_paths is not None:
        values["full_code_paths"] = list(full_code_paths)

    result = await session.execute(
        update(FunctionGenRecord)
        .where(
            FunctionGenRecord.id == record_id,
            FunctionGenRecord.status == RecordStatus.GENERATING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    if result.rowcount == 1:
        return True

    current = await get_record(session, record_id)
    if current is not None and current.status == status:
        return False
    raise CallbackConflictError(
        f"生成记录已处于终态 {current.status if current else 'unknown'}，不能变更为 {status}"
    )


@_persistence
async def mark_stale_records_failed(session: AsyncSession) -> int:
    """
    服务重启后清理未完成的任务

    generating 的记录已无后台任务负责，标记为 failed；
    generating 的会话恢复为 idle。
    """
    result = await session.execute(
        update(FunctionGenRecord)
        .where(FunctionGenRecord.status == RecordStatus.GENERATING)
        .values(status=RecordStatus.FAILED, error_msg=STALE_RECORD_ERROR)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(ChatSession)
        .where(ChatSession.status == SessionStatus.GENERATING)
        .values(status=SessionStatus.IDLE)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0
