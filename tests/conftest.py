"""
测试公共夹具

- 导入应用前把数据库切换到 SQLite，避免连接真实 PostgreSQL
- 每个测试使用独立的 SQLite 文件数据库（aiosqlite + NullPool），
  后台任务与请求各自持有连接，互不干扰
- 提供种子数据辅助函数
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_agent.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SWEEP_STALE_RECORDS_ON_STARTUP", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.db.base import Base
from app.infra.logging import RequestContext
from app.models import (
    Agent,
    AgentType,
    KnowledgeBase,
    KnowledgeDocument,
    LLMConfig,
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """每个测试一个数据库文件，每次取连接都新建"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'agent.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ctx():
    return RequestContext(
        trace_id="trace-test",
        request_user="alice",
        token="tok-1",
        department_full_path="/corp/dev",
    )


# ==================== 种子数据 ====================

async def seed_knowledge_base(session, documents=()):
    """创建知识库；documents 为 (title, content, status) 列表"""
    kb = KnowledgeBase(name="kb", document_count=len(documents))
    session.add(kb)
    await session.flush()
    for title, content, status in documents:
        session.add(
            KnowledgeDocument(
                knowledge_base_id=kb.id,
                title=title,
                content=content,
                status=status,
            )
        )
    await session.commit()
    return kb


async def seed_llm_config(session, *, is_default=True, provider="openai", **kwargs):
    config = LLMConfig(
        name=kwargs.pop("name", "default"),
        provider=provider,
        model=kwargs.pop("model", "gpt-4o-mini"),
        api_key=kwargs.pop("api_key", "sk-test"),
        is_default=is_default,
        **kwargs,
    )
    session.add(config)
    await session.commit()
    return config


async def seed_agent(session, kb, *, agent_type=AgentType.KNOWLEDGE_ONLY, **kwargs):
    agent = Agent(
        name=kwargs.pop("name", "coder"),
        agent_type=agent_type,
        knowledge_base_id=kb.id,
        **kwargs,
    )
    session.add(agent)
    await session.commit()
    return agent
