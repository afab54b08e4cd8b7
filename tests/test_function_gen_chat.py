"""
函数生成对话编排测试

测试 app/services/function_gen_chat.py，LLM 与 workspace 均为模拟对象：
- 知识库智能体完整流程（同步受理 -> 后台生成 -> 回调）
- 会话忙 / 已关闭
- 插件智能体（数据拼接、插件报错）
- 默认 LLM 回退
- 代码提取回退
- 后台失败（LLM 失败、提交失败、关闭时取消）
"""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import Settings
from app.infra.llm import LLMClient
from app.exceptions import (
    AgentDisabledError,
    ChatError,
    NoDefaultLLMError,
    NotFoundError,
    PluginError,
    SessionBusyError,
    SessionClosedError,
    SubmissionError,
)
from app.models import AgentType, DocumentStatus, MessageRole, RecordStatus, SessionStatus
from app.schemas.agent_chat import ChatInputMessage, FunctionGenCallback, FunctionGenChatRequest
from app.schemas.internal import AddFunctionsAck, ChatResponse, PluginFile, PluginRunResult
from app.services import store
from app.services.callback import process_callback
from app.services.function_gen_chat import (
    GENERATING_CONTENT,
    NEW_SESSION_TITLE,
    FunctionGenChatService,
    make_title,
)

from tests.conftest import seed_agent, seed_knowledge_base, seed_llm_config

LLM_OUTPUT = "Sure.\n```py\nprint(1)\n```\n"


def _request(agent_id: int, content: str = "hi", session_id: str = "", **kwargs) -> FunctionGenChatRequest:
    return FunctionGenChatRequest(
        agent_id=agent_id,
        tree_id=kwargs.pop("tree_id", 42),
        session_id=session_id,
        message=ChatInputMessage(content=content, files=kwargs.pop("files", None)),
        **kwargs,
    )


def _llm(content: str = LLM_OUTPUT, side_effect=None) -> MagicMock:
    client = MagicMock()
    client.chat = AsyncMock(return_value=ChatResponse(content=content), side_effect=side_effect)
    return client


def _workspace(plugin_result: PluginRunResult | None = None) -> MagicMock:
    workspace = MagicMock()
    workspace.run_plugin = AsyncMock(return_value=plugin_result or PluginRunResult())
    workspace.submit_generated_code = AsyncMock(
        side_effect=lambda request, ctx: AddFunctionsAck(record_id=request.record_id, message="ok")
    )
    return workspace


def _service(session_factory, llm_client, workspace) -> tuple[FunctionGenChatService, MagicMock]:
    factory = MagicMock(return_value=llm_client)
    service = FunctionGenChatService(
        session_factory=session_factory,
        workspace=workspace,
        llm_client_factory=factory,
        settings=Settings(),
    )
    return service, factory


async def _knowledge_agent(db, **kwargs):
    kb = await seed_knowledge_base(db, [("rules", "use tabs", DocumentStatus.COMPLETED)])
    return await seed_agent(db, kb, system_prompt_template="You code.", **kwargs)


def _sent_messages(llm_client: MagicMock) -> list:
    return llm_client.chat.call_args.args[0].messages


class TestMakeTitle:
    """测试会话标题生成"""

    def test_short_content(self):
        assert make_title("生成工单函数") == "生成工单函数"

    def test_newlines_replaced(self):
        assert make_title("  line1\nline2\n") == "line1 line2"

    def test_truncated_by_characters(self):
        content = "函" * 60
        title = make_title(content)
        assert title == "函" * 50 + "..."

    def test_empty_content(self):
        assert make_title("\n  \n") == NEW_SESSION_TITLE


class TestKnowledgeOnlyFlow:
    """知识库智能体完整流程"""

    @pytest.mark.asyncio
    async def test_happy_path(self, db, session_factory, ctx):
        llm_config = await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        llm_client, workspace = _llm(), _workspace()
        service, factory = _service(session_factory, llm_client, workspace)

        response = await service.chat(db, _request(agent.id), ctx)

        assert response.status == RecordStatus.GENERATING
        assert response.content == GENERATING_CONTENT
        assert response.record_id > 0
        uuid.UUID(response.session_id)

        await service.drain()
        assert service.pending == 0

        factory.assert_called_once()
        assert factory.call_args.args[0].id == llm_config.id

        messages = _sent_messages(llm_client)
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].content == "You code.\n\n## rules\nuse tabs"
        assert messages[1].content == "hi"

        async with session_factory() as check:
            history = await store.list_messages(check, response.session_id)
            assert [(m.role, m.content) for m in history] == [
                (MessageRole.USER, "hi"),
                (MessageRole.ASSISTANT, LLM_OUTPUT),
            ]
            assert history[0].user == "alice"

            record = await store.get_record(check, response.record_id)
            assert record.status == RecordStatus.GENERATING
            assert record.code == "print(1)"
            assert record.message_id == history[0].id
            assert record.extra_metadata["user_message"] == "hi"

            chat_session = await store.get_session(check, response.session_id)
            assert chat_session.status == SessionStatus.IDLE
            assert chat_session.title == "hi"
            assert chat_session.tree_id == 42

            refreshed_agent = await store.get_agent(check, agent.id)
            assert refreshed_agent.generation_count == 1

        workspace.submit_generated_code.assert_awaited_once()
        submitted, submitted_ctx = workspace.submit_generated_code.call_args.args
        assert submitted.record_id == response.record_id
        assert submitted.code == "print(1)"
        assert submitted.source_code == "print(1)"
        assert submitted.tree_id == 42
        assert submitted.user == "alice"
        assert submitted_ctx.trace_id == "trace-test"

        async with session_factory() as cb:
            status, changed = await process_callback(
                cb,
                FunctionGenCallback(
                    record_id=response.record_id,
                    success=True,
                    full_code_paths=["/u/a/pkg/f.py"],
                ),
            )
            assert (status, changed) == (RecordStatus.COMPLETED, True)

            record = await store.get_record(cb, response.record_id)
            assert record.status == RecordStatus.COMPLETED
            assert record.full_code_paths == ["/u/a/pkg/f.py"]

    @pytest.mark.asyncio
    async def test_package_and_existing_files_in_system_prompt(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        llm_client = _llm()
        service, _ = _service(session_factory, llm_client, _workspace())

        await service.chat(
            db,
            _request(agent.id, package="crm", existing_files=["crm_ticket"]),
            ctx,
        )
        await service.drain()

        system = _sent_messages(llm_client)[0].content
        assert "Current package context: crm" in system
        assert "- crm_ticket.py" in system

    @pytest.mark.asyncio
    async def test_follow_up_includes_history(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        llm_client = _llm()
        service, _ = _service(session_factory, llm_client, _workspace())

        first = await service.chat(db, _request(agent.id, "hi"), ctx)
        await service.drain()
        async with session_factory() as cb:
            await process_callback(cb, FunctionGenCallback(record_id=first.record_id, success=True))

        second = await service.chat(db, _request(agent.id, "next", session_id=first.session_id), ctx)
        await service.drain()

        assert second.session_id == first.session_id
        assert second.record_id != first.record_id
        messages = _sent_messages(llm_client)
        assert [(m.role, m.content) for m in messages[1:]] == [
            ("user", "hi"),
            ("assistant", LLM_OUTPUT),
            ("user", "next"),
        ]

        async with session_factory() as check:
            chat_session = await store.get_session(check, first.session_id)
            assert chat_session.title == "hi"

    @pytest.mark.asyncio
    async def test_bound_llm_config_preferred(self, db, session_factory, ctx):
        await seed_llm_config(db, name="default", is_default=True)
        bound = await seed_llm_config(db, name="bound", is_default=False, provider="kimi")
        agent = await _knowledge_agent(db, llm_config_id=bound.id)
        service, factory = _service(session_factory, _llm(), _workspace())

        await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        config, timeout = factory.call_args.args
        assert config.id == bound.id
        assert timeout == Settings().llm_default_timeout_seconds


class TestAdmission:
    """测试会话准入"""

    @pytest.mark.asyncio
    async def test_busy_while_waiting_for_callback(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        service, _ = _service(session_factory, _llm(), _workspace())

        first = await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        with pytest.raises(SessionBusyError):
            await service.chat(db, _request(agent.id, "again", session_id=first.session_id), ctx)

        async with session_factory() as check:
            assert len(await store.list_messages(check, first.session_id)) == 2
            records = await store.list_records(check, tree_id=42)
            assert len(records) == 1

    @pytest.mark.asyncio
    async def test_busy_while_generating(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        release = asyncio.Event()

        async def slow_chat(request):
            await release.wait()
            return ChatResponse(content=LLM_OUTPUT)

        llm_client = MagicMock()
        llm_client.chat = slow_chat
        service, _ = _service(session_factory, llm_client, _workspace())

        first = await service.chat(db, _request(agent.id), ctx)
        with pytest.raises(SessionBusyError):
            await service.chat(db, _request(agent.id, "again", session_id=first.session_id), ctx)

        async with session_factory() as check:
            history = await store.list_messages(check, first.session_id)
            assert [m.content for m in history] == ["hi"]
            assert len(await store.list_records(check, tree_id=42)) == 1

        release.set()
        await service.drain()

    @pytest.mark.asyncio
    async def test_closed_session(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        service, _ = _service(session_factory, _llm(), _workspace())

        first = await service.chat(db, _request(agent.id), ctx)
        await service.drain()
        await store.close_session(db, first.session_id)

        with pytest.raises(SessionClosedError):
            await service.chat(db, _request(agent.id, "again", session_id=first.session_id), ctx)

    @pytest.mark.asyncio
    async def test_unknown_session(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        service, _ = _service(session_factory, _llm(), _workspace())

        with pytest.raises(NotFoundError):
            await service.chat(db, _request(agent.id, session_id="missing"), ctx)

    @pytest.mark.asyncio
    async def test_missing_agent(self, db, session_factory, ctx):
        service, _ = _service(session_factory, _llm(), _workspace())
        with pytest.raises(NotFoundError):
            await service.chat(db, _request(999), ctx)

    @pytest.mark.asyncio
    async def test_disabled_agent(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db, enabled=False)
        service, _ = _service(session_factory, _llm(), _workspace())
        with pytest.raises(AgentDisabledError):
            await service.chat(db, _request(agent.id), ctx)


class TestDefaultLLMFallback:
    """测试默认 LLM 回退"""

    @pytest.mark.asyncio
    async def test_no_default_persists_nothing(self, db, session_factory, ctx):
        await seed_llm_config(db, is_default=False)
        agent = await _knowledge_agent(db)
        llm_client = _llm()
        service, factory = _service(session_factory, llm_client, _workspace())

        with pytest.raises(NoDefaultLLMError):
            await service.chat(db, _request(agent.id), ctx)

        factory.assert_not_called()
        sessions, total = await store.list_sessions(db, tree_id=42)
        assert total == 0
        assert await store.list_records(db) == []


class TestPluginAgent:
    """插件智能体"""

    @pytest.mark.asyncio
    async def test_plugin_data_appended(self, db, session_factory, ctx):
        await seed_llm_config(db)
        kb = await seed_knowledge_base(db)
        agent = await seed_agent(
            db,
            kb,
            agent_type=AgentType.PLUGIN,
            plugin_function_path="/p/q",
            system_prompt_template="You code.",
        )
        llm_client = _llm()
        workspace = _workspace(PluginRunResult(data="EXTRA"))
        service, _ = _service(session_factory, llm_client, workspace)

        files = [PluginFile(url="http://f/1", remark="需求说明")]
        response = await service.chat(db, _request(agent.id, "base", files=files), ctx)
        await service.drain()

        plugin_agent, plugin_request, plugin_ctx = workspace.run_plugin.call_args.args
        assert plugin_agent.id == agent.id
        assert plugin_request.content == "base"
        assert plugin_request.input_files == files
        assert plugin_ctx.request_user == "alice"

        messages = _sent_messages(llm_client)
        assert messages[0].content == "You code."
        assert messages[-1].content == "base\n\nEXTRA"

        async with session_factory() as check:
            record = await store.get_record(check, response.record_id)
            assert record.extra_metadata["plugin_data"] == "EXTRA"
            assert record.extra_metadata["files"] == [{"url": "http://f/1", "remark": "需求说明"}]

            history = await store.list_messages(check, response.session_id)
            assert history[0].content == "base"
            assert "http://f/1" in history[0].files

    @pytest.mark.asyncio
    async def test_plugin_error_fails_record(self, db, session_factory, ctx):
        await seed_llm_config(db)
        kb = await seed_knowledge_base(db)
        agent = await seed_agent(
            db, kb, agent_type=AgentType.PLUGIN, plugin_function_path="/p/q"
        )
        llm_client = _llm()
        service, _ = _service(session_factory, llm_client, _workspace(PluginRunResult(error="boom")))

        with pytest.raises(PluginError, match="boom"):
            await service.chat(db, _request(agent.id, "base"), ctx)
        await service.drain()

        llm_client.chat.assert_not_called()
        records = await store.list_records(db)
        assert len(records) == 1
        assert records[0].status == RecordStatus.FAILED
        assert "boom" in records[0].error_msg

        chat_session = await store.get_session(db, records[0].session_id)
        assert chat_session.status == SessionStatus.IDLE


class TestCodeExtraction:
    """测试生成记录中的代码"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "output, expected",
        [
            ("just words", "just words"),
            ("```py\nfirst()\n```\ntext\n```py\nsecond()\n```", "first()"),
        ],
    )
    async def test_record_code(self, db, session_factory, ctx, output, expected):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        service, _ = _service(session_factory, _llm(output), _workspace())

        response = await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        async with session_factory() as check:
            record = await store.get_record(check, response.record_id)
            assert record.code == expected


class TestBackgroundFailures:
    """测试后台阶段失败"""

    @pytest.mark.asyncio
    async def test_llm_failure_fails_record(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        llm_client = _llm(side_effect=ChatError("LLM 调用失败", kind=ChatError.TRANSPORT))
        workspace = _workspace()
        service, _ = _service(session_factory, llm_client, workspace)

        response = await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        workspace.submit_generated_code.assert_not_called()
        async with session_factory() as check:
            record = await store.get_record(check, response.record_id)
            assert record.status == RecordStatus.FAILED
            assert record.error_msg == "LLM 调用失败"

            history = await store.list_messages(check, response.session_id)
            assert [m.role for m in history] == [MessageRole.USER]

            chat_session = await store.get_session(check, response.session_id)
            assert chat_session.status == SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_submission_failure_fails_record(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        workspace = _workspace()
        workspace.submit_generated_code = AsyncMock(side_effect=SubmissionError("提交生成代码失败: HTTP 500"))
        service, _ = _service(session_factory, _llm(), workspace)

        response = await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        async with session_factory() as check:
            record = await store.get_record(check, response.record_id)
            assert record.status == RecordStatus.FAILED
            assert "HTTP 500" in record.error_msg
            assert record.code == "print(1)"

            history = await store.list_messages(check, response.session_id)
            assert [m.role for m in history] == [MessageRole.USER, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_inflight_generation(self, db, session_factory, ctx):
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)

        async def hanging_chat(request):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                raise ChatError("LLM 调用已取消", kind=ChatError.CANCELLED)
            return ChatResponse(content=LLM_OUTPUT)

        llm_client = MagicMock()
        llm_client.chat = hanging_chat
        service, _ = _service(session_factory, llm_client, _workspace())

        response = await service.chat(db, _request(agent.id), ctx)
        await service.shutdown(grace_seconds=0.05)
        assert service.pending == 0

        async with session_factory() as check:
            record = await store.get_record(check, response.record_id)
            assert record.status == RecordStatus.FAILED
            assert record.error_msg == "LLM 调用已取消"

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_record(self, db, session_factory, ctx):
        """非业务异常同样把记录置为 failed，会话可以继续输入"""
        await seed_llm_config(db)
        agent = await _knowledge_agent(db)
        llm_client = _llm(side_effect=[RuntimeError("boom"), ChatResponse(content=LLM_OUTPUT)])
        service, _ = _service(session_factory, llm_client, _workspace())

        first = await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        async with session_factory() as check:
            record = await store.get_record(check, first.record_id)
            assert record.status == RecordStatus.FAILED
            assert record.error_msg == "boom"

            chat_session = await store.get_session(check, first.session_id)
            assert chat_session.status == SessionStatus.IDLE

        second = await service.chat(db, _request(agent.id, "again", session_id=first.session_id), ctx)
        await service.drain()
        assert second.session_id == first.session_id

    @pytest.mark.asyncio
    async def test_malformed_api_base_fails_record(self, db, session_factory, ctx):
        await seed_llm_config(db, provider="ollama", api_key="", api_base="http://[::1")
        agent = await _knowledge_agent(db)
        workspace = _workspace()
        service = FunctionGenChatService(
            session_factory=session_factory,
            workspace=workspace,
            llm_client_factory=LLMClient.from_config,
            settings=Settings(),
        )

        response = await service.chat(db, _request(agent.id), ctx)
        await service.drain()

        workspace.submit_generated_code.assert_not_called()
        async with session_factory() as check:
            record = await store.get_record(check, response.record_id)
            assert record.status == RecordStatus.FAILED
            assert record.error_msg

            # 记录已终结，同一会话可以继续对话
            await store.acquire_session(check, response.session_id)
