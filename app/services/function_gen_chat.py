"""
函数生成对话服务（编排器）

一次对话分两段执行：

同步段（在 HTTP 请求内完成）：
    1. 校验智能体
    2. 解析 LLM 配置并构建客户端（失败时不落任何数据）
    3. 会话准入：新建会话，或把已有会话从 idle 抢占为 generating
    4. 保存用户消息；新会话生成标题
    5. 加载历史消息和知识库
    6. 创建 generating 状态的生成记录
    7. plugin 类型智能体调用插件
    8. 组装 LLM 消息，启动后台任务，立即返回 record_id

后台段（独立于 HTTP 请求的生命周期）：
    调用 LLM -> 保存 assistant 消息 -> 提取代码 -> 写入记录 -> 提交 workspace
    任何一步失败都把记录标记为 failed；结束时会话恢复为 idle。

最终状态由 workspace 回调写入（见 app/services/callback.py）。
"""

import asyncio
import json
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.db.session import SessionLocal
from app.exceptions import (
    AgentDisabledError,
    AgentServerError,
    NoDefaultLLMError,
    NotFoundError,
    PluginError,
)
from app.infra.llm import LLMClient, chat_request_from_config
from app.infra.logging import (
    RequestContext,
    RequestTimer,
    bind_request_context,
    current_request_context,
    get_logger,
)
from app.infra.workspace import WorkspaceClient
from app.models import (
    Agent,
    AgentType,
    ChatSession,
    FunctionGenRecord,
    LLMConfig,
    MessageRole,
    RecordStatus,
    SessionStatus,
)
from app.schemas.agent_chat import FunctionGenChatRequest, FunctionGenChatResponse
from app.schemas.internal import AddFunctionsRequest, ChatRequest, PluginRunRequest
from app.services import store
from app.services.code_extractor import extract_code
from app.services.knowledge import load_knowledge
from app.services.prompt import build_messages

logger = get_logger(__name__)

GENERATING_CONTENT = "Generating…"
NEW_SESSION_TITLE = "New session"
TITLE_MAX_CHARS = 50

LLMClientFactory = Callable[[LLMConfig, float], LLMClient]


def make_title(content: str) -> str:
    """
    从首条消息生成会话标题

    换行替换为空格并去掉首尾空白，按字符（而非字节）截取前 50 个，
    截断时追加省略号；内容为空时返回 NEW_SESSION_TITLE。
    """
    text = content.replace("\r", " ").replace("\n", " ").strip()
    if not text:
        return NEW_SESSION_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


@dataclass
class GenerationJob:
    """后台生成任务需要的全部上下文，不持有任何请求级对象"""
    record_id: int
    message_id: int
    session_id: str
    agent_id: int
    tree_id: int
    user: str
    client: LLMClient
    request: ChatRequest
    ctx: RequestContext


class FunctionGenChatService:
    """
    函数生成对话编排器

    Args:
        session_factory: 后台任务使用的数据库会话工厂
        workspace: workspace 客户端（插件 + 提交代码）
        llm_client_factory: 由 LLM 配置构建客户端，默认 LLMClient.from_config
        settings: 全局配置
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
        workspace: WorkspaceClient | None = None,
        llm_client_factory: LLMClientFactory = LLMClient.from_config,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self.workspace = workspace or WorkspaceClient()
        self._llm_client_factory = llm_client_factory
        self._tasks: set[asyncio.Task] = set()

    # ==================== 同步段 ====================

    async def chat(
        self,
        db: AsyncSession,
        req: FunctionGenChatRequest,
        ctx: RequestContext | None = None,
    ) -> FunctionGenChatResponse:
        """处理一轮函数生成对话，LLM 调用在后台执行"""
        ctx = ctx or current_request_context()
        user = ctx.request_user or ""
        timer = RequestTimer()

        logger.info(
            f"[FunctionGenChat] 开始处理 - AgentID: {req.agent_id}, TreeID: {req.tree_id}, "
            f"SessionID: {req.session_id or '(new)'}, User: {user}"
        )

        agent = await self._resolve_agent(db, req.agent_id)
        llm_config = await self._resolve_llm_config(db, agent)
        client = self._llm_client_factory(llm_config, self.settings.llm_default_timeout_seconds)
        timer.mark("resolve")

        chat_session, is_new = await self._admit(db, req, agent, user)
        session_id = chat_session.session_id
        record = None

        try:
            files = [f.model_dump() for f in req.message.files] if req.message.files else []
            user_message = await store.append_message(
                db,
                session_id=session_id,
                agent_id=agent.id,
                role=MessageRole.USER,
                content=req.message.content,
                files=json.dumps(files, ensure_ascii=False) if files else None,
                user=user,
            )
            if is_new:
                await store.update_session_title(db, session_id, make_title(req.message.content))

            history = await store.list_messages(db, session_id)
            knowledge = await load_knowledge(db, agent.knowledge_base_id)
            timer.mark("load")

            metadata: dict[str, Any] = {
                "user_message": req.message.content,
                "files": files,
                "plugin_data": "",
            }
            record = await store.create_record(
                db,
                session_id=session_id,
                message_id=user_message.id,
                agent_id=agent.id,
                tree_id=req.tree_id,
                user=user,
                metadata=metadata,
            )

            plugin_data = ""
            if agent.agent_type == AgentType.PLUGIN:
                plugin_data = await self._run_plugin(agent, req, ctx)
                metadata["plugin_data"] = plugin_data
                await store.update_record_metadata(db, record.id, metadata)
                timer.mark("plugin")

            messages = build_messages(
                template=agent.system_prompt_template,
                knowledge=knowledge,
                history=history,
                content=req.message.content,
                plugin_data=plugin_data,
                package=req.package,
                existing_files=req.existing_files,
                file_ext=self.settings.generated_file_ext,
            )
            chat_request = chat_request_from_config(llm_config, messages)
        except Exception as e:
            await self._abort(db, session_id, record, e.message if isinstance(e, AgentServerError) else str(e))
            raise

        job = GenerationJob(
            record_id=record.id,
            message_id=user_message.id,
            session_id=session_id,
            agent_id=agent.id,
            tree_id=req.tree_id,
            user=user,
            client=client,
            request=chat_request,
            ctx=ctx,
        )
        self._spawn(self._generate(job), name=f"function-gen-{record.id}")
        self._spawn(self._increment_generation_count(agent.id), name=f"agent-count-{agent.id}")

        metrics = timer.get_metrics()
        logger.info(
            f"[FunctionGenChat] 已受理 - SessionID: {session_id}, RecordID: {record.id}, "
            f"Messages: {len(messages)}, 耗时: {metrics['total_ms']:.0f}ms",
            extra={"record_id": record.id, "timing": metrics},
        )

        return FunctionGenChatResponse(
            session_id=session_id,
            record_id=record.id,
            status=RecordStatus.GENERATING,
            content=GENERATING_CONTENT,
        )

    async def _resolve_agent(self, db: AsyncSession, agent_id: int) -> Agent:
        agent = await store.get_agent(db, agent_id)
        if agent is None:
            raise NotFoundError(f"智能体不存在: {agent_id}")
        if not agent.enabled:
            raise AgentDisabledError(f"智能体已禁用: {agent_id}")
        return agent

    async def _resolve_llm_config(self, db: AsyncSession, agent: Agent) -> LLMConfig:
        """智能体绑定了 LLM 则使用绑定的配置，否则使用默认配置"""
        if agent.llm_config_id and agent.llm_config_id > 0:
            config = await store.get_llm_config(db, agent.llm_config_id)
            if config is None:
                raise NotFoundError(f"LLM 配置不存在: {agent.llm_config_id}")
            return config

        config = await store.get_default_llm_config(db)
        if config is None:
            raise NoDefaultLLMError("未配置默认 LLM，且智能体未绑定 LLM")
        return config

    async def _admit(
        self,
        db: AsyncSession,
        req: FunctionGenChatRequest,
        agent: Agent,
        user: str,
    ) -> tuple[ChatSession, bool]:
        """会话准入，返回 (会话, 是否新建)"""
        if not req.session_id:
            chat_session = await store.create_session(
                db,
                session_id=str(uuid.uuid4()),
                tree_id=req.tree_id,
                agent_id=agent.id,
                user=user,
                status=SessionStatus.GENERATING,
            )
            logger.info(f"[FunctionGenChat] 创建新会话 - SessionID: {chat_session.session_id}")
            return chat_session, True

        chat_session = await store.acquire_session(db, req.session_id)
        return chat_session, False

    async def _run_plugin(
        self,
        agent: Agent,
        req: FunctionGenChatRequest,
        ctx: RequestContext,
    ) -> str:
        result = await self.workspace.run_plugin(
            agent,
            PluginRunRequest(content=req.message.content, input_files=req.message.files),
            ctx,
        )
        if result.error:
            logger.error(f"[FunctionGenChat] 插件处理失败 - AgentID: {agent.id}, Error: {result.error}")
            raise PluginError(f"插件处理失败: {result.error}")
        return result.data

    async def _abort(
        self,
        db: AsyncSession,
        session_id: str,
        record: FunctionGenRecord | None,
        error_msg: str,
    ) -> None:
        """同步段失败：记录置为 failed，会话恢复 idle；清理失败只记日志"""
        logger.warning(f"[FunctionGenChat] 同步阶段失败 - SessionID: {session_id}, Error: {error_msg}")
        if record is not None:
            await self._fail_record(db, record.id, error_msg)
        try:
            await store.release_session(db, session_id)
        except AgentServerError as e:
            logger.error(f"[FunctionGenChat] 恢复会话状态失败 - SessionID: {session_id}, Error: {e.message}")

    # ==================== 后台段 ====================

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        # create_task 只保留弱引用，需要自己持有任务
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _generate(self, job: GenerationJob) -> None:
        """后台生成：LLM -> assistant 消息 -> 提取代码 -> 提交 workspace"""
        bind_request_context(job.ctx)
        timer = RequestTimer()

        async with self._session_factory() as db:
            try:
                response = await job.client.chat(job.request)
                timer.mark("llm")
                logger.info(
                    f"[FunctionGenChat] LLM 返回 - RecordID: {job.record_id}, "
                    f"Length: {len(response.content)}, 耗时: {timer.get_metrics()['llm_ms']:.0f}ms"
                )

                await store.append_message(
                    db,
                    session_id=job.session_id,
                    agent_id=job.agent_id,
                    role=MessageRole.ASSISTANT,
                    content=response.content,
                    user=job.user,
                )

                code = extract_code(response.content)
                await store.update_record_code(db, job.record_id, code)

                await self.workspace.submit_generated_code(
                    AddFunctionsRequest(
                        record_id=job.record_id,
                        message_id=job.message_id,
                        agent_id=job.agent_id,
                        tree_id=job.tree_id,
                        user=job.user,
                        code=code,
                        source_code=code,
                    ),
                    job.ctx,
                )
            except AgentServerError as e:
                logger.error(f"[FunctionGenChat] 后台生成失败 - RecordID: {job.record_id}, Error: {e.message}")
                await self._fail_record(db, job.record_id, e.message)
            except Exception as e:
                logger.exception(f"[FunctionGenChat] 后台生成异常 - RecordID: {job.record_id}, Error: {e}")
                await self._fail_record(db, job.record_id, str(e) or e.__class__.__name__)
            finally:
                try:
                    await store.release_session(db, job.session_id)
                except AgentServerError as e:
                    logger.error(f"[FunctionGenChat] 恢复会话状态失败 - SessionID: {job.session_id}, Error: {e.message}")

    async def _fail_record(self, db: AsyncSession, record_id: int, error_msg: str) -> None:
        try:
            await store.finish_record(db, record_id, RecordStatus.FAILED, error_msg=error_msg)
        except AgentServerError as e:
            logger.error(f"[FunctionGenChat] 标记记录失败状态出错 - RecordID: {record_id}, Error: {e.message}")

    async def _increment_generation_count(self, agent_id: int) -> None:
        async with self._session_factory() as db:
            try:
                await store.increment_generation_count(db, agent_id)
            except AgentServerError as e:
                logger.error(f"[FunctionGenChat] 更新智能体生成次数失败 - AgentID: {agent_id}, Error: {e.message}")

    # ==================== 生命周期 ====================

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """等待所有后台任务结束"""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """关闭时等待后台任务，超时后取消（被取消的记录会被标记为 failed）"""
        await self.drain(timeout=grace_seconds)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


@lru_cache(maxsize=1)
def get_function_gen_chat_service() -> FunctionGenChatService:
    """获取编排器单例（FastAPI 依赖注入）"""
    return FunctionGenChatService()
