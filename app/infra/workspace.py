"""
Workspace 服务客户端

agent server 调用 workspace 的两个出口：
- run_plugin: 同步调用插件表单接口，在用户输入送达 LLM 之前做预处理
- submit_generated_code: 提交生成的代码到 add_functions 接口（异步受理，
  完成后 workspace 回调 /agent/api/v1/workspace/update/callback）

每次调用都透传 X-Trace-Id / X-Request-User / X-Token / X-Department-Full-Path。

workspace 的响应可能包一层 {"code": 0, "msg": "", "data": {...}} 信封，
两种形式都接受。
"""

from typing import Any

import httpx

from app.config import get_settings
from app.exceptions import ConfigError, SubmissionError
from app.infra.logging import RequestContext, get_logger
from app.models import Agent, AgentType
from app.schemas.internal import (
    AddFunctionsAck,
    AddFunctionsRequest,
    PluginRunRequest,
    PluginRunResult,
)

logger = get_logger(__name__)

ADD_FUNCTIONS_PATH = "/workspace/api/v1/service_tree/add_functions"


def _unwrap(body: Any) -> tuple[Any, str]:
    """
    拆开响应信封

    Returns:
        (data, error)：业务码非 0 时 error 为 msg
    """
    if isinstance(body, dict) and "code" in body and ("data" in body or "msg" in body):
        if body.get("code") not in (0, None):
            return None, str(body.get("msg") or f"业务错误 [{body.get('code')}]")
        return body.get("data"), ""
    return body, ""


class WorkspaceClient:
    """
    Workspace HTTP 客户端

    Args:
        base_url: 网关地址，默认取 settings.workspace_base_url
        timeout: 提交代码的超时（秒）
        transport: 自定义 httpx 传输层（测试时注入 MockTransport）
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.workspace_base_url).rstrip("/")
        self.timeout = timeout or settings.workspace_timeout_seconds
        self.plugin_timeout = settings.plugin_timeout_seconds
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
        )

    # ==================== 插件 ====================

    async def run_plugin(
        self,
        agent: Agent,
        request: PluginRunRequest,
        ctx: RequestContext,
    ) -> PluginRunResult:
        """
        调用插件表单接口

        传输失败、非 200、业务码非 0 都体现在返回值的 error 字段中，
        由调用方决定是否中止本轮对话。

        Raises:
            ConfigError: 智能体不是 plugin 类型或未配置插件路径
        """
        if agent.agent_type != AgentType.PLUGIN:
            raise ConfigError(f"智能体类型不是 plugin，无法调用插件: AgentID={agent.id}")
        if not agent.plugin_function_path:
            raise ConfigError(f"智能体未配置插件路径: AgentID={agent.id}")

        path = agent.plugin_function_path
        if not path.startswith("/"):
            path = f"/{path}"
        timeout = float(agent.timeout_seconds or self.plugin_timeout)

        logger.info(
            f"调用插件 - AgentID: {agent.id}, Path: {path}, "
            f"FilesCount: {len(request.input_files or [])}"
        )

        try:
            async with self._client(timeout) as client:
                response = await client.post(
                    path,
                    json=request.model_dump(exclude_none=True),
                    headers=ctx.headers(),
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"调用插件失败 - AgentID: {agent.id}, Path: {path}, Error: {e}")
            return PluginRunResult(error=f"调用插件失败: {e}")

        if response.status_code != httpx.codes.OK:
            logger.error(f"插件返回 HTTP {response.status_code} - AgentID: {agent.id}, Path: {path}")
            return PluginRunResult(error=f"插件返回 HTTP {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError:
            return PluginRunResult(error=f"插件响应不是合法 JSON: {response.text[:200]}")

        data, error = _unwrap(body)
        if error:
            return PluginRunResult(error=error)
        if not isinstance(data, dict):
            return PluginRunResult(error="插件响应格式错误")

        result = data.get("result")
        if result is None:
            result = data.get("data")
        return PluginRunResult(
            data="" if result is None else str(result),
            error=str(data.get("error") or ""),
        )

    # ==================== 提交生成代码 ====================

    async def submit_generated_code(
        self,
        request: AddFunctionsRequest,
        ctx: RequestContext,
    ) -> AddFunctionsAck:
        """
        提交生成的代码

        Raises:
            SubmissionError: 传输失败、非 200、业务码非 0 或缺少受理回执
        """
        try:
            async with self._client(self.timeout) as client:
                response = await client.post(
                    ADD_FUNCTIONS_PATH,
                    json=request.model_dump(by_alias=True),
                    headers=ctx.headers(),
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise SubmissionError(f"提交生成代码失败: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise SubmissionError(
                f"提交生成代码失败: HTTP {response.status_code}, 响应: {response.text[:500]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionError(f"workspace 响应不是合法 JSON: {response.text[:200]}") from e

        data, error = _unwrap(body)
        if error:
            raise SubmissionError(f"提交生成代码失败: {error}")
        if not isinstance(data, dict) or data.get("record_id") is None:
            raise SubmissionError("workspace 未返回受理回执")

        ack = AddFunctionsAck(record_id=data["record_id"], message=str(data.get("message") or ""))
        logger.info(f"生成代码已提交 - RecordID: {request.record_id}, Ack: {ack.message}")
        return ack
