"""
LLM 客户端模块

按 provider 选择实现，对外只暴露一个操作：

    response = await client.chat(ChatRequest(...))

支持的提供商：
- OpenAI 兼容协议（AsyncOpenAI）：openai / qwen / qwen3_coder / kimi / deepseek /
  doubao / claude（OpenAI 兼容网关）/ zhipu / siliconflow
- Ollama（本地模型，/api/chat）
- Gemini（Google，generateContent）

错误约定：
- 构造时 provider 未知或缺少 API Key：ConfigError
- 调用超时：ChatError(kind=timeout)
- 调用被取消：ChatError(kind=cancelled)
- HTTP / SDK 失败：ChatError(kind=transport)
- 响应格式不符合预期：ChatError(kind=protocol)

使用示例：
    from app.infra.llm import LLMClient, chat_request_from_config

    client = LLMClient.from_config(llm_config, default_timeout=600)
    request = chat_request_from_config(llm_config, messages)
    response = await client.chat(request)
"""

import asyncio
from functools import lru_cache
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from app.exceptions import ChatError, ConfigError
from app.infra.logging import get_logger
from app.models import LLMConfig
from app.schemas.internal import ChatRequest, ChatResponse, LLMMessage

logger = get_logger(__name__)

# provider -> (默认 base_url, 默认模型)
OPENAI_COMPATIBLE_PROVIDERS: dict[str, tuple[str, str]] = {
    "openai": ("https://api.openai.com/v1", "gpt-4o-mini"),
    "qwen": ("https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-turbo"),
    "qwen3_coder": ("https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen3-coder-plus"),
    "kimi": ("https://api.moonshot.cn/v1", "kimi-k2-0711-preview"),
    "deepseek": ("https://api.deepseek.com/v1", "deepseek-chat"),
    "doubao": ("https://ark.cn-beijing.volces.com/api/v3", "doubao-1-5-pro-32k-250115"),
    "claude": ("https://api.gptsapi.net/v1", "claude-sonnet-4-20250514"),
    "zhipu": ("https://open.bigmodel.cn/api/paas/v4", "glm-4"),
    "siliconflow": ("https://api.siliconflow.cn/v1", "Qwen/Qwen2.5-Coder-32B-Instruct"),
}

NATIVE_PROVIDERS: dict[str, tuple[str, str]] = {
    "ollama": ("http://localhost:11434", "qwen3:14b"),
    "gemini": ("https://generativelanguage.googleapis.com/v1beta", "gemini-2.0-flash-exp"),
}

# 本地部署，不需要 API Key
_KEYLESS_PROVIDERS = ("ollama",)

DEFAULT_TIMEOUT_SECONDS = 600.0


@lru_cache(maxsize=16)
def _get_openai_compatible_client(api_key: str, base_url: str, timeout: float) -> AsyncOpenAI:
    """获取 OpenAI 兼容客户端（按 key/base_url/timeout 复用连接）"""
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
    )


def chat_request_from_config(config: LLMConfig, messages: list[LLMMessage]) -> ChatRequest:
    """
    根据 LLM 配置构建调用参数

    extra_config 中的 max_tokens（大于 0）覆盖 config.max_tokens；
    extra_config 中存在 temperature 时才设置温度。
    """
    extra = config.extra_config or {}

    max_tokens = config.max_tokens or None
    extra_max_tokens = extra.get("max_tokens")
    if isinstance(extra_max_tokens, (int, float)) and not isinstance(extra_max_tokens, bool) and extra_max_tokens > 0:
        max_tokens = int(extra_max_tokens)

    temperature = None
    extra_temperature = extra.get("temperature")
    if isinstance(extra_temperature, (int, float)) and not isinstance(extra_temperature, bool):
        temperature = float(extra_temperature)

    return ChatRequest(
        model=config.model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        use_thinking=bool(config.use_thinking),
    )


class LLMClient:
    """
    按 provider 分发的 LLM 客户端

    Args:
        provider: 提供商标识
        api_key: API Key（ollama 可为空）
        model: 默认模型，为空时使用提供商默认模型
        base_url: 自定义端点，为空时使用提供商默认地址
        timeout: 单次调用超时（秒）
        transport: 自定义 httpx 传输层（ollama / gemini 使用）
    """

    def __init__(
        self,
        provider: str,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = (provider or "").strip().lower()

        defaults = OPENAI_COMPATIBLE_PROVIDERS.get(self.provider) or NATIVE_PROVIDERS.get(self.provider)
        if defaults is None:
            raise ConfigError(f"未知的 LLM 提供者: {provider}")
        if not api_key and self.provider not in _KEYLESS_PROVIDERS:
            raise ConfigError(f"{self.provider.upper()} 的 API Key 未配置")

        default_base_url, default_model = defaults
        self.api_key = api_key or ""
        self.base_url = (base_url or default_base_url).rstrip("/")
        self.model = model or default_model
        self.timeout = timeout if timeout and timeout > 0 else DEFAULT_TIMEOUT_SECONDS
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: LLMConfig,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "LLMClient":
        """从 LLMConfig 行构建客户端；timeout_seconds 为 0 时使用 default_timeout"""
        return cls(
            provider=config.provider,
            api_key=config.api_key,
            model=config.model,
            base_url=config.api_base,
            timeout=config.timeout_seconds or default_timeout,
        )

    @property
    def is_openai_compatible(self) -> bool:
        return self.provider in OPENAI_COMPATIBLE_PROVIDERS

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """调用 LLM，返回完整回复"""
        try:
            return await asyncio.wait_for(self._dispatch(request), timeout=self.timeout)
        except ChatError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException, openai.APITimeoutError) as e:
            raise ChatError(
                f"LLM 调用超时 ({self.provider}, {self.timeout:.0f}s)",
                kind=ChatError.TIMEOUT,
            ) from e
        except asyncio.CancelledError as e:
            raise ChatError(f"LLM 调用已取消 ({self.provider})", kind=ChatError.CANCELLED) from e
        except (httpx.HTTPError, httpx.InvalidURL, openai.APIError) as e:
            logger.error(f"LLM 调用失败 ({self.provider}): {e}")
            raise ChatError(f"LLM 调用失败 ({self.provider}): {e}", kind=ChatError.TRANSPORT) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"LLM 响应解析失败 ({self.provider}): {e}")
            raise ChatError(f"LLM 响应格式错误 ({self.provider}): {e}", kind=ChatError.PROTOCOL) from e

    async def _dispatch(self, request: ChatRequest) -> ChatResponse:
        if self.is_openai_compatible:
            return await self._openai_compatible_chat(request)
        if self.provider == "ollama":
            return await self._ollama_chat(request)
        return await self._gemini_chat(request)

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _openai_compatible_chat(self, request: ChatRequest) -> ChatResponse:
        """OpenAI 兼容 API Chat"""
        client = _get_openai_compatible_client(self.api_key, self.base_url, self.timeout)

        kwargs: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [m.model_dump() for m in request.messages],
        }
        if request.max_tokens:
            kwargs["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.use_thinking:
            kwargs["extra_body"] = {"enable_thinking": True}

        response = await client.chat.completions.create(**kwargs)
        if not response.choices:
            raise ChatError(f"LLM 未返回任何结果 ({self.provider})", kind=ChatError.PROTOCOL)

        usage = response.usage
        return ChatResponse(
            content=response.choices[0].message.content or "",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
        )

    async def _ollama_chat(self, request: ChatRequest) -> ChatResponse:
        """Ollama Chat API"""
        options: dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens:
            options["num_predict"] = request.max_tokens

        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [m.model_dump() for m in request.messages],
            "stream": False,
            "options": options,
        }
        if request.use_thinking:
            payload["think"] = True

        async with self._http_client() as client:
            response = await client.post(f"{self.base_url}/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()

        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        return ChatResponse(
            content=data["message"]["content"],
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    async def _gemini_chat(self, request: ChatRequest) -> ChatResponse:
        """Gemini generateContent API"""
        model = request.model or self.model
        url = f"{self.base_url}/models/{model}:generateContent"

        system_parts = [
            {"text": m.content} for m in request.messages if m.role == "system"
        ]
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in request.messages
            if m.role != "system"
        ]

        generation_config: dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens:
            generation_config["maxOutputTokens"] = request.max_tokens

        payload: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        async with self._http_client() as client:
            response = await client.post(url, params={"key": self.api_key}, json=payload)
            response.raise_for_status()
            result = response.json()

        usage = result.get("usageMetadata") or {}
        return ChatResponse(
            content=result["candidates"][0]["content"]["parts"][0]["text"],
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
        )
