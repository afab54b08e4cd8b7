"""
数据模式层 (Schemas)

使用 Pydantic 定义请求和响应模型：
- agent_chat : 对外 API 的请求/响应
- internal   : 与 LLM、workspace 交互的内部消息
"""

from app.schemas.agent_chat import (
    CallbackResponse,
    ChatInputMessage,
    ChatMessageInfo,
    ChatMessageListResponse,
    ChatSessionInfo,
    ChatSessionListResponse,
    CloseSessionRequest,
    FunctionGenCallback,
    FunctionGenChatRequest,
    FunctionGenChatResponse,
    FunctionGenRecordListResponse,
    FunctionGenRecordResponse,
    LLMConfigInfo,
    SetDefaultLLMRequest,
)
from app.schemas.internal import (
    AddFunctionsAck,
    AddFunctionsRequest,
    ChatRequest,
    ChatResponse,
    LLMMessage,
    PluginFile,
    PluginRunRequest,
    PluginRunResult,
)

__all__ = [
    # API schemas
    "CallbackResponse",
    "ChatInputMessage",
    "ChatMessageInfo",
    "ChatMessageListResponse",
    "ChatSessionInfo",
    "ChatSessionListResponse",
    "CloseSessionRequest",
    "FunctionGenCallback",
    "FunctionGenChatRequest",
    "FunctionGenChatResponse",
    "FunctionGenRecordListResponse",
    "FunctionGenRecordResponse",
    "LLMConfigInfo",
    "SetDefaultLLMRequest",
    # Internal schemas
    "AddFunctionsAck",
    "AddFunctionsRequest",
    "ChatRequest",
    "ChatResponse",
    "LLMMessage",
    "PluginFile",
    "PluginRunRequest",
    "PluginRunResult",
]
