class AgentServerError(Exception):
    """业务错误基类，code / status_code 用于统一错误响应"""

    code = "AGENT_SERVER_ERROR"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class NotFoundError(AgentServerError):
    """资源不存在（智能体、会话、记录、LLM 配置）"""

    code = "NOT_FOUND"


class AgentDisabledError(AgentServerError):
    """智能体已禁用"""

    code = "AGENT_DISABLED"


class SessionClosedError(AgentServerError):
    """会话已结束，不能再输入"""

    code = "SESSION_CLOSED"


class SessionBusyError(AgentServerError):
    """会话正在生成中"""

    code = "SESSION_BUSY"


class ConfigError(AgentServerError):
    """配置错误（插件路径缺失、未知 LLM 提供者等）"""

    code = "CONFIG_ERROR"


class NoDefaultLLMError(AgentServerError):
    """未配置默认 LLM，且智能体未绑定 LLM"""

    code = "NO_DEFAULT_LLM"


class PluginError(AgentServerError):
    """插件处理失败"""

    code = "PLUGIN_ERROR"


class TransportError(AgentServerError):
    """跨服务 HTTP 调用失败"""

    code = "TRANSPORT_ERROR"
    status_code = 502


class ChatError(TransportError):
    """LLM 调用错误"""

    code = "LLM_ERROR"

    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"

    def __init__(self, message: str = "", kind: str = TRANSPORT):
        super().__init__(message)
        self.kind = kind


class SubmissionError(TransportError):
    """提交生成代码到 workspace 失败"""

    code = "SUBMISSION_ERROR"


class PersistenceError(AgentServerError):
    """存储错误"""

    code = "PERSISTENCE_ERROR"
    status_code = 500


class CallbackConflictError(AgentServerError):
    """回调试图修改已终结的记录"""

    code = "CALLBACK_CONFLICT"
    status_code = 409
