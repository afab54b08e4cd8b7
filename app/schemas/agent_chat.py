"""
智能体对话相关的请求/响应模型

覆盖函数生成对话、会话/消息查询、生成记录查询以及 workspace 回调。
"""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from app.schemas.internal import PluginFile


# ==================== 函数生成对话 ====================

class ChatInputMessage(BaseModel):
    """本轮用户输入（历史消息由后端自动加载）"""
    content: str = Field(..., description="消息内容")
    files: list[PluginFile] | None = Field(default=None, description="附件列表")


class FunctionGenChatRequest(BaseModel):
    """
    函数生成对话请求

    示例:
    ```json
    {
        "agent_id": 1,
        "tree_id": 629,
        "package": "crm",
        "session_id": "",
        "existing_files": ["crm_ticket", "crm_user"],
        "message": {"content": "生成一个工单管理函数"}
    }
    ```
    """
    agent_id: int = Field(..., gt=0, description="智能体 ID")
    tree_id: int = Field(..., gt=0, description="服务目录 ID")
    session_id: str = Field(default="", description="会话 ID（UUID），首次为空，后端自动生成")
    package: str = Field(default="", description="Package 路径")
    existing_files: list[str] = Field(
        default_factory=list,
        description="当前 Package 下已存在的文件名（不含扩展名）",
    )
    message: ChatInputMessage


class FunctionGenChatResponse(BaseModel):
    """函数生成对话响应（LLM 在后台执行）"""
    session_id: str = Field(..., description="会话 ID")
    record_id: int = Field(..., description="生成记录 ID")
    status: str = Field(..., description="记录状态")
    content: str = Field(..., description="提示文本")


# ==================== 生成记录 ====================

class FunctionGenRecordResponse(BaseModel):
    """生成记录状态"""
    record_id: int = Field(..., validation_alias=AliasChoices("record_id", "id"))
    session_id: str
    message_id: int
    agent_id: int
    tree_id: int
    status: str
    code: str = ""
    error_msg: str = ""
    duration_seconds: int = 0
    full_code_paths: list[str] | None = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FunctionGenRecordListResponse(BaseModel):
    records: list[FunctionGenRecordResponse]


# ==================== 会话与消息 ====================

class ChatSessionInfo(BaseModel):
    """会话信息"""
    id: int
    session_id: str
    tree_id: int
    agent_id: int
    title: str
    user: str
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChatSessionListResponse(BaseModel):
    """会话列表响应"""
    sessions: list[ChatSessionInfo]
    total: int
    page: int
    page_size: int


class ChatMessageInfo(BaseModel):
    """消息信息"""
    id: int
    session_id: str
    agent_id: int
    role: str
    content: str
    files: str | None = None
    user: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ChatMessageListResponse(BaseModel):
    """消息列表响应（按创建时间升序）"""
    messages: list[ChatMessageInfo]


class CloseSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1, description="会话 ID")


# ==================== LLM 配置 ====================

class SetDefaultLLMRequest(BaseModel):
    llm_config_id: int = Field(..., gt=0, description="LLM 配置 ID")


class LLMConfigInfo(BaseModel):
    id: int
    name: str
    provider: str
    model: str
    is_default: bool

    model_config = {"from_attributes": True}


# ==================== Workspace 回调 ====================

class FunctionGenCallback(BaseModel):
    """
    workspace 处理完成后的回调

    full_code_paths 兼容旧字段名 full_group_codes。
    """
    record_id: int = Field(..., gt=0, description="生成记录 ID")
    message_id: int = Field(default=0, description="消息 ID")
    success: bool = Field(..., description="是否成功")
    full_code_paths: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("full_code_paths", "full_group_codes"),
        description="workspace 分配的完整代码路径",
    )
    app_id: int | None = Field(default=None, description="应用 ID")
    app_code: str | None = Field(default=None, description="应用代码")
    error: str | None = Field(default=None, description="错误信息（失败时）")


class CallbackResponse(BaseModel):
    record_id: int
    status: str
    changed: bool = Field(..., description="本次回调是否改变了记录状态")
