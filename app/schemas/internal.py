"""
服务层内部参数模型

定义 Service 层与外部协作方（LLM、workspace）之间传递的参数对象，与 API Schema 解耦。

使用示例：
    from app.schemas.internal import ChatRequest, LLMMessage

    request = ChatRequest(
        model="qwen-max",
        messages=[LLMMessage(role="user", content="你好")],
    )
    response = await client.chat(request)
"""

from pydantic import BaseModel, Field


class LLMMessage(BaseModel):
    """发送给 LLM 的单条消息"""

    role: str = Field(..., description="消息角色：system/user/assistant")
    content: str = Field(default="", description="消息内容")


class ChatRequest(BaseModel):
    """LLM 调用参数"""

    messages: list[LLMMessage] = Field(..., description="按顺序排列的消息列表")
    model: str = Field(default="", description="模型名称，为空时使用客户端默认模型")
    max_tokens: int | None = Field(default=None, description="最大生成 token 数")
    temperature: float | None = Field(default=None, description="温度参数")
    use_thinking: bool = Field(default=False, description="是否开启思考模式")


class ChatResponse(BaseModel):
    """LLM 调用结果"""

    content: str = Field(default="", description="LLM 输出文本")
    prompt_tokens: int = 0
    completion_tokens: int = 0


class PluginFile(BaseModel):
    """用户上传的附件"""

    url: str = Field(..., description="文件 URL")
    remark: str = Field(default="", description="文件备注")


class PluginRunRequest(BaseModel):
    """插件表单请求体"""

    content: str = Field(..., description="用户消息")
    input_files: list[PluginFile] | None = Field(default=None, description="附件列表")


class PluginRunResult(BaseModel):
    """
    插件调用结果

    data 为插件处理后的文本；error 非空表示失败（传输失败或插件自身报错），
    调用方不应再继续调用 LLM。
    """

    data: str = ""
    error: str = ""


class AddFunctionsRequest(BaseModel):
    """提交生成代码到 workspace 的请求体"""

    record_id: int
    message_id: int
    agent_id: int
    tree_id: int
    user: str = ""
    code: str
    source_code: str
    is_async: bool = Field(default=True, serialization_alias="async")


class AddFunctionsAck(BaseModel):
    """workspace 的受理回执"""

    record_id: int
    message: str = ""
