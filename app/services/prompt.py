"""
提示词构建

把智能体模板、知识库内容、Package 上下文、已存在文件列表、
会话历史和当前用户输入组装成发给 LLM 的消息列表。

系统消息各部分按固定顺序排列，之间用一个空行分隔：
    1. 系统提示词模板（为空时使用 DEFAULT_SYSTEM_PROMPT）
    2. 知识库内容
    3. Package 上下文
    4. 已存在文件列表 + 文件名防冲突提示
"""

from collections.abc import Sequence

from app.models import ChatMessage, MessageRole
from app.schemas.internal import LLMMessage

DEFAULT_SYSTEM_PROMPT = "You are a professional code-generation assistant."

EXISTING_FILES_HEADER = "## Existing files"

EXISTING_FILES_ADMONITION = (
    "**Important**: the generated file name must be unique within the package. "
    "Do not reuse any of the existing file names above; if the natural name "
    "collides, choose a different one (for example by adding a suffix)."
)


def build_system_prompt(
    template: str | None,
    knowledge: str = "",
    package: str = "",
    existing_files: Sequence[str] | None = None,
    file_ext: str = "py",
) -> str:
    """组装系统消息"""
    sections = [template if template else DEFAULT_SYSTEM_PROMPT]

    if knowledge:
        sections.append(knowledge.strip("\n"))

    if package:
        sections.append(f"Current package context: {package}")

    if existing_files:
        lines = [EXISTING_FILES_HEADER]
        lines.extend(f"- {name}.{file_ext}" for name in existing_files)
        lines.append("")
        lines.append(EXISTING_FILES_ADMONITION)
        sections.append("\n".join(lines))

    return "\n\n".join(sections)


def history_messages(history: Sequence[ChatMessage]) -> list[LLMMessage]:
    """
    转换会话历史

    最后一条如果是 user 消息，它就是本轮输入，由调用方单独追加；
    角色不在 system/user/assistant 之内的消息被跳过。
    """
    items = list(history)
    if items and items[-1].role == MessageRole.USER:
        items = items[:-1]
    return [
        LLMMessage(role=msg.role, content=msg.content)
        for msg in items
        if msg.role in MessageRole.ALL
    ]


def user_content(content: str, plugin_data: str | None = None) -> str:
    """插件返回了数据时，把数据拼接在原始输入之后"""
    if plugin_data:
        return f"{content}\n\n{plugin_data}"
    return content


def build_messages(
    *,
    template: str | None,
    knowledge: str,
    history: Sequence[ChatMessage],
    content: str,
    plugin_data: str | None = None,
    package: str = "",
    existing_files: Sequence[str] | None = None,
    file_ext: str = "py",
) -> list[LLMMessage]:
    """
    构建完整的 LLM 消息列表：system + 历史 + 当前 user 消息

    Args:
        template: 智能体系统提示词模板
        knowledge: load_knowledge 返回的知识文本
        history: 会话历史（按 created_at 升序，可能包含本轮 user 消息）
        content: 本轮用户原始输入
        plugin_data: 插件处理结果
        package: Package 路径
        existing_files: Package 下已存在的文件名（不含扩展名）
        file_ext: 文件扩展名
    """
    messages = [
        LLMMessage(
            role=MessageRole.SYSTEM,
            content=build_system_prompt(template, knowledge, package, existing_files, file_ext),
        )
    ]
    messages.extend(history_messages(history))
    messages.append(LLMMessage(role=MessageRole.USER, content=user_content(content, plugin_data)))
    return messages
