"""
智能体模型 (Agent)

智能体 = LLM 配置 + 知识库 + 可选插件预处理 + 系统提示词模板。

数据关系：
    KnowledgeBase ─┐
                   ├── Agent ── ChatSession
    LLMConfig ─────┘
"""

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import BIGINT_PK, TimestampMixin


class AgentType:
    """智能体类型"""
    KNOWLEDGE_ONLY = "knowledge_only"  # 纯知识库
    PLUGIN = "plugin"                  # 先调用插件处理输入，再交给 LLM


class ChatType:
    FUNCTION_GEN = "function_gen"


class Agent(TimestampMixin, Base):
    """
    智能体表

    字段说明：
    - agent_type: knowledge_only / plugin
    - llm_config_id: 绑定的 LLM 配置，为空时使用默认 LLM
    - plugin_function_path: 插件表单接口路径（agent_type=plugin 时必填）
    - system_prompt_template: 系统提示词模板，为空时使用内置默认值
    - timeout_seconds: 插件调用超时（秒），0 表示使用全局配置
    - generation_count: 累计生成次数
    """
    __tablename__ = "agents"

    id: Mapped[BIGINT_PK]

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    agent_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=AgentType.KNOWLEDGE_ONLY
    )

    chat_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ChatType.FUNCTION_GEN
    )

    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    description: Mapped[str | None] = mapped_column(Text)

    knowledge_base_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("knowledge_bases.id"),
        nullable=False,
        index=True,
    )

    llm_config_id: Mapped[int | None] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("llm_configs.id", ondelete="SET NULL"),
        nullable=True,
    )

    plugin_function_path: Mapped[str | None] = mapped_column(String(500))

    system_prompt_template: Mapped[str] = mapped_column(Text, nullable=False, default="")

    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    generation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
