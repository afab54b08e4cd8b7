"""
LLM 配置模型 (LLMConfig)

每行描述一个可调用的模型端点。全表至多一行 is_default=true，
由 store.set_default_llm_config 在同一事务内维护。
"""

from sqlalchemy import Boolean, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import BIGINT_PK, TimestampMixin


class LLMConfig(TimestampMixin, Base):
    """
    LLM 配置表

    字段说明：
    - provider: 提供商标识，决定使用哪种客户端实现（openai/qwen/kimi/ollama/...）
    - api_base: 自定义端点，为空时使用提供商默认地址
    - timeout_seconds: 单次调用超时，0 表示使用全局默认值（600 秒）
    - extra_config: 额外参数（JSON），识别 max_tokens / temperature
    """
    __tablename__ = "llm_configs"

    id: Mapped[BIGINT_PK]

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    provider: Mapped[str] = mapped_column(String(64), nullable=False)

    model: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    api_key: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    api_base: Mapped[str | None] = mapped_column(String(500))

    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    max_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    use_thinking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # 结构示例：{"max_tokens": 8192, "temperature": 0.2}
    extra_config: Mapped[dict | None] = mapped_column(JSON)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
