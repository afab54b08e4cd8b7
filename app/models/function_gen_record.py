"""
函数生成记录 (FunctionGenRecord)

一次代码生成任务的持久化状态，是异步任务状态的唯一来源。

状态流转：
    generating ──> completed   (workspace 回调成功)
               └─> failed      (LLM 失败 / 提交失败 / 回调失败)

终态不再变化。
"""

from sqlalchemy import BigInteger, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import BIGINT_PK, TimestampMixin


class RecordStatus:
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)


class FunctionGenRecord(TimestampMixin, Base):
    """
    生成记录表

    字段说明：
    - message_id: 触发生成的用户消息
    - code: 从 LLM 输出中提取的代码
    - error_msg: 失败原因
    - duration_seconds: 从创建到进入终态的耗时
    - full_code_paths: workspace 分配的完整代码路径列表
    - extra_metadata: {user_message, files, plugin_data}
    """
    __tablename__ = "function_gen_records"

    id: Mapped[BIGINT_PK]

    session_id: Mapped[str] = mapped_column(
        ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    message_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("chat_messages.id", ondelete="CASCADE"),
        nullable=False,
    )

    agent_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("agents.id"),
        nullable=False,
        index=True,
    )

    tree_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    user: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RecordStatus.GENERATING, index=True
    )

    code: Mapped[str] = mapped_column(Text, nullable=False, default="")

    error_msg: Mapped[str] = mapped_column(Text, nullable=False, default="")

    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    full_code_paths: Mapped[list | None] = mapped_column(JSON, default=list)

    # 避免使用 metadata 保留字
    extra_metadata: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        default=dict,
    )
