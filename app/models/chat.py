"""
对话模型 (ChatSession & ChatMessage)

一个会话对应服务目录（tree_id）下的一次代码生成对话。
会话拥有自己的消息和生成记录，删除会话时级联删除。

数据关系：
    Agent
       └── ChatSession (会话，session_id 为 UUID)
              ├── ChatMessage (消息，只追加不修改)
              └── FunctionGenRecord (生成记录)
"""

from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import BIGINT_PK, TimestampMixin

if TYPE_CHECKING:
    from app.models.function_gen_record import FunctionGenRecord


class SessionStatus:
    """
    会话状态

    idle -> generating -> idle ... -> done
    generating 时拒绝新输入；done 为终态，永久关闭。
    """
    IDLE = "idle"
    GENERATING = "generating"
    DONE = "done"


class MessageRole:
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    ALL = (SYSTEM, USER, ASSISTANT)


class ChatSession(TimestampMixin, Base):
    """
    会话表

    字段说明：
    - session_id: 会话 UUID，对外暴露的标识
    - tree_id: 生成代码的目标服务目录
    - user: 创建会话的用户
    - title: 会话标题（从首条消息自动生成）
    - status: idle / generating / done
    """
    __tablename__ = "chat_sessions"

    id: Mapped[BIGINT_PK]

    session_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)

    tree_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    agent_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("agents.id"),
        nullable=False,
        index=True,
    )

    user: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionStatus.IDLE)

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.id",
    )

    records: Mapped[list["FunctionGenRecord"]] = relationship(
        "FunctionGenRecord",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ChatMessage(TimestampMixin, Base):
    """
    消息表

    字段说明：
    - role: system / user / assistant
    - content: 消息内容（assistant 消息保存 LLM 原始输出）
    - files: 附件列表（JSON 字符串），如 [{"url": "...", "remark": "..."}]
    """
    __tablename__ = "chat_messages"

    id: Mapped[BIGINT_PK]

    session_id: Mapped[str] = mapped_column(
        ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    agent_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("agents.id"),
        nullable=False,
    )

    role: Mapped[str] = mapped_column(String(20), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    files: Mapped[str | None] = mapped_column(Text)

    user: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    session: Mapped["ChatSession"] = relationship(
        "ChatSession",
        back_populates="messages",
    )
