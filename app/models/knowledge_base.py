"""
知识库模型 (KnowledgeBase & KnowledgeDocument)

知识库是文档的扁平集合。生成代码时，知识库中所有已完成的文档
按插入顺序整体拼接进系统提示词，不做切分和向量化。

数据关系：
    KnowledgeBase
       └── KnowledgeDocument
"""

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import BIGINT_PK, TimestampMixin


class DocumentStatus:
    """文档处理状态，只有 completed 的文档参与提示词构建"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class KnowledgeBase(TimestampMixin, Base):
    """知识库表"""
    __tablename__ = "knowledge_bases"

    id: Mapped[BIGINT_PK]

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500))

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")

    document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    documents: Mapped[list["KnowledgeDocument"]] = relationship(
        "KnowledgeDocument",
        back_populates="knowledge_base",
        cascade="all, delete-orphan",
        order_by="KnowledgeDocument.id",
    )


class KnowledgeDocument(TimestampMixin, Base):
    """
    知识库文档表

    字段说明：
    - status: pending / completed / failed
    - title: 拼接时作为二级标题
    - content: 文档全文
    """
    __tablename__ = "knowledge_documents"

    id: Mapped[BIGINT_PK]

    knowledge_base_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("knowledge_bases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DocumentStatus.PENDING)

    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    knowledge_base: Mapped["KnowledgeBase"] = relationship(
        "KnowledgeBase",
        back_populates="documents",
    )
