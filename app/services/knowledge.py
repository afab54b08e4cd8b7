"""
知识库加载

把知识库中所有 completed 状态的文档按插入顺序拼接为一个字符串，
整体放入系统提示词。不做切分、不做向量化。
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.logging import get_logger
from app.models import DocumentStatus, KnowledgeDocument
from app.services import store

logger = get_logger(__name__)


def format_documents(documents: list[KnowledgeDocument]) -> str:
    """每篇文档格式化为 "\\n## {title}\\n{content}\\n"，跳过未完成的文档"""
    return "".join(
        f"\n## {doc.title}\n{doc.content}\n"
        for doc in documents
        if doc.status == DocumentStatus.COMPLETED
    )


async def load_knowledge(session: AsyncSession, knowledge_base_id: int | None) -> str:
    """
    加载知识库内容

    Returns:
        拼接后的知识文本；没有已完成的文档时返回空字符串
    """
    if not knowledge_base_id:
        return ""

    documents = await store.list_documents(session, knowledge_base_id)
    knowledge = format_documents(documents)
    logger.debug(
        f"知识库加载完成 - KB: {knowledge_base_id}, 文档数: {len(documents)}, 长度: {len(knowledge)}"
    )
    return knowledge
