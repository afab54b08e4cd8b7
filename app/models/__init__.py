"""
数据模型层 (ORM Models)

数据模型关系图：
    KnowledgeBase (知识库)
       │
       └── KnowledgeDocument (文档)

    LLMConfig (LLM 配置，至多一个默认)

    Agent (智能体) ── 引用 KnowledgeBase / LLMConfig
       │
       └── ChatSession (会话)
              ├── ChatMessage (消息)
              └── FunctionGenRecord (生成记录)
"""

from app.models.agent import Agent, AgentType
from app.models.chat import ChatMessage, ChatSession, MessageRole, SessionStatus
from app.models.function_gen_record import FunctionGenRecord, RecordStatus
from app.models.knowledge_base import DocumentStatus, KnowledgeBase, KnowledgeDocument
from app.models.llm_config import LLMConfig

__all__ = [
    "Agent",
    "AgentType",
    "ChatMessage",
    "ChatSession",
    "DocumentStatus",
    "FunctionGenRecord",
    "KnowledgeBase",
    "KnowledgeDocument",
    "LLMConfig",
    "MessageRole",
    "RecordStatus",
    "SessionStatus",
]
