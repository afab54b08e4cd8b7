"""
Agent Server - 应用主包

智能体对话编排服务的核心应用包，包含以下子模块：
- api/        : API 路由和依赖注入
- db/         : 数据库连接和会话管理
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- services/   : 业务逻辑服务层（对话编排、回调、持久化）
- infra/      : 基础设施（LLM 客户端、workspace 客户端、日志）
- middleware/ : 请求追踪

项目架构遵循分层设计：
    API层 → 服务层 → 数据访问层 → 基础设施层
"""
