"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py             : 健康检查接口
- agent_chat.py         : 函数生成对话、会话/消息/生成记录查询
- llm_configs.py        : 默认 LLM 设置
- workspace_callback.py : workspace 处理结果回调
"""

from fastapi import APIRouter

from app.api.routes import (
    agent_chat,
    health,
    llm_configs,
    workspace_callback,
)

# 主路由器，包含所有 API 端点
api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(agent_chat.router)
api_router.include_router(llm_configs.router)
api_router.include_router(workspace_callback.router)
