"""
API 依赖注入函数

这个模块定义了所有 API 路由共用的依赖项。

使用示例：
    @router.post("/example")
    async def example_endpoint(
        db: AsyncSession = Depends(get_db_session),
        service: FunctionGenChatService = Depends(get_chat_service),
    ):
        pass
"""

from app.db.session import get_db
from app.services.function_gen_chat import FunctionGenChatService, get_function_gen_chat_service


def get_chat_service() -> FunctionGenChatService:
    """获取函数生成对话编排器（测试中可通过 dependency_overrides 替换）"""
    return get_function_gen_chat_service()


# 重新导出数据库会话获取函数，方便路由模块导入
get_db_session = get_db
