"""
LLM 配置路由

- POST /agent/llm/set_default   设置默认 LLM（同一事务内重置其它配置）
- GET  /agent/llm/default       查询当前默认 LLM
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session
from app.exceptions import NoDefaultLLMError
from app.schemas.agent_chat import LLMConfigInfo, SetDefaultLLMRequest
from app.services import store

router = APIRouter(prefix="/agent/llm", tags=["llm"])


@router.post("/set_default", response_model=LLMConfigInfo)
async def set_default_llm(
    payload: SetDefaultLLMRequest,
    db: AsyncSession = Depends(get_db_session),
):
    config = await store.set_default_llm_config(db, payload.llm_config_id)
    return LLMConfigInfo.model_validate(config)


@router.get("/default", response_model=LLMConfigInfo)
async def get_default_llm(db: AsyncSession = Depends(get_db_session)):
    config = await store.get_default_llm_config(db)
    if config is None:
        raise NoDefaultLLMError("未配置默认 LLM")
    return LLMConfigInfo.model_validate(config)
