from fastapi import APIRouter, HTTPException, Request, Depends, Query
from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db
from models.tech_stack import (
    TechStackRecommendation, TechStackGenerationRequest,
    SaveTechStackRequest, TechStackSuggestionResponse
)
from services.backlog_service import BacklogService
from services.user_story_service import UserStoryService
from services.tech_stack_service import TechStackService
from services.context_service import get_context_service
from services.llm_service import LLMService, get_llm_service
from services.strict_output_service import GenerationPurpose, get_profile
from services.rate_limit import limit_ai, limit_api_read, limit_api_write
from routes.auth import get_current_user_id
from routes.common import stream_structured, raise_storage_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tech-stack"])


def suggestion_to_response(row) -> dict:
    """Stored row plus the camelCase fields the client renders directly"""
    data = TechStackSuggestionResponse.model_validate(row).model_dump()
    data.update({
        "projectType": row.project_type,
        "estimatedTimeframe": row.estimated_timeframe,
        "keyFeatures": row.key_features,
        "cachedAt": row.created_at,
    })
    return data


@router.post("/generate-tech-stack")
@limit_ai()
async def generate_tech_stack(
    request: Request,
    body: TechStackGenerationRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db),
    llm_service: LLMService = Depends(get_llm_service)
):
    """Recommend a technology stack for a backlog (streaming)"""
    backlog = await BacklogService(session).get_backlog(body.backlog_id, user_id)
    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")

    stories = await UserStoryService(session).get_backlog_stories(body.backlog_id, user_id)

    prompt = get_context_service().build_tech_stack_prompt(backlog, stories)
    return stream_structured(
        llm_service,
        get_profile(GenerationPurpose.TECH_STACK),
        prompt.system_prompt,
        prompt.user_prompt,
        TechStackRecommendation,
        user_id=user_id
    )


@router.get("/get-cached-tech-stack")
@limit_api_read()
async def get_cached_tech_stack(
    request: Request,
    backlog_id: Optional[str] = Query(None, alias="backlogId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    if not backlog_id:
        raise HTTPException(status_code=400, detail="Backlog ID is required")

    try:
        backlog = await BacklogService(session).get_backlog(backlog_id, user_id)
        row = await TechStackService(session).get_latest(backlog_id, user_id) if backlog else None
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "fetch cached tech stack")

    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")

    if not row:
        return {"cached": False}
    return {"cached": True, "data": suggestion_to_response(row)}


@router.post("/save-tech-stack")
@limit_api_write()
async def save_tech_stack(
    request: Request,
    body: SaveTechStackRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Replace the backlog's cached recommendation"""
    try:
        row = await TechStackService(session).replace_suggestion(user_id, body.backlog_id, body)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "save tech stack")

    if row is None:
        raise HTTPException(status_code=404, detail="Backlog not found")

    return {"success": True, "data": suggestion_to_response(row)}
