from fastapi import APIRouter, HTTPException, Request, Depends
from typing import List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db
from models.user_story import (
    UserStoriesResponse, StoryPromptRequest, StoriesFromChatRequest,
    SaveStoriesRequest, UpdateStoryStatusRequest, UserStoryResponse
)
from services.backlog_service import BacklogService
from services.user_story_service import UserStoryService
from services.context_service import get_context_service, STORY_CONTEXT_WINDOW
from services.llm_service import LLMService, get_llm_service
from services.strict_output_service import GenerationPurpose, get_profile
from services.rate_limit import limit_ai, limit_api_read, limit_api_write
from routes.auth import get_current_user_id, get_optional_user_id
from routes.common import stream_structured, raise_storage_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["user-stories"])


def story_to_response(story) -> dict:
    return UserStoryResponse.model_validate(story).model_dump()


# ============================================
# Generation
# ============================================

@router.post("/generate-stories")
@limit_ai()
async def generate_stories(
    request: Request,
    body: StoryPromptRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    llm_service: LLMService = Depends(get_llm_service)
):
    """Generate a story backlog from a free-text product idea (streaming).

    Reads and writes nothing, so anonymous callers are allowed.
    """
    prompt = get_context_service().build_story_prompt(body.prompt)
    return stream_structured(
        llm_service,
        get_profile(GenerationPurpose.STORIES),
        prompt.system_prompt,
        prompt.user_prompt,
        UserStoriesResponse,
        user_id=user_id
    )


@router.post("/generate-stories-from-chat")
@limit_ai()
async def generate_stories_from_chat(
    request: Request,
    body: StoriesFromChatRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db),
    llm_service: LLMService = Depends(get_llm_service)
):
    """Turn a backlog conversation into user stories (streaming)"""
    backlog = await BacklogService(session).get_backlog(body.backlog_id, user_id)
    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")

    existing = await UserStoryService(session).get_backlog_stories(
        body.backlog_id, user_id, limit=STORY_CONTEXT_WINDOW, newest_first=True
    )

    prompt = get_context_service().build_stories_from_chat_prompt(
        backlog, [m.model_dump() for m in body.messages], existing
    )
    return stream_structured(
        llm_service,
        get_profile(GenerationPurpose.STORIES),
        prompt.system_prompt,
        prompt.user_prompt,
        UserStoriesResponse,
        user_id=user_id
    )


# ============================================
# Persistence
# ============================================

@router.post("/save-stories")
@limit_api_write()
async def save_stories(
    request: Request,
    body: SaveStoriesRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Persist accepted stories; optionally attach them to a backlog the caller owns"""
    if body.backlog_id:
        if not await BacklogService(session).get_backlog(body.backlog_id, user_id):
            raise HTTPException(status_code=404, detail="Backlog not found")

    try:
        saved = await UserStoryService(session).save_stories(user_id, body.stories, body.backlog_id)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "save stories")

    return {
        "success": True,
        "savedStories": [story_to_response(s) for s in saved],
        "count": len(saved)
    }


@router.patch("/update-story-status")
@limit_api_write()
async def update_story_status(
    request: Request,
    body: UpdateStoryStatusRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    try:
        story = await UserStoryService(session).update_status(user_id, body.story_id, body.status)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "update story status")

    if not story:
        raise HTTPException(status_code=404, detail="User story not found")

    return {"success": True, "story": story_to_response(story)}


# ============================================
# Individual Story Endpoints
# ============================================

@router.get("/backlogs/{backlog_id}/stories", response_model=List[UserStoryResponse])
@limit_api_read()
async def list_backlog_stories(
    request: Request,
    backlog_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    if not await BacklogService(session).get_backlog(backlog_id, user_id):
        raise HTTPException(status_code=404, detail="Backlog not found")

    return await UserStoryService(session).get_backlog_stories(backlog_id, user_id)


@router.get("/stories/{story_id}", response_model=UserStoryResponse)
@limit_api_read()
async def get_story(
    request: Request,
    story_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    story = await UserStoryService(session).get_story(story_id, user_id)
    if not story:
        raise HTTPException(status_code=404, detail="User story not found")
    return story


@router.delete("/stories/{story_id}")
@limit_api_write()
async def delete_story(
    request: Request,
    story_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Delete a story and its tasks"""
    try:
        deleted = await UserStoryService(session).delete_story(user_id, story_id)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "delete story")

    if not deleted:
        raise HTTPException(status_code=404, detail="User story not found")
    return {"message": "User story deleted"}
