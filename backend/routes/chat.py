from fastapi import APIRouter, HTTPException, Request, Depends
from typing import List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db
from models.backlog import ChatRequest, ChatMessageCreate, ChatMessageResponse
from services.backlog_service import BacklogService
from services.user_story_service import UserStoryService
from services.context_service import get_context_service, STORY_CONTEXT_WINDOW
from services.llm_service import LLMService, GenerationError, get_llm_service
from services.strict_output_service import GenerationPurpose, get_profile
from services.rate_limit import limit_chat, limit_api_read, limit_api_write
from routes.auth import get_current_user_id
from routes.common import sse, sse_response, raise_storage_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("/chat")
@limit_chat()
async def chat(
    request: Request,
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db),
    llm_service: LLMService = Depends(get_llm_service)
):
    """Stream an assistant reply about a backlog.

    Nothing is stored here; the client appends both turns through the
    messages endpoint once the reply is complete.
    """
    backlog_service = BacklogService(session)
    backlog = await backlog_service.get_backlog(body.backlog_id, user_id)
    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")

    history = await backlog_service.get_recent_messages(body.backlog_id, user_id)
    stories = await UserStoryService(session).get_backlog_stories(
        body.backlog_id, user_id, limit=STORY_CONTEXT_WINDOW, newest_first=True
    )

    prompt = get_context_service().build_chat_context(
        backlog,
        history,
        stories,
        [m.model_dump() for m in body.messages]
    )
    profile = get_profile(GenerationPurpose.CHAT)

    async def generate():
        try:
            async for chunk in llm_service.stream_text(
                profile, prompt.system_prompt, prompt.messages, user_id=user_id
            ):
                yield sse({"type": "chunk", "content": chunk})
            yield sse({"type": "done"})
        except GenerationError as e:
            logger.warning(f"Chat generation failed: {e}")
            yield sse({"type": "error", "message": "Failed to process chat message"})
        except Exception as e:
            logger.error(f"Chat error: {e}")
            yield sse({"type": "error", "message": "An error occurred while generating response"})

    return sse_response(generate())


# ============================================
# Chat history (append-only)
# ============================================

@router.get("/backlogs/{backlog_id}/messages", response_model=List[ChatMessageResponse])
@limit_api_read()
async def list_messages(
    request: Request,
    backlog_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Conversation for a backlog in creation order"""
    backlog_service = BacklogService(session)
    if not await backlog_service.get_backlog(backlog_id, user_id):
        raise HTTPException(status_code=404, detail="Backlog not found")

    return await backlog_service.list_messages(backlog_id, user_id)


@router.post("/backlogs/{backlog_id}/messages", response_model=ChatMessageResponse, status_code=201)
@limit_api_write()
async def append_message(
    request: Request,
    backlog_id: str,
    body: ChatMessageCreate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    backlog_service = BacklogService(session)
    if not await backlog_service.get_backlog(backlog_id, user_id):
        raise HTTPException(status_code=404, detail="Backlog not found")

    try:
        return await backlog_service.append_message(
            backlog_id, user_id, body.role, body.content, body.metadata
        )
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "save chat message")
