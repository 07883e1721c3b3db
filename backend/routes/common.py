"""Helpers shared by the route modules: SSE framing and storage failures"""
from typing import AsyncIterator, Type
import json
import logging

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.llm_service import LLMService, GenerationError
from services.strict_output_service import GenerationProfile

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no"
}

GENERATION_FAILED_MESSAGE = "Failed to generate a valid response. Please try again."


def sse(payload: dict) -> str:
    return f"data: {json.dumps(jsonable_encoder(payload))}\n\n"


def sse_response(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


def stream_structured(
    llm_service: LLMService,
    profile: GenerationProfile,
    system_prompt: str,
    user_prompt: str,
    schema: Type[BaseModel],
    user_id: str = None
) -> StreamingResponse:
    """
    Relay a structured generation as SSE: partial snapshots, one complete
    value, then done. Any failure ends the stream with a single error event.
    """
    async def generate():
        try:
            async for event in llm_service.stream_object(
                profile, system_prompt, user_prompt, schema, user_id=user_id
            ):
                yield sse({"type": event.type, "data": event.data})
            yield sse({"type": "done"})
        except GenerationError as e:
            logger.warning(f"{profile.purpose.value} generation failed: {e}")
            yield sse({"type": "error", "message": GENERATION_FAILED_MESSAGE, "errors": e.errors})
        except Exception as e:
            logger.error(f"{profile.purpose.value} generation error: {e}")
            yield sse({"type": "error", "message": "An error occurred while generating response"})

    return sse_response(generate())


async def raise_storage_error(session: AsyncSession, error: SQLAlchemyError, action: str):
    """Roll back the open transaction and surface a 500"""
    await session.rollback()
    logger.error(f"Database error during {action}: {type(error).__name__}: {error}")
    raise HTTPException(status_code=500, detail=f"Failed to {action}")
