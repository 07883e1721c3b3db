from typing import AsyncGenerator, Optional, Type, List, Any
import asyncio
from dataclasses import dataclass
import httpx
import json
import logging
import os
import time

from pydantic import BaseModel

from services.strict_output_service import (
    GenerationProfile, StrictOutputService, get_strict_output_service
)
from services.logging_service import log_ai_generation

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
GENERATION_TIMEOUT_SECONDS = float(os.environ.get("GENERATION_TIMEOUT_SECONDS", "30"))


class GenerationError(Exception):
    """The completion service could not produce an acceptable result"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass
class GenerationEvent:
    """One step of a structured generation stream.

    type is "partial" for best-effort snapshots and "complete" for the single
    validated final value.
    """
    type: str
    data: Any

    @property
    def is_final(self) -> bool:
        return self.type == "complete"


class LLMService:
    """Client for the hosted completion service (OpenAI-compatible chat API)"""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        strict_output: StrictOutputService = None
    ):
        self.api_key = api_key if api_key is not None else OPENAI_API_KEY
        self.base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self.timeout = timeout or GENERATION_TIMEOUT_SECONDS
        self.strict_output = strict_output or get_strict_output_service()

    async def stream_text(
        self,
        profile: GenerationProfile,
        system_prompt: str,
        messages: List[dict],
        user_id: str = None
    ) -> AsyncGenerator[str, None]:
        """Stream assistant text for a conversation"""
        started = time.time()
        try:
            async for chunk in self._openai_stream(profile, system_prompt, messages):
                yield chunk
        except GenerationError as e:
            log_ai_generation(user_id, profile.purpose.value, profile.model,
                              duration_ms=_elapsed_ms(started), success=False, error=str(e))
            raise
        log_ai_generation(user_id, profile.purpose.value, profile.model,
                          duration_ms=_elapsed_ms(started))

    async def stream_object(
        self,
        profile: GenerationProfile,
        system_prompt: str,
        user_prompt: str,
        schema: Type[BaseModel],
        user_id: str = None
    ) -> AsyncGenerator[GenerationEvent, None]:
        """
        Stream a structured value conforming to `schema`.

        Yields "partial" events whenever the decodable prefix changes, then one
        "complete" event holding the validated value (dumped by alias). Raises
        GenerationError if the final output is missing or does not validate.
        """
        started = time.time()
        full_response = ""
        last_partial = None
        system_prompt = system_prompt + self.strict_output.build_schema_instruction(schema)
        messages = [{"role": "user", "content": user_prompt}]

        try:
            async for chunk in self._openai_stream(profile, system_prompt, messages, json_mode=True):
                full_response += chunk
                partial = self.strict_output.parse_partial_json(full_response)
                if partial is not None and partial != last_partial:
                    last_partial = partial
                    yield GenerationEvent(type="partial", data=partial)

            data = self.strict_output.extract_json(full_response)
            if data is None:
                raise GenerationError("Model response did not contain valid JSON")

            valid, model, errors = self.strict_output.validate_against_schema(data, schema)
            if not valid:
                raise GenerationError("Model response did not match the expected schema", errors)
        except GenerationError as e:
            log_ai_generation(user_id, profile.purpose.value, profile.model,
                              duration_ms=_elapsed_ms(started), success=False, error=str(e))
            raise

        log_ai_generation(user_id, profile.purpose.value, profile.model,
                          duration_ms=_elapsed_ms(started))
        yield GenerationEvent(type="complete", data=model.model_dump(by_alias=True, exclude_none=True))

    async def _openai_stream(
        self,
        profile: GenerationProfile,
        system_prompt: str,
        conversation: List[dict],
        json_mode: bool = False
    ) -> AsyncGenerator[str, None]:
        """Stream content deltas from the chat completions endpoint"""
        if not self.api_key:
            raise GenerationError("No LLM API key configured")

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(conversation)

        request_body = {
            "model": profile.model,
            "messages": messages,
            "stream": True,
            "max_tokens": profile.max_tokens
        }
        if profile.temperature is not None:
            request_body["temperature"] = profile.temperature
        if json_mode:
            request_body["response_format"] = {"type": "json_object"}

        deadline = time.monotonic() + self.timeout

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                request = client.build_request(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json"
                    },
                    json=request_body
                )
                response = await _before(deadline, client.send(request, stream=True))
                try:
                    if response.status_code != 200:
                        error_text = await _before(deadline, response.aread())
                        logger.error(f"LLM API error {response.status_code}: {error_text.decode(errors='replace')}")
                        raise GenerationError(f"LLM API error: HTTP {response.status_code}")

                    lines = response.aiter_lines()
                    while True:
                        line = await _before(deadline, anext(lines, None))
                        if line is None:
                            break
                        if not line.startswith("data: "):
                            continue
                        data = line[6:]
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError:
                            continue
                        choices = chunk.get("choices") or [{}]
                        content = choices[0].get("delta", {}).get("content", "")
                        if content:
                            yield content
                finally:
                    await response.aclose()
        except httpx.TimeoutException as e:
            raise GenerationError("Generation timed out") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"LLM request failed: {type(e).__name__}") from e


async def _before(deadline: float, awaitable):
    """Await `awaitable`, giving up once the generation's wall-clock deadline passes"""
    async def run():
        return await awaitable

    try:
        return await asyncio.wait_for(run(), timeout=max(deadline - time.monotonic(), 0))
    except asyncio.TimeoutError as e:
        raise GenerationError("Generation timed out") from e


def _elapsed_ms(started: float) -> float:
    return round((time.time() - started) * 1000, 2)


# Singleton instance
_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Get or create the LLM service singleton (FastAPI dependency)"""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
