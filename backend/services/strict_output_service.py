"""
Strict Output Service for Backlog Pilot
Turns raw LLM text into values the schema validators accept.

Features:
1. Generation Profiles - model / temperature / token budget per endpoint
2. Partial JSON decoding - json_repair snapshots while a stream is in flight
3. Final extraction + schema validation - the only path to a final value
"""
import json
import os
import re
import logging
from typing import Optional, Any, Type, TypeVar, List, Tuple
from dataclasses import dataclass
from enum import Enum
from json_repair import repair_json
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class GenerationPurpose(str, Enum):
    """Endpoints that call the completion service"""
    CHAT = "chat"
    STORIES = "stories"
    TASKS = "tasks"
    TECH_STACK = "tech_stack"


@dataclass(frozen=True)
class GenerationProfile:
    """Cost/quality settings for one purpose"""
    purpose: GenerationPurpose
    model: str
    temperature: Optional[float] = None
    max_tokens: int = 4096


# Cheaper model for routine breakdown, stronger one for open-ended reasoning
GENERATION_PROFILES = {
    GenerationPurpose.CHAT: GenerationProfile(
        GenerationPurpose.CHAT,
        model=os.environ.get("LLM_MODEL_CHAT", "gpt-4o"),
        temperature=0.7,
        max_tokens=1000,
    ),
    GenerationPurpose.STORIES: GenerationProfile(
        GenerationPurpose.STORIES,
        model=os.environ.get("LLM_MODEL_STORIES", "gpt-4o-mini"),
    ),
    GenerationPurpose.TASKS: GenerationProfile(
        GenerationPurpose.TASKS,
        model=os.environ.get("LLM_MODEL_TASKS", "gpt-4o-mini"),
    ),
    GenerationPurpose.TECH_STACK: GenerationProfile(
        GenerationPurpose.TECH_STACK,
        model=os.environ.get("LLM_MODEL_TECH_STACK", "gpt-4o"),
    ),
}


def get_profile(purpose: GenerationPurpose) -> GenerationProfile:
    return GENERATION_PROFILES[purpose]


_FENCE_OPEN = re.compile(r'^\s*```(?:json)?\s*')


class StrictOutputService:
    """
    Service for turning LLM output into validated structured values.
    Used by the structured generation client for both partial and final values.
    """

    def extract_json(self, text: str) -> Optional[Any]:
        """
        Extract the final JSON value from an LLM response.
        Handles markdown code blocks, surrounding prose and syntax slips such
        as trailing commas. A document that never closes is not recovered.
        """
        if not text:
            return None

        # Strategy 1: Try direct parse (clean JSON)
        try:
            return json.loads(text.strip())
        except json.JSONDecodeError:
            pass

        # Strategy 2: Extract from markdown code block
        code_block_match = re.search(r'```(?:json)?\s*\n?(.*?)\n?```', text, re.DOTALL)
        if code_block_match:
            try:
                return json.loads(code_block_match.group(1).strip())
            except json.JSONDecodeError:
                pass

        # Strategy 3: Outermost braces, which must be closed
        start = text.find('{')
        if start == -1:
            return None

        depth = 0
        end = None
        for i, char in enumerate(text[start:], start):
            if char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    end = i + 1
                    break
        if end is None:
            return None

        document = text[start:end]
        try:
            return json.loads(document)
        except json.JSONDecodeError:
            pass

        # Strategy 4: Repair syntax slips inside the closed document
        repaired = repair_json(document, return_objects=True)
        return repaired if isinstance(repaired, (dict, list)) else None

    def parse_partial_json(self, text: str) -> Optional[Any]:
        """
        Best-effort decode of a JSON document that is still being streamed.
        Open strings, arrays and objects are closed by json_repair; prose or
        an opening code fence before the document is skipped.
        """
        if not text or not text.strip():
            return None

        value = repair_json(_FENCE_OPEN.sub('', text, count=1), return_objects=True)
        return value if isinstance(value, (dict, list)) else None

    def validate_against_schema(
        self,
        data: Any,
        schema: Type[T]
    ) -> Tuple[bool, Optional[T], List[str]]:
        """
        Validate data against a Pydantic schema.
        Returns (valid, parsed_model, errors)
        """
        try:
            model = schema.model_validate(data)
            return True, model, []
        except ValidationError as e:
            return False, None, format_validation_errors(e)

    def build_schema_instruction(self, schema: Type[BaseModel]) -> str:
        """JSON schema block appended to structured-generation system prompts"""
        return (
            "\n\nRESPONSE SCHEMA (JSON):\n"
            + json.dumps(schema.model_json_schema(by_alias=True), indent=2)
            + "\n\nReturn ONLY valid JSON that matches the expected schema. "
            "No additional text or formatting."
        )


def format_validation_errors(error: ValidationError) -> List[str]:
    """Flatten a pydantic ValidationError into 'field.path: message' strings"""
    errors = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err["loc"])
        errors.append(f"{loc}: {err['msg']}")
    return errors


# Singleton instance
_strict_output_service: Optional[StrictOutputService] = None


def get_strict_output_service() -> StrictOutputService:
    """Get or create the strict output service singleton"""
    global _strict_output_service
    if _strict_output_service is None:
        _strict_output_service = StrictOutputService()
    return _strict_output_service
