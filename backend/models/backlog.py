from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime

from .user_story import ConversationMessage


class BacklogCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class BacklogUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class BacklogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BacklogOverviewResponse(BaseModel):
    backlog: BacklogResponse
    story_counts: Dict[str, int]
    task_counts: Dict[str, int]
    total_stories: int
    total_tasks: int


class ChatMessageCreate(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    backlog_id: str
    user_id: str
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="message_metadata")
    created_at: datetime


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    backlog_id: str = Field(..., alias="backlogId", min_length=1)
    messages: List[ConversationMessage] = Field(..., min_length=1)
