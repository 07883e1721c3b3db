from pydantic import BaseModel, Field, ConfigDict, StringConstraints
from typing import Optional, List, Literal, Any
from typing_extensions import Annotated
from datetime import datetime


StoryStatusValue = Literal["backlog", "in_progress", "done"]

AcceptanceCriterion = Annotated[str, StringConstraints(min_length=1)]


class UserStoryInput(BaseModel):
    """A single user story as produced by generation or submitted for saving"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    acceptance_criteria: List[AcceptanceCriterion] = Field(..., alias="acceptanceCriteria", min_length=1)


class UserStoriesResponse(BaseModel):
    """Envelope the model is asked to emit for story generation"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stories: List[UserStoryInput] = Field(..., min_length=1)


class StoryPromptRequest(BaseModel):
    prompt: str = Field(..., min_length=10, max_length=1000)


class ConversationMessage(BaseModel):
    """A chat turn as sent by the client (extra client fields are ignored)"""
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: str = ""


class StoriesFromChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    backlog_id: str = Field(..., alias="backlogId", min_length=1)
    messages: List[ConversationMessage] = Field(..., min_length=1)


class SaveStoriesRequest(UserStoriesResponse):
    backlog_id: Optional[str] = Field(None, alias="backlogId")


class UpdateStoryStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    story_id: str = Field(..., alias="storyId", min_length=1)
    status: StoryStatusValue


class UserStoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    backlog_id: Optional[str] = None
    title: str
    description: str
    acceptance_criteria: List[Any] = []
    status: str
    created_at: datetime
    updated_at: datetime
