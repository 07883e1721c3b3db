from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Literal
from datetime import datetime
from uuid import UUID


TaskPriorityValue = Literal["low", "medium", "high", "critical"]
TaskStatusValue = Literal["todo", "in_progress", "done"]


class TaskInput(BaseModel):
    """A single development task as produced by generation or submitted for saving"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    priority: TaskPriorityValue = "medium"
    estimated_hours: Optional[float] = Field(None, alias="estimatedHours", gt=0, lt=1000)


class TasksResponse(BaseModel):
    """Envelope the model is asked to emit for task generation"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tasks: List[TaskInput] = Field(..., min_length=1)


class TaskGenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_story_id: UUID = Field(..., alias="userStoryId")
    context: Optional[str] = None


class SaveTasksRequest(TasksResponse):
    user_story_id: str = Field(..., alias="userStoryId", min_length=1)


class UpdateTaskStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(..., alias="taskId", min_length=1)
    status: TaskStatusValue


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    user_story_id: str
    title: str
    description: str
    priority: str
    estimated_hours: Optional[float] = None
    status: str
    order_index: int
    created_at: datetime
    updated_at: datetime
