from fastapi import APIRouter, HTTPException, Request, Depends
from typing import List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db
from models.task import (
    TasksResponse, TaskGenerationRequest, SaveTasksRequest,
    UpdateTaskStatusRequest, TaskResponse
)
from services.backlog_service import BacklogService
from services.user_story_service import UserStoryService
from services.task_service import TaskService
from services.context_service import get_context_service
from services.llm_service import LLMService, get_llm_service
from services.strict_output_service import GenerationPurpose, get_profile
from services.rate_limit import limit_ai, limit_api_read, limit_api_write
from routes.auth import get_current_user_id
from routes.common import stream_structured, raise_storage_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])


def task_to_response(task) -> dict:
    return TaskResponse.model_validate(task).model_dump()


@router.post("/generate-tasks")
@limit_ai()
async def generate_tasks(
    request: Request,
    body: TaskGenerationRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db),
    llm_service: LLMService = Depends(get_llm_service)
):
    """Break a user story down into development tasks (streaming)"""
    story_id = str(body.user_story_id)
    story = await UserStoryService(session).get_story(story_id, user_id)
    if not story:
        raise HTTPException(status_code=404, detail="User story not found")

    existing_tasks = await TaskService(session).get_story_tasks(story_id, user_id)

    prompt = get_context_service().build_task_prompt(story, existing_tasks, body.context)
    return stream_structured(
        llm_service,
        get_profile(GenerationPurpose.TASKS),
        prompt.system_prompt,
        prompt.user_prompt,
        TasksResponse,
        user_id=user_id
    )


@router.post("/save-tasks")
@limit_api_write()
async def save_tasks(
    request: Request,
    body: SaveTasksRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Append accepted tasks after the story's existing ones"""
    try:
        saved = await TaskService(session).append_tasks(user_id, body.user_story_id, body.tasks)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "save tasks")

    if saved is None:
        raise HTTPException(status_code=404, detail="User story not found")

    return {
        "success": True,
        "savedTasks": [task_to_response(t) for t in saved],
        "count": len(saved)
    }


@router.patch("/update-task-status")
@limit_api_write()
async def update_task_status(
    request: Request,
    body: UpdateTaskStatusRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    try:
        task = await TaskService(session).update_status(user_id, body.task_id, body.status)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "update task status")

    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    return {"success": True, "task": task_to_response(task)}


@router.get("/stories/{story_id}/tasks", response_model=List[TaskResponse])
@limit_api_read()
async def list_story_tasks(
    request: Request,
    story_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Tasks of a story ordered by order_index"""
    if not await UserStoryService(session).get_story(story_id, user_id):
        raise HTTPException(status_code=404, detail="User story not found")

    return await TaskService(session).get_story_tasks(story_id, user_id)


@router.get("/backlogs/{backlog_id}/tasks", response_model=List[TaskResponse])
@limit_api_read()
async def list_backlog_tasks(
    request: Request,
    backlog_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    if not await BacklogService(session).get_backlog(backlog_id, user_id):
        raise HTTPException(status_code=404, detail="Backlog not found")

    return await TaskService(session).get_backlog_tasks(backlog_id, user_id)


@router.delete("/tasks/{task_id}")
@limit_api_write()
async def delete_task(
    request: Request,
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    try:
        deleted = await TaskService(session).delete_task(user_id, task_id)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "delete task")

    if not deleted:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"message": "Task deleted"}
