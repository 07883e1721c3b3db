"""
Task Service for Backlog Pilot
Appends generated tasks to a story and tracks their kanban status
"""
from typing import Optional, List

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Task, UserStory, TaskStatus, utc_now
from models.task import TaskInput
from services.logging_service import log_operation
from services.user_story_service import UserStoryService


class TaskService:
    """Service for task persistence; rows are always scoped by owning user"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_task(self, task_id: str, user_id: str) -> Optional[Task]:
        result = await self.session.execute(
            select(Task).where(Task.id == task_id, Task.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_story_tasks(self, story_id: str, user_id: str) -> List[Task]:
        """Tasks of one story in display order"""
        result = await self.session.execute(
            select(Task)
            .where(Task.user_story_id == story_id, Task.user_id == user_id)
            .order_by(Task.order_index.asc())
        )
        return list(result.scalars().all())

    async def get_backlog_tasks(self, backlog_id: str, user_id: str) -> List[Task]:
        """Every task belonging to the backlog's stories"""
        result = await self.session.execute(
            select(Task)
            .join(UserStory, UserStory.id == Task.user_story_id)
            .where(UserStory.backlog_id == backlog_id, Task.user_id == user_id)
            .order_by(UserStory.created_at.asc(), Task.order_index.asc())
        )
        return list(result.scalars().all())

    async def next_order_index(self, story_id: str) -> int:
        """One past the current maximum for the story, or 0 when it has none"""
        result = await self.session.execute(
            select(func.max(Task.order_index)).where(Task.user_story_id == story_id)
        )
        current_max = result.scalar()
        return 0 if current_max is None else current_max + 1

    @log_operation("save_tasks")
    async def append_tasks(
        self,
        user_id: str,
        story_id: str,
        tasks: List[TaskInput]
    ) -> Optional[List[Task]]:
        """
        Append tasks after the story's current highest order_index.

        The parent story row is locked first, so concurrent saves for the
        same story queue up instead of reading the same maximum. Returns None
        when the caller does not own the story.
        """
        if await UserStoryService(self.session).lock_story(story_id, user_id) is None:
            await self.session.rollback()
            return None

        start = await self.next_order_index(story_id)
        rows = [
            Task(
                user_id=user_id,
                user_story_id=story_id,
                title=task.title,
                description=task.description,
                priority=task.priority,
                estimated_hours=task.estimated_hours,
                status=TaskStatus.TODO.value,
                order_index=start + offset
            )
            for offset, task in enumerate(tasks)
        ]
        self.session.add_all(rows)
        await self.session.commit()
        for row in rows:
            await self.session.refresh(row)
        return rows

    @log_operation("update_task_status")
    async def update_status(self, user_id: str, task_id: str, status: str) -> Optional[Task]:
        task = await self.get_task(task_id, user_id)
        if not task:
            return None

        task.status = status
        task.updated_at = utc_now()
        await self.session.commit()
        await self.session.refresh(task)
        return task

    @log_operation("delete_task")
    async def delete_task(self, user_id: str, task_id: str) -> bool:
        result = await self.session.execute(
            delete(Task).where(Task.id == task_id, Task.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount > 0
