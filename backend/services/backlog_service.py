"""
Backlog Service for Backlog Pilot
Backlog CRUD and the append-only chat history attached to a backlog
"""
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Backlog, ChatMessage, UserStory, Task, StoryStatus, TaskStatus, utc_now
from services.context_service import CHAT_HISTORY_WINDOW
from services.logging_service import log_operation


class BacklogService:
    """Service for backlog lifecycle; every query is scoped by owning user"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_backlogs(self, user_id: str) -> List[Backlog]:
        result = await self.session.execute(
            select(Backlog)
            .where(Backlog.user_id == user_id)
            .order_by(Backlog.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_backlog(self, backlog_id: str, user_id: str) -> Optional[Backlog]:
        """Get a backlog by ID (None when missing or owned by someone else)"""
        result = await self.session.execute(
            select(Backlog).where(Backlog.id == backlog_id, Backlog.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def lock_backlog(self, backlog_id: str, user_id: str) -> Optional[Backlog]:
        """Same as get_backlog but takes a row lock for the rest of the transaction"""
        result = await self.session.execute(
            select(Backlog)
            .where(Backlog.id == backlog_id, Backlog.user_id == user_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    @log_operation("create_backlog")
    async def create_backlog(self, user_id: str, name: str, description: Optional[str] = None) -> Backlog:
        backlog = Backlog(user_id=user_id, name=name, description=description)
        self.session.add(backlog)
        await self.session.commit()
        await self.session.refresh(backlog)
        return backlog

    async def update_backlog(
        self,
        backlog: Backlog,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Backlog:
        if name is not None:
            backlog.name = name
        if description is not None:
            backlog.description = description
        backlog.updated_at = utc_now()
        await self.session.commit()
        await self.session.refresh(backlog)
        return backlog

    @log_operation("delete_backlog")
    async def delete_backlog(self, backlog_id: str, user_id: str) -> bool:
        """
        Delete the parent row only. Stories, tasks, chat messages and tech
        stack suggestions are removed by the store's ON DELETE CASCADE.
        """
        result = await self.session.execute(
            delete(Backlog).where(Backlog.id == backlog_id, Backlog.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def get_overview(self, backlog: Backlog) -> Dict[str, Any]:
        """Story and task counts by status for a backlog"""
        story_rows = await self.session.execute(
            select(UserStory.status, func.count())
            .where(UserStory.backlog_id == backlog.id, UserStory.user_id == backlog.user_id)
            .group_by(UserStory.status)
        )
        story_counts = {s.value: 0 for s in StoryStatus}
        story_counts.update({status: count for status, count in story_rows.all()})

        task_rows = await self.session.execute(
            select(Task.status, func.count())
            .join(UserStory, UserStory.id == Task.user_story_id)
            .where(UserStory.backlog_id == backlog.id, Task.user_id == backlog.user_id)
            .group_by(Task.status)
        )
        task_counts = {s.value: 0 for s in TaskStatus}
        task_counts.update({status: count for status, count in task_rows.all()})

        return {
            "story_counts": story_counts,
            "task_counts": task_counts,
            "total_stories": sum(story_counts.values()),
            "total_tasks": sum(task_counts.values()),
        }

    # ============================================
    # CHAT HISTORY
    # ============================================

    async def list_messages(self, backlog_id: str, user_id: str) -> List[ChatMessage]:
        """Full conversation in creation order"""
        result = await self.session.execute(
            select(ChatMessage)
            .where(ChatMessage.backlog_id == backlog_id, ChatMessage.user_id == user_id)
            .order_by(ChatMessage.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_recent_messages(
        self,
        backlog_id: str,
        user_id: str,
        limit: int = CHAT_HISTORY_WINDOW
    ) -> List[ChatMessage]:
        """The most recent `limit` messages, returned oldest first"""
        result = await self.session.execute(
            select(ChatMessage)
            .where(ChatMessage.backlog_id == backlog_id, ChatMessage.user_id == user_id)
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def append_message(
        self,
        backlog_id: str,
        user_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ChatMessage:
        message = ChatMessage(
            backlog_id=backlog_id,
            user_id=user_id,
            role=role,
            content=content,
            message_metadata=metadata or {}
        )
        self.session.add(message)
        await self.session.commit()
        await self.session.refresh(message)
        return message
