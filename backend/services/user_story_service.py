"""
User Story Service for Backlog Pilot
Persists accepted story generations and moves stories across the kanban
"""
from typing import Optional, List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import UserStory, StoryStatus, utc_now
from models.user_story import UserStoryInput
from services.logging_service import log_operation


class UserStoryService:
    """Service for User Story persistence; rows are always scoped by owning user"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_story(self, story_id: str, user_id: str) -> Optional[UserStory]:
        """Get a story by ID (None when missing or not owned)"""
        result = await self.session.execute(
            select(UserStory).where(UserStory.id == story_id, UserStory.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def lock_story(self, story_id: str, user_id: str) -> Optional[UserStory]:
        """Get a story and hold a row lock on it until the transaction ends"""
        result = await self.session.execute(
            select(UserStory)
            .where(UserStory.id == story_id, UserStory.user_id == user_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_backlog_stories(
        self,
        backlog_id: str,
        user_id: str,
        limit: Optional[int] = None,
        newest_first: bool = False
    ) -> List[UserStory]:
        query = select(UserStory).where(
            UserStory.backlog_id == backlog_id,
            UserStory.user_id == user_id
        )
        if newest_first:
            query = query.order_by(UserStory.created_at.desc())
        else:
            query = query.order_by(UserStory.created_at.asc())
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    @log_operation("save_stories")
    async def save_stories(
        self,
        user_id: str,
        stories: List[UserStoryInput],
        backlog_id: Optional[str] = None
    ) -> List[UserStory]:
        """Insert accepted stories in the order supplied, all in one commit"""
        rows = [
            UserStory(
                user_id=user_id,
                backlog_id=backlog_id,
                title=story.title,
                description=story.description,
                acceptance_criteria=list(story.acceptance_criteria),
                status=StoryStatus.BACKLOG.value
            )
            for story in stories
        ]
        self.session.add_all(rows)
        await self.session.commit()
        for row in rows:
            await self.session.refresh(row)
        return rows

    @log_operation("update_story_status")
    async def update_status(self, user_id: str, story_id: str, status: str) -> Optional[UserStory]:
        """Set the kanban status. Returns None when the caller does not own the story."""
        story = await self.get_story(story_id, user_id)
        if not story:
            return None

        story.status = status
        story.updated_at = utc_now()
        await self.session.commit()
        await self.session.refresh(story)
        return story

    @log_operation("delete_story")
    async def delete_story(self, user_id: str, story_id: str) -> bool:
        result = await self.session.execute(
            delete(UserStory).where(UserStory.id == story_id, UserStory.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount > 0
