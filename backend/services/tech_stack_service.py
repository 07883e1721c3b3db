"""
Tech Stack Service for Backlog Pilot
Keeps one current technology-stack recommendation per backlog
"""
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import TechStackSuggestion
from models.tech_stack import TechStackRecommendation
from services.backlog_service import BacklogService
from services.logging_service import log_operation


class TechStackService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_latest(self, backlog_id: str, user_id: str) -> Optional[TechStackSuggestion]:
        """Newest suggestion for the (backlog, user) pair, if any"""
        result = await self.session.execute(
            select(TechStackSuggestion)
            .where(
                TechStackSuggestion.backlog_id == backlog_id,
                TechStackSuggestion.user_id == user_id
            )
            .order_by(TechStackSuggestion.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @log_operation("save_tech_stack")
    async def replace_suggestion(
        self,
        user_id: str,
        backlog_id: str,
        recommendation: TechStackRecommendation
    ) -> Optional[TechStackSuggestion]:
        """
        Replace whatever is cached for the backlog with a new recommendation.

        Delete and insert share one transaction, taken under a row lock on
        the backlog, so two concurrent saves cannot both leave a row behind.
        Returns None when the caller does not own the backlog.
        """
        if await BacklogService(self.session).lock_backlog(backlog_id, user_id) is None:
            await self.session.rollback()
            return None

        await self.session.execute(
            delete(TechStackSuggestion).where(
                TechStackSuggestion.backlog_id == backlog_id,
                TechStackSuggestion.user_id == user_id
            )
        )

        row = TechStackSuggestion(
            backlog_id=backlog_id,
            user_id=user_id,
            project_type=recommendation.project_type,
            complexity=recommendation.complexity,
            estimated_timeframe=recommendation.estimated_timeframe,
            key_features=list(recommendation.key_features),
            suggestions=[s.model_dump(exclude_none=True) for s in recommendation.suggestions]
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return row
