"""
Backlog Pilot Database Models
SQLAlchemy 2.0 with PostgreSQL

Enforces:
- Relational integrity via foreign keys (deleting a backlog cascades)
- Per-story unique task ordering
- Row ownership via user_id on every table
"""
from datetime import datetime, timezone
from typing import Optional, List, Any
from enum import Enum as PyEnum
import uuid

from sqlalchemy import (
    String, Text, Integer, Float, DateTime, JSON,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def generate_uuid() -> str:
    """Generate a row id"""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# ENUMS (Python-side for type safety)
# ============================================

class ChatRole(str, PyEnum):
    USER = "user"
    ASSISTANT = "assistant"


class StoryStatus(str, PyEnum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskStatus(str, PyEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ProjectComplexity(str, PyEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


# ============================================
# BACKLOG
# ============================================

class Backlog(Base):
    """Root aggregate: a named product container"""
    __tablename__ = "backlogs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Deletes are issued against the parent row; children go by FK cascade
    user_stories: Mapped[List["UserStory"]] = relationship(back_populates="backlog", passive_deletes=True)
    chat_messages: Mapped[List["ChatMessage"]] = relationship(back_populates="backlog", passive_deletes=True)

    __table_args__ = (
        Index("idx_backlogs_user_id", "user_id"),
    )


# ============================================
# CHAT (append-only)
# ============================================

class ChatMessage(Base):
    """A single turn of the brainstorming conversation for a backlog"""
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    backlog_id: Mapped[str] = mapped_column(String(36), ForeignKey("backlogs.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # user | assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    backlog: Mapped["Backlog"] = relationship(back_populates="chat_messages")

    __table_args__ = (
        Index("idx_chat_messages_backlog_created", "backlog_id", "created_at"),
    )


# ============================================
# USER STORIES
# ============================================

class UserStory(Base):
    """Requirement record with acceptance criteria and a kanban status.

    backlog_id is nullable for legacy stories saved before backlogs existed.
    """
    __tablename__ = "user_stories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    backlog_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("backlogs.id", ondelete="CASCADE"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    acceptance_criteria: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), default=StoryStatus.BACKLOG.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    backlog: Mapped[Optional["Backlog"]] = relationship(back_populates="user_stories")
    tasks: Mapped[List["Task"]] = relationship(back_populates="user_story", passive_deletes=True)

    __table_args__ = (
        Index("idx_user_stories_user_id", "user_id"),
        Index("idx_user_stories_backlog_id", "backlog_id"),
    )


# ============================================
# TASKS
# ============================================

class Task(Base):
    """Development work item decomposed from a user story"""
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_story_id: Mapped[str] = mapped_column(String(36), ForeignKey("user_stories.id", ondelete="CASCADE"), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=TaskPriority.MEDIUM.value, nullable=False)
    estimated_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.TODO.value, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    user_story: Mapped["UserStory"] = relationship(back_populates="tasks")

    __table_args__ = (
        UniqueConstraint("user_story_id", "order_index", name="uq_tasks_story_order"),
        Index("idx_tasks_user_id", "user_id"),
    )


# ============================================
# TECH STACK SUGGESTIONS
# ============================================

class TechStackSuggestion(Base):
    """Cached technology-stack recommendation (one current row per backlog)"""
    __tablename__ = "tech_stack_suggestions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    backlog_id: Mapped[str] = mapped_column(String(36), ForeignKey("backlogs.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    project_type: Mapped[str] = mapped_column(String(200), nullable=False)
    complexity: Mapped[str] = mapped_column(String(20), nullable=False)
    estimated_timeframe: Mapped[str] = mapped_column(String(200), nullable=False)
    key_features: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    suggestions: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_tech_stack_backlog_user", "backlog_id", "user_id"),
    )
