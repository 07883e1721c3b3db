from .database import get_db, engine, AsyncSessionLocal, init_db
from .models import (
    Base, Backlog, ChatMessage, ChatRole, UserStory, StoryStatus,
    Task, TaskStatus, TaskPriority, TechStackSuggestion, ProjectComplexity
)
