"""create backlog tables

Revision ID: 3f1a9c2e7b40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create backlogs, chat_messages, user_stories, tasks and tech_stack_suggestions."""
    op.create_table('backlogs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_backlogs_user_id', 'backlogs', ['user_id'], unique=False)

    op.create_table('chat_messages',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('backlog_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['backlog_id'], ['backlogs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_chat_messages_backlog_created', 'chat_messages', ['backlog_id', 'created_at'], unique=False)

    op.create_table('user_stories',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('backlog_id', sa.String(length=36), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('acceptance_criteria', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='backlog'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['backlog_id'], ['backlogs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_user_stories_user_id', 'user_stories', ['user_id'], unique=False)
    op.create_index('idx_user_stories_backlog_id', 'user_stories', ['backlog_id'], unique=False)

    op.create_table('tasks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('user_story_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('estimated_hours', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='todo'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_story_id'], ['user_stories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_story_id', 'order_index', name='uq_tasks_story_order')
    )
    op.create_index('idx_tasks_user_id', 'tasks', ['user_id'], unique=False)

    op.create_table('tech_stack_suggestions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('backlog_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('project_type', sa.String(length=200), nullable=False),
        sa.Column('complexity', sa.String(length=20), nullable=False),
        sa.Column('estimated_timeframe', sa.String(length=200), nullable=False),
        sa.Column('key_features', sa.JSON(), nullable=False),
        sa.Column('suggestions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['backlog_id'], ['backlogs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_tech_stack_backlog_user', 'tech_stack_suggestions', ['backlog_id', 'user_id'], unique=False)


def downgrade() -> None:
    """Drop all backlog tables."""
    op.drop_index('idx_tech_stack_backlog_user', table_name='tech_stack_suggestions')
    op.drop_table('tech_stack_suggestions')
    op.drop_index('idx_tasks_user_id', table_name='tasks')
    op.drop_table('tasks')
    op.drop_index('idx_user_stories_backlog_id', table_name='user_stories')
    op.drop_index('idx_user_stories_user_id', table_name='user_stories')
    op.drop_table('user_stories')
    op.drop_index('idx_chat_messages_backlog_created', table_name='chat_messages')
    op.drop_table('chat_messages')
    op.drop_index('idx_backlogs_user_id', table_name='backlogs')
    op.drop_table('backlogs')
