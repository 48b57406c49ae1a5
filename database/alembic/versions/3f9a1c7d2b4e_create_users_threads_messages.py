"""Create core tables: users, threads, messages

Revision ID: 3f9a1c7d2b4e
Revises:
Create Date: 2025-07-01 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9a1c7d2b4e'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


experience_level = postgresql.ENUM(
    'beginner', 'intermediate', 'advanced',
    name='experience_level', create_type=False
)
language = postgresql.ENUM('en', 'ml', 'hi', name='language', create_type=False)
thread_category = postgresql.ENUM(
    'pest_management', 'disease_control', 'fertilizer_advice', 'weather_guidance',
    'crop_planning', 'market_information', 'government_schemes', 'general_query', 'other',
    name='thread_category', create_type=False
)
thread_status = postgresql.ENUM('active', 'resolved', 'archived', name='thread_status', create_type=False)
thread_priority = postgresql.ENUM(
    'low', 'medium', 'high', 'urgent',
    name='thread_priority', create_type=False
)
season = postgresql.ENUM('kharif', 'rabi', 'zaid', 'perennial', name='season', create_type=False)
message_role = postgresql.ENUM('user', 'assistant', 'system', name='message_role', create_type=False)

ENUM_TYPES = (
    experience_level,
    language,
    thread_category,
    thread_status,
    thread_priority,
    season,
    message_role,
)


def upgrade() -> None:
    # Create ENUM types
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # Create users table
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('username', sa.String(length=30), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=True),
        sa.Column('last_name', sa.String(length=50), nullable=True),
        sa.Column('location', sa.String(length=100), nullable=True),
        sa.Column('farm_size', sa.String(length=50), nullable=True),
        sa.Column('crop_types', sa.ARRAY(sa.String(length=50)), nullable=False,
                  server_default=sa.text("'{}'")),
        sa.Column('experience', experience_level, nullable=False, server_default='beginner'),
        sa.Column('language', language, nullable=False, server_default='en'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_login', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create threads table
    op.create_table('threads',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False, server_default='New Chat'),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('category', thread_category, nullable=False, server_default='general_query'),
        sa.Column('status', thread_status, nullable=False, server_default='active'),
        sa.Column('priority', thread_priority, nullable=False, server_default='medium'),
        sa.Column('crop_type', sa.String(length=50), nullable=True),
        sa.Column('season', season, nullable=True),
        sa.Column('urgency_level', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_message_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('urgency_level BETWEEN 1 AND 5', name='check_urgency_level_range'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_threads_user_id', 'threads', ['user_id'], unique=False)
    op.create_index('idx_threads_user_last_message', 'threads', ['user_id', 'last_message_at'], unique=False)

    # Create messages table
    op.create_table('messages',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('thread_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('role', message_role, nullable=False, server_default='user'),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('model', sa.String(length=100), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('input_tokens', sa.Integer(), nullable=True),
        sa.Column('output_tokens', sa.Integer(), nullable=True),
        sa.Column('total_tokens', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['thread_id'], ['threads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_user_id', 'messages', ['user_id'], unique=False)

    # Recent visible messages per thread
    op.create_index(
        'idx_messages_thread_created_visible',
        'messages',
        ['thread_id', 'created_at'],
        unique=False,
        postgresql_where=sa.text('is_visible = true')
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('messages')
    op.drop_table('threads')
    op.drop_table('users')

    # Drop ENUM types
    for enum_type in reversed(ENUM_TYPES):
        op.execute(f"DROP TYPE IF EXISTS {enum_type.name}")
