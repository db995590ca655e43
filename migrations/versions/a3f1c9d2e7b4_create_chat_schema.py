"""create chat schema

Revision ID: a3f1c9d2e7b4
Revises:
Create Date: 2026-10-19 09:12:41.208133

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a3f1c9d2e7b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Step 1: Credentials and chat identities
    op.create_table(
        'auth_users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(64), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        'auth_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'auth_user_id',
            sa.String(36),
            sa.ForeignKey('auth_users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('token', sa.String(128), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('id_alias', sa.String(64), nullable=False, unique=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('avatar_url', sa.Text()),
        sa.Column(
            'auth_user_id',
            sa.String(36),
            sa.ForeignKey('auth_users.id', ondelete='SET NULL'),
            unique=True,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Step 2: Conversations and membership
    op.create_table(
        'conversations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('name', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("type IN ('direct', 'group')", name='conversation_type_check'),
    )
    op.create_table(
        'participants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'conversation_id',
            sa.String(36),
            sa.ForeignKey('conversations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id',
            sa.String(36),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('role', sa.String(16), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('left_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint(
            'conversation_id', 'user_id', name='participants_conversation_user_unique'
        ),
        sa.CheckConstraint("role IN ('member', 'admin')", name='participant_role_check'),
    )

    # Step 3: Messages and everything attached to them
    op.create_table(
        'messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'conversation_id',
            sa.String(36),
            sa.ForeignKey('conversations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'sender_user_id',
            sa.String(36),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
        ),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('text', sa.Text()),
        sa.Column('reply_to_message_id', sa.String(36), sa.ForeignKey('messages.id')),
        sa.Column('system_event', sa.String(16)),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True)),
        sa.Column(
            'deleted_by_user_id',
            sa.String(36),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("type IN ('text', 'system')", name='message_type_check'),
        sa.CheckConstraint(
            "system_event IS NULL OR system_event IN ('join', 'leave')",
            name='message_system_event_check',
        ),
        sa.CheckConstraint("status IN ('active', 'deleted')", name='message_status_check'),
    )
    op.create_index(
        'idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at']
    )
    op.create_table(
        'reactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'message_id',
            sa.String(36),
            sa.ForeignKey('messages.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id',
            sa.String(36),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('emoji', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('message_id', 'user_id', 'emoji', name='reaction_unique'),
    )
    op.create_table(
        'conversation_reads',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'conversation_id',
            sa.String(36),
            sa.ForeignKey('conversations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id',
            sa.String(36),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'last_read_message_id',
            sa.String(36),
            sa.ForeignKey('messages.id', ondelete='SET NULL'),
        ),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('conversation_id', 'user_id', name='conversation_reads_unique'),
    )
    op.create_table(
        'message_bookmarks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'message_id',
            sa.String(36),
            sa.ForeignKey('messages.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'user_id',
            sa.String(36),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('message_id', 'user_id', name='message_bookmarks_unique'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('message_bookmarks')
    op.drop_table('conversation_reads')
    op.drop_table('reactions')
    op.drop_index('idx_messages_conversation_created', table_name='messages')
    op.drop_table('messages')
    op.drop_table('participants')
    op.drop_table('conversations')
    op.drop_table('users')
    op.drop_table('auth_sessions')
    op.drop_table('auth_users')
