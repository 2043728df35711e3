"""Initial migration

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def upgrade() -> None:
    # 1. Users (directory)
    op.create_table('users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('followers', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=True),
        sa.Column('following', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=True),
        sa.Column('blocked_users', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=True),
        sa.Column('allow_messages_from', sa.String(length=20), server_default='everyone', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)

    # 2. Interactions
    op.create_table('interactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('target_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('interaction_type', sa.String(length=20), nullable=False),
        sa.Column('context', sa.String(length=20), server_default='profile', nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_mutual', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('mutual_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('weight', sa.Integer(), server_default='2', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['target_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_interactions_actor_id'), 'interactions', ['actor_id'], unique=False)
    op.create_index(op.f('ix_interactions_target_id'), 'interactions', ['target_id'], unique=False)
    op.create_index('ix_interaction_pair_type', 'interactions', ['actor_id', 'target_id', 'interaction_type'], unique=False)
    op.create_index('ix_interaction_actor_type_created', 'interactions', ['actor_id', 'interaction_type', 'created_at'], unique=False)
    op.create_index('ix_interaction_target_type_created', 'interactions', ['target_id', 'interaction_type', 'created_at'], unique=False)
    op.create_index('ix_interaction_pair_context', 'interactions', ['actor_id', 'target_id', 'context'], unique=False)
    op.create_index(
        'uq_interaction_active_singleton', 'interactions',
        ['actor_id', 'target_id', 'interaction_type', 'context'],
        unique=True,
        postgresql_where=sa.text("is_active AND interaction_type IN ('block', 'follow')"),
    )

    # 3. Conversations (before matches, which reference them)
    op.create_table('conversations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('participant_low', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('participant_high', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('consent_state', sa.String(length=20), server_default='none', nullable=False),
        sa.Column('is_approved', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('request_from', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('pinned_message_ids', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=True),
        sa.Column('unread_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_message_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('last_message', sa.String(length=200), nullable=True),
        sa.Column('last_activity', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('chat_pin', sa.String(length=6), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['participant_low'], ['users.id'], ),
        sa.ForeignKeyConstraint(['participant_high'], ['users.id'], ),
        sa.ForeignKeyConstraint(['request_from'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('participant_low', 'participant_high', name='uq_conversation_pair')
    )
    op.create_index(op.f('ix_conversations_participant_low'), 'conversations', ['participant_low'], unique=False)
    op.create_index(op.f('ix_conversations_participant_high'), 'conversations', ['participant_high'], unique=False)
    op.create_index(op.f('ix_conversations_last_activity'), 'conversations', ['last_activity'], unique=False)
    op.create_index('ix_conversation_low_activity', 'conversations', ['participant_low', 'last_activity'], unique=False)
    op.create_index('ix_conversation_high_activity', 'conversations', ['participant_high', 'last_activity'], unique=False)

    # 4. Matches (directed rows)
    op.create_table('matches',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('partner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('partner_name', sa.String(length=255), server_default='', nullable=False),
        sa.Column('partner_avatar', sa.String(length=500), nullable=True),
        sa.Column('match_date', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('match_score', sa.Integer(), server_default='0', nullable=False),
        sa.Column('interaction_type', sa.String(length=20), server_default='mutual_like', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('message_request_pending', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('message_request_from', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('messaging_approved', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('chat_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('unread_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_message', sa.String(length=200), nullable=True),
        sa.Column('last_message_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['partner_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['message_request_from'], ['users.id'], ),
        sa.ForeignKeyConstraint(['chat_id'], ['conversations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'partner_id', name='uq_match_owner_partner')
    )
    op.create_index(op.f('ix_matches_owner_id'), 'matches', ['owner_id'], unique=False)
    op.create_index(op.f('ix_matches_partner_id'), 'matches', ['partner_id'], unique=False)
    op.create_index('ix_match_owner_date', 'matches', ['owner_id', 'match_date'], unique=False)
    op.create_index('ix_match_partner_date', 'matches', ['partner_id', 'match_date'], unique=False)

    # 5. Messages
    op.create_table('messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('conversation_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_type', sa.String(length=20), server_default='text', nullable=False),
        sa.Column('media_url', sa.String(length=500), nullable=True),
        sa.Column('is_pinned', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_edited', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('read_by', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=True),
        sa.Column('reactions', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=True),
        sa.Column('reply_to_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['reply_to_id'], ['messages.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_messages_sender_id'), 'messages', ['sender_id'], unique=False)
    op.create_index('ix_message_conversation_created', 'messages', ['conversation_id', 'created_at'], unique=False)

    # 6. Notifications
    op.create_table('notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('message', sa.String(length=500), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notification_recipient_created', 'notifications', ['recipient_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_notification_recipient_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_message_conversation_created', table_name='messages')
    op.drop_index(op.f('ix_messages_sender_id'), table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_match_partner_date', table_name='matches')
    op.drop_index('ix_match_owner_date', table_name='matches')
    op.drop_index(op.f('ix_matches_partner_id'), table_name='matches')
    op.drop_index(op.f('ix_matches_owner_id'), table_name='matches')
    op.drop_table('matches')
    op.drop_index('ix_conversation_high_activity', table_name='conversations')
    op.drop_index('ix_conversation_low_activity', table_name='conversations')
    op.drop_index(op.f('ix_conversations_last_activity'), table_name='conversations')
    op.drop_index(op.f('ix_conversations_participant_high'), table_name='conversations')
    op.drop_index(op.f('ix_conversations_participant_low'), table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('uq_interaction_active_singleton', table_name='interactions')
    op.drop_index('ix_interaction_pair_context', table_name='interactions')
    op.drop_index('ix_interaction_target_type_created', table_name='interactions')
    op.drop_index('ix_interaction_actor_type_created', table_name='interactions')
    op.drop_index('ix_interaction_pair_type', table_name='interactions')
    op.drop_index(op.f('ix_interactions_target_id'), table_name='interactions')
    op.drop_index(op.f('ix_interactions_actor_id'), table_name='interactions')
    op.drop_table('interactions')
    op.drop_index(op.f('ix_users_username'), table_name='users')
    op.drop_table('users')
