"""initial schema: profiles, memories, threads, insights, webhook ledger

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(128), primary_key=True),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('name', sa.String(255), nullable=False, server_default=''),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('tier', sa.String(16), nullable=False, server_default='FREE'),
        sa.Column('subscription_status', sa.String(32), nullable=False, server_default='free'),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_billing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_method', sa.JSON(), nullable=True),
        sa.Column('last_payment_failure_reason', sa.String(), nullable=True),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('coins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('streak_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('voice_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('language', sa.String(8), nullable=False, server_default='en'),
        sa.Column('last_viewed_marketing_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_mode', sa.String(16), nullable=False, server_default='BASELINE'),
        sa.Column('active_thread_id', sa.String(), nullable=True),
        sa.Column('twin_state', sa.JSON(), nullable=True),
        sa.Column('rental_access', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'])
    op.create_index('ix_user_profiles_stripe_customer_id', 'user_profiles', ['stripe_customer_id'])
    op.create_index('ix_user_profiles_subscription_id', 'user_profiles', ['subscription_id'])

    op.create_table(
        'core_memories',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('category', sa.String(16), nullable=False, server_default='fact'),
        sa.Column('importance', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_core_memories_user_id', 'core_memories', ['user_id'])

    op.create_table(
        'chat_threads',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('mode', sa.String(16), nullable=False, server_default='BASELINE'),
        sa.Column('title', sa.String(255), nullable=False, server_default=''),
        sa.Column('messages', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_chat_threads_user_id', 'chat_threads', ['user_id'])
    op.create_index('ix_chat_threads_updated_at', 'chat_threads', ['updated_at'])

    op.create_table(
        'insights',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('source_mode', sa.String(16), nullable=False, server_default='BASELINE'),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('payload', sa.JSON(), nullable=True),
    )
    op.create_index('ix_insights_user_id', 'insights', ['user_id'])
    op.create_index('ix_insights_date', 'insights', ['date'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_processed_webhook_events_processed_at')
    op.drop_table('processed_webhook_events')
    op.drop_index('ix_insights_date')
    op.drop_index('ix_insights_user_id')
    op.drop_table('insights')
    op.drop_index('ix_chat_threads_updated_at')
    op.drop_index('ix_chat_threads_user_id')
    op.drop_table('chat_threads')
    op.drop_index('ix_core_memories_user_id')
    op.drop_table('core_memories')
    op.drop_index('ix_user_profiles_subscription_id')
    op.drop_index('ix_user_profiles_stripe_customer_id')
    op.drop_index('ix_user_profiles_email')
    op.drop_table('user_profiles')
