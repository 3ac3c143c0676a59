"""create call tables

Revision ID: 7c1e4b9a2f30
Revises:
Create Date: 2025-09-14 18:02:11.402913

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '7c1e4b9a2f30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Step 1: updated_at trigger function
    op.execute('''
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ language 'plpgsql'
    ''')

    # Step 2: Tables
    op.execute("""
        CREATE TABLE IF NOT EXISTS calls (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            initiator_id VARCHAR(32) NOT NULL,
            status VARCHAR(10) NOT NULL DEFAULT 'QUEUED' CHECK (status IN ('QUEUED', 'ACTIVE', 'ENDED')),
            start_time TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            end_time TIMESTAMP WITH TIME ZONE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS call_participants (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            call_id UUID NOT NULL REFERENCES calls(id) ON DELETE CASCADE,
            channel_id VARCHAR(32) NOT NULL,
            guild_id VARCHAR(32) NOT NULL,
            webhook_url TEXT NOT NULL,
            message_count INTEGER NOT NULL DEFAULT 0,
            joined_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            left_at TIMESTAMP WITH TIME ZONE,
            CONSTRAINT uq_call_participant_channel UNIQUE (call_id, channel_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS call_participant_users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            participant_id UUID NOT NULL REFERENCES call_participants(id) ON DELETE CASCADE,
            user_id VARCHAR(32) NOT NULL,
            joined_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            left_at TIMESTAMP WITH TIME ZONE,
            CONSTRAINT uq_call_participant_user UNIQUE (participant_id, user_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS call_messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            call_id UUID NOT NULL REFERENCES calls(id) ON DELETE CASCADE,
            author_id VARCHAR(32) NOT NULL,
            author_username VARCHAR(100) NOT NULL,
            content TEXT NOT NULL,
            timestamp TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            attachment_url TEXT
        )
    """)

    # Step 3: Indexes
    op.execute('CREATE INDEX IF NOT EXISTS idx_calls_status_end_time ON calls(status, end_time)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_call_participants_channel ON call_participants(channel_id)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_call_participants_call ON call_participants(call_id)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_call_messages_call ON call_messages(call_id, timestamp)')

    # Step 4: Triggers
    op.execute('''
        CREATE TRIGGER update_calls_updated_at
            BEFORE UPDATE ON calls
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()
    ''')


def downgrade() -> None:
    """Downgrade schema."""
    op.execute('DROP TABLE IF EXISTS call_messages')
    op.execute('DROP TABLE IF EXISTS call_participant_users')
    op.execute('DROP TABLE IF EXISTS call_participants')
    op.execute('DROP TABLE IF EXISTS calls')
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')
