"""Create ai_digests and digest_distributions tables

Revision ID: 20261018_0004
Revises: 20261018_0003
Create Date: 2026-10-18 00:04:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '20261018_0004'
down_revision: str | None = '20261018_0003'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create weekly digest and distribution tracking tables."""
    op.create_table(
        'ai_digests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('week_start', sa.Date, nullable=False),
        sa.Column('week_end', sa.Date, nullable=False),
        sa.Column('summary_en', sa.Text, nullable=False),
        sa.Column('summary_fr', sa.Text, nullable=True),
        sa.Column('summary_pt', sa.Text, nullable=True),
        sa.Column('sentiment', sa.String(20), nullable=True),
        sa.Column('key_metrics', sa.JSON, nullable=False),
        sa.Column('highlights', sa.JSON, nullable=False),
        sa.Column('audio_url_en', sa.Text, nullable=True),
        sa.Column('audio_url_fr', sa.Text, nullable=True),
        sa.Column('audio_url_pt', sa.Text, nullable=True),
        sa.Column('audio_duration_seconds', sa.Integer, nullable=True),
        sa.Column('published', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('discord_sent', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('email_sent', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('generated_by', sa.String(50), nullable=False, server_default='gpt-4'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('week_start', name='unique_week_start'),
        sa.CheckConstraint('week_end > week_start', name='ai_digests_week_range_check'),
        sa.CheckConstraint(
            "sentiment IS NULL OR sentiment IN ('optimistic', 'stable', 'critical', 'mixed')",
            name='ai_digests_sentiment_check',
        ),
    )
    op.create_index('idx_ai_digests_published', 'ai_digests', ['published', 'published_at'])

    op.create_table(
        'digest_distributions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'digest_id',
            UUID(as_uuid=True),
            sa.ForeignKey('ai_digests.id', ondelete='CASCADE', name='fk_digest_distributions_digest_id_ai_digests'),
            nullable=False,
        ),
        sa.Column('channel', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('recipient_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('retry_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('digest_id', 'channel', name='unique_digest_channel'),
        sa.CheckConstraint(
            "channel IN ('discord', 'email', 'rss', 'twitter')", name='digest_distributions_channel_check'
        ),
        sa.CheckConstraint("status IN ('pending', 'sent', 'failed')", name='digest_distributions_status_check'),
    )
    op.create_index('idx_digest_distributions_digest', 'digest_distributions', ['digest_id'])


def downgrade() -> None:
    """Drop digest tables."""
    op.drop_index('idx_digest_distributions_digest', table_name='digest_distributions')
    op.drop_table('digest_distributions')
    op.drop_index('idx_ai_digests_published', table_name='ai_digests')
    op.drop_table('ai_digests')
