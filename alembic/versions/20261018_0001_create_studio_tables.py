"""Create studio_sessions and room_pricing tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:01:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '20261018_0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

DEFAULT_PRICING = [
    {
        'room_type': 'recording',
        'hourly_rate': 75.00,
        'description': 'Professional recording studio with isolation booth',
        'features': ['Isolation booth', 'Neumann U87 microphone', 'Pro Tools HD', 'Engineer available'],
    },
    {
        'room_type': 'mixing',
        'hourly_rate': 60.00,
        'description': 'Mixing suite with calibrated monitoring',
        'features': ['Calibrated monitors', 'Analog summing', 'Outboard compression'],
    },
    {
        'room_type': 'mastering',
        'hourly_rate': 90.00,
        'description': 'Mastering room for release-ready masters',
        'features': ['Mastering-grade converters', 'Reference monitoring', 'Loudness metering'],
    },
    {
        'room_type': 'podcast',
        'hourly_rate': 45.00,
        'description': 'Podcast studio for up to four hosts',
        'features': ['Four microphones', 'Video recording', 'Live streaming'],
    },
    {
        'room_type': 'rehearsal',
        'hourly_rate': 30.00,
        'description': 'Rehearsal space with backline',
        'features': ['Drum kit', 'Guitar and bass amps', 'PA system'],
    },
]


def upgrade() -> None:
    """Create studio booking tables and seed default room pricing."""
    op.create_table(
        'studio_sessions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('user_name', sa.String(255), nullable=False),
        sa.Column('user_phone', sa.String(50), nullable=False),
        sa.Column('user_wallet', sa.String(128), nullable=True),
        sa.Column('room_type', sa.String(20), nullable=False),
        sa.Column('session_date', sa.Date, nullable=False),
        sa.Column('session_time', sa.Time, nullable=False),
        sa.Column('duration_hours', sa.Integer, nullable=False),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('dao_funded', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('proposal_id', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "room_type IN ('recording', 'mixing', 'mastering', 'podcast', 'rehearsal')",
            name='studio_sessions_room_type_check',
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name='studio_sessions_status_check',
        ),
        sa.CheckConstraint(
            'duration_hours >= 1 AND duration_hours <= 12',
            name='studio_sessions_duration_check',
        ),
    )

    op.create_index('ix_studio_sessions_user_email', 'studio_sessions', ['user_email'])
    op.create_index('idx_studio_sessions_room_date', 'studio_sessions', ['room_type', 'session_date'])
    op.create_index('idx_studio_sessions_status', 'studio_sessions', ['status'])

    room_pricing = op.create_table(
        'room_pricing',
        sa.Column('room_type', sa.String(20), primary_key=True),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('features', sa.JSON, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.bulk_insert(room_pricing, DEFAULT_PRICING)


def downgrade() -> None:
    """Drop studio booking tables."""
    op.drop_table('room_pricing')
    op.drop_index('idx_studio_sessions_status', table_name='studio_sessions')
    op.drop_index('idx_studio_sessions_room_date', table_name='studio_sessions')
    op.drop_index('ix_studio_sessions_user_email', table_name='studio_sessions')
    op.drop_table('studio_sessions')
