"""Create dao_members, dao_proposals and dao_votes tables

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:02:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '20261018_0002'
down_revision: str | None = '20261018_0001'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create DAO membership, proposal and vote tables."""
    op.create_table(
        'dao_members',
        sa.Column('wallet_address', sa.String(128), primary_key=True),
        sa.Column('membership_tier', sa.String(20), nullable=False),
        sa.Column('tier_display_name', sa.String(20), nullable=True),
        sa.Column('votes_cast', sa.Integer, nullable=False, server_default='0'),
        sa.Column('proposals_created', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_funding_received', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('bio', sa.Text, nullable=True),
        sa.Column('avatar_url', sa.Text, nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('discord_handle', sa.String(100), nullable=True),
        sa.CheckConstraint(
            "membership_tier IN ('Bronze', 'Silver', 'Gold', 'Platinum')",
            name='dao_members_tier_check',
        ),
    )
    op.create_index('idx_dao_members_active', 'dao_members', ['is_active'])
    op.create_index('idx_dao_members_joined', 'dao_members', ['joined_at'])

    op.create_table(
        'dao_proposals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('proposal_type', sa.String(40), nullable=False),
        sa.Column('funding_goal', sa.Numeric(12, 2), nullable=True),
        sa.Column('current_funding', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('funding_currency', sa.String(10), nullable=False, server_default='USD'),
        sa.Column(
            'created_by',
            sa.String(128),
            sa.ForeignKey('dao_members.wallet_address', name='fk_dao_proposals_created_by_dao_members'),
            nullable=False,
        ),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('voting_starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voting_ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('quorum_required', sa.Integer, nullable=False, server_default='10'),
        sa.Column('approval_threshold', sa.Integer, nullable=False, server_default='51'),
        sa.Column('votes_for', sa.Integer, nullable=False, server_default='0'),
        sa.Column('votes_against', sa.Integer, nullable=False, server_default='0'),
        sa.Column('votes_abstain', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_vote_weight', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('unique_voters', sa.Integer, nullable=False, server_default='0'),
        sa.Column('voting_result', sa.String(20), nullable=True),
        sa.Column('voting_closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('linked_session_id', UUID(as_uuid=True), nullable=True),
        sa.Column('tags', sa.JSON, nullable=True),
        sa.Column('attachment_urls', sa.JSON, nullable=True),
        sa.Column('admin_notes', sa.Text, nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "proposal_type IN ('Studio Funding', 'Equipment Purchase', 'Artist Grant', 'Community Event', "
            "'Platform Feature', 'Treasury Allocation', 'Governance Change', 'Other')",
            name='dao_proposals_type_check',
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'submitted', 'active_voting', 'approved', 'rejected', 'funded', "
            "'completed', 'cancelled')",
            name='dao_proposals_status_check',
        ),
        sa.CheckConstraint("funding_currency IN ('USD', 'SOL', 'USDC')", name='dao_proposals_currency_check'),
        sa.CheckConstraint('funding_goal IS NULL OR funding_goal > 0', name='dao_proposals_funding_goal_check'),
        sa.CheckConstraint(
            'votes_for >= 0 AND votes_against >= 0 AND votes_abstain >= 0',
            name='dao_proposals_vote_counts_check',
        ),
    )
    op.create_index('idx_dao_proposals_status', 'dao_proposals', ['status'])
    op.create_index('idx_dao_proposals_creator', 'dao_proposals', ['created_by'])
    op.create_index('idx_dao_proposals_voting_ends', 'dao_proposals', ['voting_ends_at'])
    op.create_index('idx_dao_proposals_created', 'dao_proposals', ['created_at'])

    op.create_table(
        'dao_votes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'proposal_id',
            UUID(as_uuid=True),
            sa.ForeignKey('dao_proposals.id', ondelete='CASCADE', name='fk_dao_votes_proposal_id_dao_proposals'),
            nullable=False,
        ),
        sa.Column(
            'voter_wallet',
            sa.String(128),
            sa.ForeignKey('dao_members.wallet_address', name='fk_dao_votes_voter_wallet_dao_members'),
            nullable=False,
        ),
        sa.Column('vote_type', sa.String(10), nullable=False),
        sa.Column('vote_weight', sa.Numeric(10, 2), nullable=False),
        sa.Column('membership_tier_at_vote', sa.String(20), nullable=False),
        sa.Column('signature', sa.Text, nullable=True),
        sa.Column('signature_verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('comment', sa.Text, nullable=True),
        sa.Column('voted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('proposal_id', 'voter_wallet', name='unique_vote_per_proposal'),
        sa.CheckConstraint("vote_type IN ('for', 'against', 'abstain')", name='dao_votes_type_check'),
        sa.CheckConstraint('vote_weight > 0', name='dao_votes_weight_check'),
    )
    op.create_index('idx_dao_votes_proposal', 'dao_votes', ['proposal_id'])
    op.create_index('idx_dao_votes_voter', 'dao_votes', ['voter_wallet'])
    op.create_index('idx_dao_votes_voted_at', 'dao_votes', ['voted_at'])


def downgrade() -> None:
    """Drop DAO tables."""
    op.drop_index('idx_dao_votes_voted_at', table_name='dao_votes')
    op.drop_index('idx_dao_votes_voter', table_name='dao_votes')
    op.drop_index('idx_dao_votes_proposal', table_name='dao_votes')
    op.drop_table('dao_votes')

    op.drop_index('idx_dao_proposals_created', table_name='dao_proposals')
    op.drop_index('idx_dao_proposals_voting_ends', table_name='dao_proposals')
    op.drop_index('idx_dao_proposals_creator', table_name='dao_proposals')
    op.drop_index('idx_dao_proposals_status', table_name='dao_proposals')
    op.drop_table('dao_proposals')

    op.drop_index('idx_dao_members_joined', table_name='dao_members')
    op.drop_index('idx_dao_members_active', table_name='dao_members')
    op.drop_table('dao_members')
