"""Create dao_treasury ledger table

Revision ID: 20261018_0003
Revises: 20261018_0002
Create Date: 2026-10-18 00:03:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '20261018_0003'
down_revision: str | None = '20261018_0002'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create dao_treasury table (append-only ledger)."""
    op.create_table(
        'dao_treasury',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(20, 8), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='ETH'),
        sa.Column(
            'proposal_id',
            UUID(as_uuid=True),
            sa.ForeignKey('dao_proposals.id', ondelete='SET NULL', name='fk_dao_treasury_proposal_id_dao_proposals'),
            nullable=True,
        ),
        sa.Column('contributor_wallet', sa.String(128), nullable=True),
        sa.Column('recipient_wallet', sa.String(128), nullable=True),
        sa.Column('tx_hash', sa.String(128), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('created_by', sa.String(128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "transaction_type IN ('deposit', 'withdrawal', 'proposal_funding', 'grant', 'revenue', 'expense')",
            name='dao_treasury_type_check',
        ),
        sa.CheckConstraint('amount > 0', name='dao_treasury_amount_check'),
    )

    op.create_index('idx_treasury_transaction_type', 'dao_treasury', ['transaction_type'])
    op.create_index('idx_treasury_created_at', 'dao_treasury', ['created_at'])
    op.create_index('idx_treasury_proposal_id', 'dao_treasury', ['proposal_id'])
    op.create_index('idx_treasury_contributor', 'dao_treasury', ['contributor_wallet'])


def downgrade() -> None:
    """Drop dao_treasury table."""
    op.drop_index('idx_treasury_contributor', table_name='dao_treasury')
    op.drop_index('idx_treasury_proposal_id', table_name='dao_treasury')
    op.drop_index('idx_treasury_created_at', table_name='dao_treasury')
    op.drop_index('idx_treasury_transaction_type', table_name='dao_treasury')
    op.drop_table('dao_treasury')
