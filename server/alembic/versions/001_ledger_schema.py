"""Ledger schema: claims, trades, P/L ledger, expenses and categories

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

# Decimals are stored as canonical strings so 18-digit token amounts survive a round trip
MONEY = sa.String(length=80)


def upgrade() -> None:
    # One row per UTC calendar day, pinned to noon
    op.create_table('claim_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('claim_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('total_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('held_for_taxes', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tax_amount', MONEY, nullable=True),
        sa.Column('tax_percentage', MONEY, nullable=True),
        sa.Column('txn', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_claim_records'),
        sa.UniqueConstraint('claim_date', name='uq_claim_records_claim_date')
    )
    op.create_index('ix_claim_records_id', 'claim_records', ['id'], unique=False)

    op.create_table('trade_positions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_id', sa.String(length=100), nullable=False),
        sa.Column('token_symbol', sa.String(length=20), nullable=False),
        sa.Column('token_name', sa.String(length=255), nullable=False),
        sa.Column('token_image', sa.String(length=500), nullable=True),
        sa.Column('market_cap_rank', sa.Integer(), nullable=True),
        sa.Column('is_custom_token', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('purchase_price', MONEY, nullable=False),
        sa.Column('quantity', MONEY, nullable=False, comment='Remaining quantity, decremented by partial closes'),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='open', comment='open, closed'),
        sa.Column('current_price', MONEY, nullable=True),
        sa.Column('unrealized_pnl', MONEY, nullable=False, server_default='0'),
        sa.Column('realized_pnl', MONEY, nullable=False, server_default='0'),
        sa.Column('close_price', MONEY, nullable=True),
        sa.Column('close_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_trade_positions')
    )
    op.create_index('ix_trade_positions_id', 'trade_positions', ['id'], unique=False)
    op.create_index('ix_trade_positions_token_id', 'trade_positions', ['token_id'], unique=False)
    op.create_index('ix_trade_positions_token_symbol', 'trade_positions', ['token_symbol'], unique=False)
    op.create_index('ix_trade_positions_status', 'trade_positions', ['status'], unique=False)

    op.create_table('trade_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('trade_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount', MONEY, nullable=False, comment='Quantity closed'),
        sa.Column('price', MONEY, nullable=False, comment='Close price'),
        sa.Column('type', sa.String(length=20), nullable=False, comment='close, partial_close'),
        sa.Column('pnl', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ['trade_id'], ['trade_positions.id'],
            name='fk_trade_history_trade_id_trade_positions',
            ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_trade_history')
    )
    op.create_index('ix_trade_history_id', 'trade_history', ['id'], unique=False)
    op.create_index('ix_trade_history_trade_id', 'trade_history', ['trade_id'], unique=False)

    op.create_table('pnl_ledger',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('trade_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('token_symbol', sa.String(length=20), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('tax_estimate', MONEY, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ['trade_id'], ['trade_positions.id'],
            name='fk_pnl_ledger_trade_id_trade_positions',
            ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_pnl_ledger')
    )
    op.create_index('ix_pnl_ledger_id', 'pnl_ledger', ['id'], unique=False)
    op.create_index('ix_pnl_ledger_trade_id', 'pnl_ledger', ['trade_id'], unique=False)
    op.create_index('idx_pnl_ledger_trade_date', 'pnl_ledger', ['trade_id', 'date'], unique=False)

    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=20), nullable=False, comment='Expense, Income'),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('entry_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('txn', sa.String(length=255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_ledger_entries')
    )
    op.create_index('ix_ledger_entries_id', 'ledger_entries', ['id'], unique=False)
    op.create_index('ix_ledger_entries_entry_type', 'ledger_entries', ['entry_type'], unique=False)
    op.create_index('idx_ledger_entries_type_date', 'ledger_entries', ['entry_type', 'entry_date'], unique=False)

    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('color', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
        sa.UniqueConstraint('name', name='uq_categories_name')
    )
    op.create_index('ix_categories_id', 'categories', ['id'], unique=False)


def downgrade() -> None:
    op.drop_table('categories')
    op.drop_table('ledger_entries')
    op.drop_table('pnl_ledger')
    op.drop_table('trade_history')
    op.drop_table('trade_positions')
    op.drop_table('claim_records')
