"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


MATCH_STATUS = ('AWAITING_OPPONENT', 'IN_PROGRESS', 'PENDING_RESULT', 'COMPLETED', 'CANCELLED', 'DISPUTED')
TRANSACTION_TYPE = ('DEPOSIT', 'WITHDRAWAL', 'MATCH_WIN', 'MATCH_LOSS', 'TOURNAMENT_ENTRY', 'TOURNAMENT_PRIZE', 'REFUND')
TRANSACTION_STATUS = ('PENDING', 'COMPLETED', 'FAILED', 'CANCELLED')


def upgrade() -> None:
    # Create wallets table
    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('balance', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('total_deposited', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('total_withdrawn', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('balance >= 0', name='ck_wallet_balance_non_negative')
    )
    op.create_index(op.f('ix_wallets_id'), 'wallets', ['id'], unique=False)
    op.create_index(op.f('ix_wallets_user_id'), 'wallets', ['user_id'], unique=True)

    # Create matches table
    op.create_table(
        'matches',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('creator_id', sa.String(length=100), nullable=False),
        sa.Column('opponent_id', sa.String(length=100), nullable=True),
        sa.Column('format', sa.String(length=10), nullable=False, server_default='1v1'),
        sa.Column('stake_amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('status', sa.Enum(*MATCH_STATUS, name='matchstatus'), nullable=False, server_default='AWAITING_OPPONENT'),
        sa.Column('winner_id', sa.String(length=100), nullable=True),
        sa.Column('admin_decision', sa.Text(), nullable=True),
        sa.Column('is_draw', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('was_disputed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('creator_done', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('opponent_done', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('creator_proof_url', sa.String(length=500), nullable=True),
        sa.Column('opponent_proof_url', sa.String(length=500), nullable=True),
        sa.Column('game_id', sa.String(length=100), nullable=True),
        sa.Column('game_mode_id', sa.String(length=100), nullable=True),
        sa.Column('map_name', sa.String(length=100), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('custom_rules', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('stake_amount > 0', name='ck_match_stake_positive')
    )
    op.create_index(op.f('ix_matches_creator_id'), 'matches', ['creator_id'], unique=False)
    op.create_index(op.f('ix_matches_opponent_id'), 'matches', ['opponent_id'], unique=False)
    op.create_index('idx_match_status_created', 'matches', ['status', 'created_at'], unique=False)

    # Create match_participants table
    op.create_table(
        'match_participants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('team', sa.Enum('A', 'B', name='team'), nullable=False),
        sa.Column('role', sa.Enum('CAPTAIN', 'MEMBER', name='participantrole'), nullable=False, server_default='MEMBER'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['matches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', 'user_id', name='uq_participant_match_user')
    )
    op.create_index(op.f('ix_match_participants_id'), 'match_participants', ['id'], unique=False)
    op.create_index(op.f('ix_match_participants_match_id'), 'match_participants', ['match_id'], unique=False)
    op.create_index(op.f('ix_match_participants_user_id'), 'match_participants', ['user_id'], unique=False)

    # Create wallet_holds table
    op.create_table(
        'wallet_holds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('status', sa.Enum('HELD', 'RELEASED', 'FORFEITED', name='holdstatus'), nullable=False, server_default='HELD'),
        sa.Column('settled_to', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['match_id'], ['matches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', 'user_id', name='uq_hold_match_user'),
        sa.CheckConstraint('amount > 0', name='ck_hold_amount_positive')
    )
    op.create_index(op.f('ix_wallet_holds_id'), 'wallet_holds', ['id'], unique=False)
    op.create_index(op.f('ix_wallet_holds_match_id'), 'wallet_holds', ['match_id'], unique=False)
    op.create_index(op.f('ix_wallet_holds_user_id'), 'wallet_holds', ['user_id'], unique=False)
    op.create_index('idx_hold_user_status', 'wallet_holds', ['user_id', 'status'], unique=False)

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('transaction_type', sa.Enum(*TRANSACTION_TYPE, name='transactiontype'), nullable=False),
        sa.Column('status', sa.Enum(*TRANSACTION_STATUS, name='transactionstatus'), nullable=False, server_default='PENDING'),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('reference_code', sa.String(length=100), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('meta_data', sa.JSON(), nullable=True),
        sa.Column('match_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_transaction_id'), 'transactions', ['transaction_id'], unique=True)
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_reference_code'), 'transactions', ['reference_code'], unique=False)
    op.create_index(op.f('ix_transactions_match_id'), 'transactions', ['match_id'], unique=False)
    op.create_index('idx_transaction_type_status', 'transactions', ['transaction_type', 'status'], unique=False)
    op.create_index('idx_transaction_user_created', 'transactions', ['user_id', 'created_at'], unique=False)
    # At most one payout per (match, user) for rows written by settlement
    op.create_index(
        'uq_transaction_match_win',
        'transactions',
        ['match_id', 'user_id'],
        unique=True,
        postgresql_where=sa.text("transaction_type = 'MATCH_WIN'")
    )

    # Create platform_fees table
    op.create_table(
        'platform_fees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.String(length=36), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('fee_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('pot_amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['matches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id')
    )
    op.create_index(op.f('ix_platform_fees_id'), 'platform_fees', ['id'], unique=False)

    # Create ledger_entries table
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.Enum('DEBIT', 'CREDIT', name='entrytype'), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('balance_after', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_ledger_entries_id'), 'ledger_entries', ['id'], unique=False)
    op.create_index('idx_ledger_wallet_created', 'ledger_entries', ['wallet_id', 'created_at'], unique=False)
    op.create_index('idx_ledger_reference', 'ledger_entries', ['reference'], unique=False)

    # Create user store tables
    op.create_table(
        'user_flags',
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('is_suspended', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user'),
        sa.PrimaryKeyConstraint('user_id')
    )

    # Create idempotency_logs table
    op.create_table(
        'idempotency_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('actor_id', sa.String(length=100), nullable=False),
        sa.Column('request_path', sa.String(length=255), nullable=False),
        sa.Column('request_method', sa.String(length=10), nullable=False),
        sa.Column('response_status', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.String(length=5000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'actor_id', 'request_path', name='uq_idempotency_key_actor_path')
    )
    op.create_index(op.f('ix_idempotency_logs_id'), 'idempotency_logs', ['id'], unique=False)
    op.create_index(op.f('ix_idempotency_logs_idempotency_key'), 'idempotency_logs', ['idempotency_key'], unique=False)
    op.create_index('idx_idempotency_expires', 'idempotency_logs', ['expires_at'], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('idempotency_logs')
    op.drop_table('user_roles')
    op.drop_table('user_flags')
    op.drop_table('ledger_entries')
    op.drop_table('platform_fees')

    op.drop_index('uq_transaction_match_win', table_name='transactions')
    op.drop_table('transactions')

    op.drop_table('wallet_holds')
    op.drop_table('match_participants')
    op.drop_table('matches')
    op.drop_table('wallets')

    for enum_name in ('transactionstatus', 'transactiontype', 'holdstatus', 'participantrole', 'team', 'matchstatus', 'entrytype'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
