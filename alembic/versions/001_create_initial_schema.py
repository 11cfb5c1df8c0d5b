"""Create initial database schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profile, budget, goal, transaction and advice tables."""

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('monthly_income', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Create assumptions table
    op.create_table(
        'assumptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('age', sa.Integer(), nullable=False),
        sa.Column('annual_income_growth', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('investment_return', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('inflation_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('monthly_investment', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('category', sa.String(length=30), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('transacted_at', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("type IN ('income', 'expense')", name='check_transaction_type'),
        sa.CheckConstraint('amount >= 0', name='check_amount_positive'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_transactions_user_transacted_at', 'transactions', ['user_id', 'transacted_at'], unique=False)

    # Create budgets table
    op.create_table(
        'budgets',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('year_month', sa.String(length=7), nullable=False),
        sa.Column('category', sa.String(length=30), nullable=False),
        sa.Column('limit_amount', sa.Integer(), nullable=False),
        sa.Column('is_fixed', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'year_month', 'category', name='uq_budgets_user_month_category')
    )
    op.create_index('idx_budgets_user_year_month', 'budgets', ['user_id', 'year_month'], unique=False)

    # Create life_goals table
    op.create_table(
        'life_goals',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=50), nullable=False),
        sa.Column('target_amount', sa.Integer(), nullable=True),
        sa.Column('saved_amount', sa.Integer(), nullable=False),
        sa.Column('monthly_saving', sa.Integer(), nullable=False),
        sa.Column('target_year', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(length=10), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_life_goals_user_id'), 'life_goals', ['user_id'], unique=False)

    # Create advice_logs table
    op.create_table(
        'advice_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('content', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'month', name='uq_advice_logs_user_month')
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('advice_logs')
    op.drop_index(op.f('ix_life_goals_user_id'), table_name='life_goals')
    op.drop_table('life_goals')
    op.drop_index('idx_budgets_user_year_month', table_name='budgets')
    op.drop_table('budgets')
    op.drop_index('idx_transactions_user_transacted_at', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('assumptions')
    op.drop_table('users')
