"""Initial taskpool schema - identities, contracts, tasks, invoices

Revision ID: 5b2e7c1d9a40
Revises:
Create Date: 2026-10-19 09:12:44.301122

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5b2e7c1d9a40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -----------------------------------------------------------
    # 1. IDENTITIES
    # -----------------------------------------------------------
    op.create_table(
        'users',
        sa.Column('username', sa.String(100), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('email', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'contributors',
        sa.Column('username', sa.String(100), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('billing_info', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'api_tokens',
        sa.Column('name', sa.String(100), primary_key=True),
        sa.Column('username', sa.String(100), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('secret_hash', sa.String(255), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['username', 'provider'], ['users.username', 'users.provider']),
    )

    # -----------------------------------------------------------
    # 2. PROJECTS & WALLETS
    # -----------------------------------------------------------
    op.create_table(
        'projects',
        sa.Column('repo_fullname', sa.String(255), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('owner_username', sa.String(100), nullable=False),
        sa.Column('webhook_token', sa.String(255), nullable=False),
        sa.Column('billing_info', sa.Text(), nullable=True),
        sa.Column('min_estimation', sa.Integer(), nullable=False),
        sa.Column('max_estimation', sa.Integer(), nullable=False),
        sa.Column('deadline_days', sa.Integer(), nullable=False),
        sa.Column('max_open_tasks', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['owner_username', 'provider'], ['users.username', 'users.provider']),
    )
    op.create_index('ix_projects_owner_username', 'projects', ['owner_username'])

    op.create_table(
        'wallets',
        sa.Column('repo_fullname', sa.String(255), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('type', sa.String(20), primary_key=True),
        sa.Column('cash', sa.BigInteger(), nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('commission_bp', sa.Integer(), nullable=False),
        sa.Column('identifier', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['repo_fullname', 'provider'], ['projects.repo_fullname', 'projects.provider']),
    )
    op.create_index(
        'uq_wallets_active', 'wallets', ['repo_fullname', 'provider'], unique=True,
        sqlite_where=sa.text('active = 1'), postgresql_where=sa.text('active'),
    )

    # -----------------------------------------------------------
    # 3. CONTRACTS & TASKS
    # -----------------------------------------------------------
    op.create_table(
        'contracts',
        sa.Column('repo_fullname', sa.String(255), primary_key=True),
        sa.Column('username', sa.String(100), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('role', sa.String(10), primary_key=True),
        sa.Column('hourly_rate', sa.BigInteger(), nullable=False),
        sa.Column('marked_for_removal', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['repo_fullname', 'provider'], ['projects.repo_fullname', 'projects.provider']),
        sa.ForeignKeyConstraint(['username', 'provider'], ['contributors.username', 'contributors.provider']),
    )

    op.create_table(
        'tasks',
        sa.Column('issue_id', sa.String(50), primary_key=True),
        sa.Column('repo_fullname', sa.String(255), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('role', sa.String(10), nullable=False),
        sa.Column('estimation_minutes', sa.Integer(), nullable=False),
        sa.Column('assignee', sa.String(100), nullable=True),
        sa.Column('assignment_date', sa.DateTime(), nullable=True),
        sa.Column('deadline', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['repo_fullname', 'provider'], ['projects.repo_fullname', 'projects.provider']),
    )
    op.create_index('ix_tasks_assignee', 'tasks', ['repo_fullname', 'provider', 'assignee'])

    op.create_table(
        'resignations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.String(50), nullable=False),
        sa.Column('repo_fullname', sa.String(255), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('reason', sa.String(20), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['issue_id', 'repo_fullname', 'provider'],
            ['tasks.issue_id', 'tasks.repo_fullname', 'tasks.provider'],
        ),
    )

    # -----------------------------------------------------------
    # 4. INVOICES
    # -----------------------------------------------------------
    # No FK to contracts: paid invoices outlive a removed contract
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('repo_fullname', sa.String(255), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('role', sa.String(10), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('payment_time', sa.DateTime(), nullable=True),
        sa.Column('transaction_id', sa.String(255), nullable=True, unique=True),
        sa.Column('billed_by', sa.Text(), nullable=True),
        sa.Column('billed_to', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False),
    )
    op.create_index(
        'uq_invoices_active', 'invoices', ['repo_fullname', 'username', 'provider', 'role'], unique=True,
        sqlite_where=sa.text('payment_time IS NULL'), postgresql_where=sa.text('payment_time IS NULL'),
    )

    op.create_table(
        'invoiced_tasks',
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), primary_key=True),
        sa.Column('issue_id', sa.String(50), primary_key=True),
        sa.Column('repo_fullname', sa.String(255), primary_key=True),
        sa.Column('provider', sa.String(20), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('role', sa.String(10), nullable=False),
        sa.Column('estimation_minutes', sa.Integer(), nullable=False),
        sa.Column('value', sa.BigInteger(), nullable=False),
        sa.Column('commission', sa.BigInteger(), nullable=False),
        sa.Column('invoiced_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'platform_invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('transaction_id', sa.String(255), nullable=False, unique=True),
        sa.Column('payment_time', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('billed_to', sa.Text(), nullable=False),
        sa.Column('commission', sa.BigInteger(), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('platform_invoices')
    op.drop_table('invoiced_tasks')
    op.drop_index('uq_invoices_active', table_name='invoices')
    op.drop_table('invoices')
    op.drop_table('resignations')
    op.drop_index('ix_tasks_assignee', table_name='tasks')
    op.drop_table('tasks')
    op.drop_table('contracts')
    op.drop_index('uq_wallets_active', table_name='wallets')
    op.drop_table('wallets')
    op.drop_index('ix_projects_owner_username', table_name='projects')
    op.drop_table('projects')
    op.drop_table('api_tokens')
    op.drop_table('contributors')
    op.drop_table('users')
