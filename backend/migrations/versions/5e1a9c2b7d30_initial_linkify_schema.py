"""initial_linkify_schema

Revision ID: 5e1a9c2b7d30
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e1a9c2b7d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('google_id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('avatar_url', sa.String(), nullable=True),
        sa.Column('company_domain', sa.String(), nullable=True),
        sa.Column('user_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_google_id', 'users', ['google_id'], unique=True)
    op.create_index('ix_users_company_domain', 'users', ['company_domain'], unique=False)

    op.create_table(
        'account_companies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('domain', sa.String(), nullable=False),
        sa.Column('analysis_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_account_companies_domain', 'account_companies', ['domain'], unique=True)

    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('account_company_id', sa.Integer(), nullable=True),
        sa.Column('linkedin_url', sa.String(), nullable=False),
        sa.Column('domain', sa.String(), nullable=True),
        sa.Column('page_data', sa.JSON(), nullable=True),
        sa.Column('analysis_data', sa.JSON(), nullable=False),
        sa.Column('persona', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['account_company_id'], ['account_companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'linkedin_url', name='uq_companies_user_linkedin_url'),
    )
    op.create_index('ix_companies_user_id', 'companies', ['user_id'], unique=False)

    op.create_table(
        'prospects',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('account_company_id', sa.Integer(), nullable=True),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('linkedin_url', sa.String(), nullable=False),
        sa.Column('profile_data', sa.JSON(), nullable=True),
        sa.Column('analysis_data', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('persona_match', sa.String(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('is_ideal_contact', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['account_company_id'], ['account_companies.id']),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'linkedin_url', name='uq_prospects_user_linkedin_url'),
    )
    op.create_index('ix_prospects_user_id', 'prospects', ['user_id'], unique=False)
    op.create_index('ix_prospects_company_id', 'prospects', ['company_id'], unique=False)

    op.create_table(
        'analysis_sessions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('session_type', sa.String(), nullable=False),
        sa.Column('input_data', sa.JSON(), nullable=True),
        sa.Column('api_usage', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_analysis_sessions_user_id', 'analysis_sessions', ['user_id'], unique=False)
    op.create_index('ix_analysis_sessions_created_at', 'analysis_sessions', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_analysis_sessions_created_at', table_name='analysis_sessions')
    op.drop_index('ix_analysis_sessions_user_id', table_name='analysis_sessions')
    op.drop_table('analysis_sessions')
    op.drop_index('ix_prospects_company_id', table_name='prospects')
    op.drop_index('ix_prospects_user_id', table_name='prospects')
    op.drop_table('prospects')
    op.drop_index('ix_companies_user_id', table_name='companies')
    op.drop_table('companies')
    op.drop_index('ix_account_companies_domain', table_name='account_companies')
    op.drop_table('account_companies')
    op.drop_index('ix_users_company_domain', table_name='users')
    op.drop_index('ix_users_google_id', table_name='users')
    op.drop_table('users')
