"""initial schema: users, assets, shares

Revision ID: a1c3e5f7b9d0
Revises:
Create Date: 2026-03-01 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_models', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('dashboard_content', sa.Text(), nullable=False, server_default=''),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'assets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(length=512), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False),
        sa.Column('content_type', sa.String(length=128), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_admin_upload', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('uploaded_by_admin', sa.Uuid(), nullable=True),
        sa.Column('companion_key', sa.String(length=512), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['uploaded_by_admin'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_assets_owner_id', 'assets', ['owner_id'])
    op.create_index('ix_assets_owner_category', 'assets', ['owner_id', 'category'])

    op.create_table(
        'shares',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('content_snapshot', sa.Text(), nullable=False, server_default=''),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_shares_owner_id', 'shares', ['owner_id'])


def downgrade() -> None:
    op.drop_index('ix_shares_owner_id', table_name='shares')
    op.drop_table('shares')
    op.drop_index('ix_assets_owner_category', table_name='assets')
    op.drop_index('ix_assets_owner_id', table_name='assets')
    op.drop_table('assets')
    op.drop_table('users')
