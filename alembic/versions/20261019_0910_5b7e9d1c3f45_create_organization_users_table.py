"""create_organization_users_table

Revision ID: 5b7e9d1c3f45
Revises: 8c2d4e6f1a23
Create Date: 2026-10-19 09:10:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = '5b7e9d1c3f45'
down_revision: Union[str, None] = '8c2d4e6f1a23'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    """Create organization_users: memberships and pending invitations in one table."""
    op.create_table(
        'organization_users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum('OWNER', 'ADMIN', 'MANAGER', 'MEMBER', 'VIEWER', name='org_role'), nullable=False, server_default='MEMBER'),
        sa.Column('department', sa.String(length=50), nullable=True),
        sa.Column('position', sa.String(length=50), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'ACTIVE', 'INACTIVE', name='member_status'), nullable=False, server_default='PENDING'),
        sa.Column('invitation_token', sa.String(length=64), nullable=True),
        sa.Column('invitation_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invited_by', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    )

    op.create_foreign_key(
        'organization_users_organization_id_fkey',
        'organization_users', 'organizations',
        ['organization_id'], ['id'],
        ondelete='CASCADE'
    )
    op.create_foreign_key(
        'organization_users_user_id_fkey',
        'organization_users', 'users',
        ['user_id'], ['id'],
        ondelete='CASCADE'
    )
    op.create_foreign_key(
        'organization_users_invited_by_fkey',
        'organization_users', 'users',
        ['invited_by'], ['id'],
        ondelete='SET NULL'
    )

    op.create_unique_constraint('uq_organization_users_org_user', 'organization_users', ['organization_id', 'user_id'])
    op.create_index('ix_organization_users_invitation_token', 'organization_users', ['invitation_token'], unique=True)
    op.create_index('ix_organization_users_organization_id', 'organization_users', ['organization_id'])
    op.create_index('ix_organization_users_user_id', 'organization_users', ['user_id'])
    op.create_index('ix_organization_users_email', 'organization_users', ['email'])
    op.create_index('ix_organization_users_invitation_expiry', 'organization_users', ['invitation_expiry'])
    op.create_index('ix_organization_users_created_at', 'organization_users', ['created_at'])

def downgrade() -> None:
    """Drop organization_users table and its enums."""
    op.drop_index('ix_organization_users_created_at', table_name='organization_users')
    op.drop_index('ix_organization_users_invitation_expiry', table_name='organization_users')
    op.drop_index('ix_organization_users_email', table_name='organization_users')
    op.drop_index('ix_organization_users_user_id', table_name='organization_users')
    op.drop_index('ix_organization_users_organization_id', table_name='organization_users')
    op.drop_index('ix_organization_users_invitation_token', table_name='organization_users')
    op.drop_table('organization_users')
    sa.Enum(name='member_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='org_role').drop(op.get_bind(), checkfirst=True)
