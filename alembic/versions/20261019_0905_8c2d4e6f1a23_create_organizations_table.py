"""create_organizations_table

Revision ID: 8c2d4e6f1a23
Revises: 3f1a9c2e7b10
Create Date: 2026-10-19 09:05:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = '8c2d4e6f1a23'
down_revision: Union[str, None] = '3f1a9c2e7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create organizations table and link users.default_organization_id."""
    op.create_table(
        'organizations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column(
            'status',
            sa.Enum('ACTIVE', 'SUSPENDED', 'INACTIVE', 'DELETED', name='organization_status'),
            nullable=False,
            server_default='ACTIVE',
        ),
        sa.Column('industry', sa.String(length=50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=True),
        sa.Column('size', sa.String(length=50), nullable=True),
        sa.Column('is_subscribed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('subscription_tier', sa.String(length=50), nullable=True),
        sa.Column('cancel_scheduled', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('subscription_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('settings', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_by', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    )

    op.create_index('ix_organizations_status', 'organizations', ['status'])
    op.create_index('ix_organizations_created_by', 'organizations', ['created_by'])
    op.create_index('ix_organizations_created_at', 'organizations', ['created_at'])

    op.create_foreign_key(
        'users_default_organization_id_fkey',
        'users', 'organizations',
        ['default_organization_id'], ['id'],
        ondelete='SET NULL'
    )


def downgrade() -> None:
    """Drop organizations table."""
    op.drop_constraint('users_default_organization_id_fkey', 'users', type_='foreignkey')
    op.drop_index('ix_organizations_created_at', table_name='organizations')
    op.drop_index('ix_organizations_created_by', table_name='organizations')
    op.drop_index('ix_organizations_status', table_name='organizations')
    op.drop_table('organizations')
    sa.Enum(name='organization_status').drop(op.get_bind(), checkfirst=True)
