"""create_billing_tables

Revision ID: 7a9c1e3b5d68
Revises: e1f3a5b7c9d2
Create Date: 2026-10-19 09:20:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = '7a9c1e3b5d68'
down_revision: Union[str, None] = 'e1f3a5b7c9d2'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _org() -> sa.Column:
    return sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)


def _user() -> sa.Column:
    return sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create the billing tables read by analytics."""
    op.create_table(
        'clients',
        _id(), _org(), _user(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='client_status'), nullable=False, server_default='ACTIVE'),
        *_timestamps(),
    )

    op.create_table(
        'invoices',
        _id(), _org(), _user(),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='SET NULL'), nullable=True),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column(
            'status',
            sa.Enum('DRAFT', 'SENT', 'PAID', 'OVERDUE', 'CANCELLED', name='invoice_status'),
            nullable=False,
            server_default='DRAFT',
        ),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        *_timestamps(),
    )

    op.create_table(
        'contracts',
        _id(), _org(), _user(),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='DRAFT'),
        sa.Column('value', sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'documents',
        _id(), _org(), _user(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column(
            'type',
            sa.Enum('INVOICE', 'CONTRACT', 'TEMPLATE', 'ATTACHMENT', 'OTHER', name='document_type'),
            nullable=False,
            server_default='OTHER',
        ),
        sa.Column('folder', sa.String(length=255), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'payments',
        _id(), _org(), _user(),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.String(length=30), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='COMPLETED'),
        *_timestamps(),
    )

    # Analytics filters every query on (organization_id, created_at)
    for table in ('clients', 'invoices', 'contracts', 'documents', 'payments'):
        op.create_index(f'ix_{table}_org_created_at', table, ['organization_id', 'created_at'])
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_index('ix_invoices_user_id', table_name='invoices')
    op.drop_index('ix_invoices_client_id', table_name='invoices')
    for table in ('payments', 'documents', 'contracts', 'invoices', 'clients'):
        op.drop_index(f'ix_{table}_org_created_at', table_name=table)
        op.drop_table(table)
    for enum_name in ('document_type', 'invoice_status', 'client_status'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
