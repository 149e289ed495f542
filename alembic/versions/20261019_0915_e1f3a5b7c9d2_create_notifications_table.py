"""create_notifications_table

Revision ID: e1f3a5b7c9d2
Revises: 5b7e9d1c3f45
Create Date: 2026-10-19 09:15:00.000000
"""
from __future__ import annotations

from alembic import op

revision = "e1f3a5b7c9d2"
down_revision = "5b7e9d1c3f45"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        "CREATE TYPE notification_type AS ENUM "
        "('ORG_MEMBER_JOINED', 'ORG_MEMBER_LEFT', 'ORG_ROLE_CHANGED', 'ORG_SETTINGS_UPDATED')"
    )
    op.execute(
        "CREATE TYPE notification_priority AS ENUM "
        "('LOW', 'MEDIUM', 'HIGH', 'URGENT')"
    )

    op.execute("""
        CREATE TABLE notifications (
            id              UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID        NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id         UUID        NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type            notification_type NOT NULL,
            title           VARCHAR(255) NOT NULL,
            message         TEXT        NOT NULL,
            priority        notification_priority NOT NULL DEFAULT 'MEDIUM',
            entity_type     VARCHAR(50),
            entity_id       UUID,
            channels        JSONB       NOT NULL DEFAULT '[]'::jsonb,
            data            JSONB       NOT NULL DEFAULT '{}'::jsonb,
            is_read         BOOLEAN     NOT NULL DEFAULT false,
            read_at         TIMESTAMPTZ,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("CREATE INDEX ix_notifications_organization_id ON notifications(organization_id)")
    op.execute("CREATE INDEX ix_notifications_user_id ON notifications(user_id)")
    op.execute("CREATE INDEX ix_notifications_user_is_read ON notifications(user_id, is_read)")
    op.execute("CREATE INDEX ix_notifications_created_at ON notifications(created_at)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications")
    op.execute("DROP TYPE IF EXISTS notification_priority")
    op.execute("DROP TYPE IF EXISTS notification_type")
