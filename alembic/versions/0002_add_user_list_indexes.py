"""add indexes backing sorted user lists

Revision ID: 0002_user_list_indexes
Revises: 0001_init
Create Date: 2026-10-17
"""

from alembic import op

revision = "0002_user_list_indexes"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    op.create_index("ix_users_created_at", "users", ["created_at"])
    op.create_index("ix_users_updated_at", "users", ["updated_at"])


def downgrade():
    op.drop_index("ix_users_updated_at", table_name="users")
    op.drop_index("ix_users_created_at", table_name="users")
