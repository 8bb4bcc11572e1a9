"""Create tasks table.

Revision ID: 1a7c3e9f2b40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "1a7c3e9f2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the tasks table; a null deleted_at marks an active task."""
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("content", sa.String(), nullable=False),
        sa.Column("deadline", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'TODO'")),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    """Drop the tasks table."""
    op.drop_table("tasks")
