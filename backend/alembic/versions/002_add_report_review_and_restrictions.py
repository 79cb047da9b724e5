"""Add report review fields and user restrictions

Revision ID: 002
Revises: 001
Create Date: 2026-10-20 00:00:00.000000+00:00

What:  Columns recording who reviewed a moderation report and how it was
       resolved, plus the user_restrictions table read by action checks.

Rollback: downgrade() drops the columns and the table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("moderation_reports") as batch:
        batch.add_column(sa.Column("reviewed_by", sa.Uuid(), nullable=True))
        batch.add_column(sa.Column("resolution_notes", sa.Text(), nullable=True))
        batch.add_column(sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True))
        batch.create_foreign_key(
            "fk_moderation_reports_reviewed_by", "users", ["reviewed_by"], ["id"], ondelete="SET NULL"
        )

    op.create_table(
        "user_restrictions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("reason", sa.String(500), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_restrictions_user_id", "user_restrictions", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_restrictions_user_id", table_name="user_restrictions")
    op.drop_table("user_restrictions")
    with op.batch_alter_table("moderation_reports") as batch:
        batch.drop_constraint("fk_moderation_reports_reviewed_by", type_="foreignkey")
        batch.drop_column("reviewed_at")
        batch.drop_column("resolution_notes")
        batch.drop_column("reviewed_by")
