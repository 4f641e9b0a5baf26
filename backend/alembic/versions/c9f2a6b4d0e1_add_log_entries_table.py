"""add log entries table

Revision ID: c9f2a6b4d0e1
Revises: b7e3d1a5c8f2
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c9f2a6b4d0e1"
down_revision = "b7e3d1a5c8f2"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "log_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("entry_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("site", sa.String(length=200), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("max_depth", sa.Float(), nullable=True),
        sa.Column("bottom_time", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_log_entries_account_id"), "log_entries", ["account_id"], unique=False)
    op.create_index(op.f("ix_log_entries_entry_time"), "log_entries", ["entry_time"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_log_entries_entry_time"), table_name="log_entries")
    op.drop_index(op.f("ix_log_entries_account_id"), table_name="log_entries")
    op.drop_table("log_entries")
