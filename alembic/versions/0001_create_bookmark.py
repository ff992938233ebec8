"""create_bookmark

Revision ID: 0001_create_bookmark
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_create_bookmark"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bookmark",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookmark_owner_id", "bookmark", ["owner_id"])
    op.create_index("ix_bookmark_owner_created", "bookmark", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_bookmark_owner_created", table_name="bookmark")
    op.drop_index("ix_bookmark_owner_id", table_name="bookmark")
    op.drop_table("bookmark")
