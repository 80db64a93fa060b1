"""Create users and books tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("uid", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("pass", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("uid", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "books",
        sa.Column("bid", sa.String(length=36), nullable=False),
        sa.Column("lable", sa.String(length=255), nullable=False),
        sa.Column("author", sa.String(length=255), nullable=False),
        sa.Column("delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("uid", sa.String(length=36), nullable=False),
        sa.PrimaryKeyConstraint("bid", name="pk_books"),
        sa.ForeignKeyConstraint(
            ["uid"], ["users.uid"], name="fk_books_uid_users", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_books_uid", "books", ["uid"])
    op.create_index("ix_books_delete", "books", ["delete"])


def downgrade() -> None:
    op.drop_index("ix_books_delete", table_name="books")
    op.drop_index("ix_books_uid", table_name="books")
    op.drop_table("books")
    op.drop_table("users")
