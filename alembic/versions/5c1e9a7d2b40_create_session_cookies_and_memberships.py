"""Create session_cookies and memberships tables

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1e9a7d2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "session_cookies",
        sa.Column("origin", sa.String(255), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )

    op.create_table(
        "memberships",
        sa.Column("external_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("platform_identity", sa.BigInteger(), nullable=True, unique=True),
        sa.Column(
            "eligible_for_removal", sa.Boolean(),
            nullable=False, server_default=sa.false(),
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_index(
        "ix_memberships_eligible_for_removal", "memberships", ["eligible_for_removal"],
    )


def downgrade() -> None:
    op.drop_index("ix_memberships_eligible_for_removal", table_name="memberships")
    op.drop_table("memberships")
    op.drop_table("session_cookies")
