"""Create generation_grants and design_systems.

Revision ID: 002_grants_and_design_systems
Revises: 001_initial_entitlements
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002_grants_and_design_systems"
down_revision: Union[str, None] = "001_initial_entitlements"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create held grant and design system tables."""
    op.create_table(
        "generation_grants",
        sa.Column("token", sa.String(64), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tier", sa.String(20), nullable=False),
        sa.Column("credits_consumed", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "free_trial_consumed", sa.Boolean, nullable=False, server_default=sa.text("false")
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="held"),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("settled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_generation_grants_user_id", "generation_grants", ["user_id"])
    op.create_index(
        "ix_generation_grants_status_expires_at", "generation_grants", ["status", "expires_at"]
    )

    op.create_table(
        "design_systems",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("brand_description", sa.Text, nullable=False),
        sa.Column("industry", sa.String(100), nullable=True),
        sa.Column("audience", sa.String(200), nullable=True),
        sa.Column("tier", sa.String(20), nullable=True),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column("cached", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_design_systems_user_id", "design_systems", ["user_id"])
    op.create_index("ix_design_systems_created_at", "design_systems", ["created_at"])


def downgrade() -> None:
    """Drop held grant and design system tables."""
    op.drop_table("design_systems")
    op.drop_table("generation_grants")
