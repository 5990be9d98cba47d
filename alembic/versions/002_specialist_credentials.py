"""Specialist education and publications.

Revision ID: 002_specialist_credentials
Revises: 001_initial_schema
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "002_specialist_credentials"
down_revision: str | None = "001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create education and publications tables."""
    op.create_table(
        "education",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "specialist_user_id",
            sa.String(36),
            sa.ForeignKey("specialist_profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("institution", sa.String(200), nullable=False),
        sa.Column("degree", sa.String(120), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("document_url", sa.Text(), nullable=True),
        sa.Column("document_type", sa.String(16), nullable=False, server_default="diploma"),
        sa.Column("is_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_education_specialist_user_id", "education", ["specialist_user_id"])

    op.create_table(
        "publications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "specialist_user_id",
            sa.String(36),
            sa.ForeignKey("specialist_profiles.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_publications_specialist_user_id", "publications", ["specialist_user_id"])


def downgrade() -> None:
    """Drop education and publications tables."""
    op.drop_index("ix_publications_specialist_user_id", table_name="publications")
    op.drop_table("publications")
    op.drop_index("ix_education_specialist_user_id", table_name="education")
    op.drop_table("education")
