"""create registrations

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "registrations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=10), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("address", sa.String(length=200), nullable=False),
        sa.Column("city", sa.String(length=50), nullable=False),
        sa.Column("state", sa.String(length=50), nullable=False),
        sa.Column("pincode", sa.String(length=6), nullable=False),
        sa.Column("identity_number", sa.String(length=12), nullable=False),
        sa.Column("course_name", sa.String(length=100), nullable=False),
        sa.Column("identity_file", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("signature_file", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("agree_terms", sa.Boolean(), nullable=False),
        sa.Column("agree_marketing", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_registrations_email"),
        sa.UniqueConstraint("phone", name="uq_registrations_phone"),
        sa.UniqueConstraint("identity_number", name="uq_registrations_identity_number"),
    )
    op.create_index("ix_registrations_submitted_at", "registrations", ["submitted_at"])
    op.create_index("ix_registrations_status_submitted", "registrations", ["status", "submitted_at"])
    op.create_index("ix_registrations_course_submitted", "registrations", ["course_name", "submitted_at"])


def downgrade() -> None:
    op.drop_index("ix_registrations_course_submitted", table_name="registrations")
    op.drop_index("ix_registrations_status_submitted", table_name="registrations")
    op.drop_index("ix_registrations_submitted_at", table_name="registrations")
    op.drop_table("registrations")
