"""baseline: certificate templates and generated certificates

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Template history; event_id NULL is the organisation default
    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("template", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_certificate_templates_event_active",
        "certificate_templates",
        ["event_id", "is_active"],
    )

    op.create_table(
        "generated_certificates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("certificate_number", sa.String(64), nullable=False),
        sa.Column("certificate_type", sa.String(32), nullable=False),
        sa.Column(
            "state",
            sa.Enum(
                "generated",
                "issued",
                name="certificate_state",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("document_key", sa.String(512), nullable=False),
        sa.Column("content_type", sa.String(64), nullable=False),
        sa.Column("byte_size", sa.Integer(), nullable=False),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("render_payload", sa.JSON(), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("certificate_number"),
        sa.UniqueConstraint(
            "event_id",
            "participant_id",
            name="uq_generated_certificate_participant",
        ),
    )
    op.create_index(
        "ix_generated_certificates_event", "generated_certificates", ["event_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_generated_certificates_event", "generated_certificates")
    op.drop_table("generated_certificates")
    op.drop_index("ix_certificate_templates_event_active", "certificate_templates")
    op.drop_table("certificate_templates")
