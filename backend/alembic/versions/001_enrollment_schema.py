"""Initial schema — programs, org units, program capture scope, persons, enrollments.

Revision ID: 001_enrollment_schema
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_enrollment_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "programs",
        sa.Column("uid", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(230), nullable=False),
        sa.Column("enrollment_date_label", sa.String(230), nullable=False, server_default=""),
        sa.Column("allows_future_enrollment_date", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("only_enroll_once", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("tracked_entity_type", sa.String(36), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("download_failed", sa.Boolean, nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "org_units",
        sa.Column("uid", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(230), nullable=False, server_default=""),
        sa.Column("opening_date", sa.Date, nullable=True),
        sa.Column("closed_date", sa.Date, nullable=True),
    )

    op.create_table(
        "program_org_units",
        sa.Column("program_uid", sa.String(36), sa.ForeignKey("programs.uid", ondelete="CASCADE"), primary_key=True),
        sa.Column("org_unit_uid", sa.String(36), sa.ForeignKey("org_units.uid", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "persons",
        sa.Column("uid", sa.String(36), primary_key=True),
        sa.Column("tracked_entity_type", sa.String(36), nullable=True),
        sa.Column("attributes", sa.JSON, nullable=False),
    )

    op.create_table(
        "enrollments",
        sa.Column("uid", sa.String(36), primary_key=True),
        sa.Column("program_uid", sa.String(36), sa.ForeignKey("programs.uid"), nullable=False),
        sa.Column("person_uid", sa.String(36), sa.ForeignKey("persons.uid"), nullable=False),
        sa.Column("org_unit_uid", sa.String(36), sa.ForeignKey("org_units.uid"), nullable=False),
        sa.Column("enrollment_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_enrollments_program_uid", "enrollments", ["program_uid"])
    op.create_index("ix_enrollments_person_uid", "enrollments", ["person_uid"])


def downgrade() -> None:
    op.drop_index("ix_enrollments_person_uid", table_name="enrollments")
    op.drop_index("ix_enrollments_program_uid", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_table("persons")
    op.drop_table("program_org_units")
    op.drop_table("org_units")
    op.drop_table("programs")
