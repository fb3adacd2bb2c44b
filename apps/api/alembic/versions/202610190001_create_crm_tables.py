"""create crm tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "crm_company",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("logo", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_company_user_id", "crm_company", ["user_id"], unique=False)

    op.create_table(
        "crm_customer",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("position", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_customer_user_id", "crm_customer", ["user_id"], unique=False)
    op.create_index("ix_crm_customer_company_id", "crm_customer", ["company_id"], unique=False)

    op.create_table(
        "crm_visit",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("next_follow_up", sa.Date(), nullable=True),
        sa.Column("next_action_type", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_visit_user_id", "crm_visit", ["user_id"], unique=False)
    op.create_index("ix_crm_visit_company_id", "crm_visit", ["company_id"], unique=False)
    op.create_index("ix_crm_visit_user_visit_date", "crm_visit", ["user_id", "visit_date"], unique=False)

    op.create_table(
        "crm_opportunity",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stage", sa.String(length=32), nullable=False, server_default="cold_call"),
        sa.Column("value", sa.Numeric(14, 2), nullable=True),
        sa.Column("probability", sa.Integer(), nullable=True),
        sa.Column("expected_closing_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_opportunity_user_id", "crm_opportunity", ["user_id"], unique=False)
    op.create_index("ix_crm_opportunity_company_id", "crm_opportunity", ["company_id"], unique=False)

    op.create_table(
        "crm_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("related_opportunity_id", sa.Uuid(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_task_user_id", "crm_task", ["user_id"], unique=False)
    op.create_index("ix_crm_task_user_due_date", "crm_task", ["user_id", "due_date"], unique=False)

    op.create_table(
        "crm_requirement",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("equipment_name", sa.Text(), nullable=False),
        sa.Column("required_period", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_requirement_user_id", "crm_requirement", ["user_id"], unique=False)
    op.create_index("ix_crm_requirement_company_id", "crm_requirement", ["company_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_crm_requirement_company_id", table_name="crm_requirement")
    op.drop_index("ix_crm_requirement_user_id", table_name="crm_requirement")
    op.drop_table("crm_requirement")

    op.drop_index("ix_crm_task_user_due_date", table_name="crm_task")
    op.drop_index("ix_crm_task_user_id", table_name="crm_task")
    op.drop_table("crm_task")

    op.drop_index("ix_crm_opportunity_company_id", table_name="crm_opportunity")
    op.drop_index("ix_crm_opportunity_user_id", table_name="crm_opportunity")
    op.drop_table("crm_opportunity")

    op.drop_index("ix_crm_visit_user_visit_date", table_name="crm_visit")
    op.drop_index("ix_crm_visit_company_id", table_name="crm_visit")
    op.drop_index("ix_crm_visit_user_id", table_name="crm_visit")
    op.drop_table("crm_visit")

    op.drop_index("ix_crm_customer_company_id", table_name="crm_customer")
    op.drop_index("ix_crm_customer_user_id", table_name="crm_customer")
    op.drop_table("crm_customer")

    op.drop_index("ix_crm_company_user_id", table_name="crm_company")
    op.drop_table("crm_company")
