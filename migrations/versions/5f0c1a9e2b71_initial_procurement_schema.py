"""initial_procurement_schema

Create directory tables (organizations, departments, users), the proposal
ledger, completed-contract snapshots and notifications.

Revision ID: 5f0c1a9e2b71
Revises:
Create Date: 2026-10-12 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f0c1a9e2b71"
down_revision = None
branch_labels = None
depends_on = None

_MONEY = sa.Numeric(14, 2)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("organization_id", "name", name="uq_department_org_name"),
        )
        op.create_index("ix_departments_organization_id", "departments", ["organization_id"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("external_uid", sa.String(length=128), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("display_name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=30), nullable=False, server_default="REQUESTER"),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("external_uid"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_organization_id", "users", ["organization_id"])
        op.create_index("ix_users_department_id", "users", ["department_id"])

    if "proposals" not in existing_tables:
        op.create_table(
            "proposals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_key", sa.String(length=64), nullable=False),
            sa.Column("sequence_number", sa.Integer(), nullable=False),
            sa.Column("unit_price", _MONEY, nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("total", _MONEY, nullable=False),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("is_final", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_final_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_key", "sequence_number", name="uq_proposal_request_sequence"),
            sa.CheckConstraint("sequence_number >= 1", name="ck_proposal_sequence_positive"),
            sa.CheckConstraint("quantity > 0", name="ck_proposal_quantity_positive"),
        )
        op.create_index("ix_proposals_request_key", "proposals", ["request_key"])

    if "negotiation_snapshots" not in existing_tables:
        op.create_table(
            "negotiation_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_key", sa.String(length=64), nullable=False),
            sa.Column("vendor_name", sa.String(length=200), nullable=False),
            sa.Column("product_name", sa.String(length=200), nullable=False),
            sa.Column("requester_name", sa.String(length=200), nullable=True),
            sa.Column("requester_email", sa.String(length=200), nullable=True),
            sa.Column("requester_department_id", sa.Integer(), nullable=True),
            sa.Column("requester_organization_id", sa.Integer(), nullable=True),
            sa.Column("current_license_count", sa.Integer(), nullable=True),
            sa.Column("new_license_count", sa.Integer(), nullable=True),
            sa.Column("current_usage_count", sa.Integer(), nullable=True),
            sa.Column("new_usage_count", sa.Integer(), nullable=True),
            sa.Column("current_units", sa.String(length=50), nullable=True),
            sa.Column("new_units", sa.String(length=50), nullable=True),
            sa.Column("vendor_contract_type", sa.String(length=100), nullable=True),
            sa.Column("license_update_type", sa.String(length=100), nullable=True),
            sa.Column("existing_contract_id", sa.String(length=100), nullable=True),
            sa.Column("billing_type", sa.String(length=100), nullable=True),
            sa.Column("contract_duration_months", sa.Integer(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("renewal_date", sa.Date(), nullable=True),
            sa.Column("contract_start_date", sa.Date(), nullable=True),
            sa.Column("contract_end_date", sa.Date(), nullable=True),
            sa.Column("profit", _MONEY, nullable=False, server_default="0"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="completed"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_key"),
            sa.CheckConstraint(
                "status IN ('completed','final_quote_submitted')", name="ck_snapshot_status",
            ),
        )
        op.create_index("ix_negotiation_snapshots_vendor_name", "negotiation_snapshots", ["vendor_name"])
        op.create_index("ix_negotiation_snapshots_requester_email", "negotiation_snapshots", ["requester_email"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("request_key", sa.String(length=64), nullable=True),
            sa.Column("recipient_user_id", sa.Integer(), nullable=True),
            sa.Column("recipient_role", sa.String(length=30), nullable=True),
            sa.Column("recipient_department_id", sa.Integer(), nullable=True),
            sa.Column("recipient_organization_id", sa.Integer(), nullable=True),
            sa.Column("sender_user_id", sa.Integer(), nullable=True),
            sa.Column("sender_name", sa.String(length=200), nullable=True),
            sa.Column("from_status", sa.String(length=100), nullable=True),
            sa.Column("to_status", sa.String(length=100), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_request_key", "notifications", ["request_key"])
        op.create_index("ix_notifications_recipient_user_id", "notifications", ["recipient_user_id"])
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("negotiation_snapshots")
    op.drop_table("proposals")
    op.drop_table("users")
    op.drop_table("departments")
    op.drop_table("organizations")
