"""Shared schema for transport billing.

- tenants (control plane)
- users (control plane)
- companies, drivers, weekly_processing, historical_trips, payments,
  payment_history, company_balances, transport_orders, order_sequence

Every tenant-owned table carries a tenant_id marker; uniqueness is per
tenant. Dedicated tenant schemas are created at provisioning time from the
ORM metadata, not by this migration.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "c41d7e9a2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_TABLES = [
    "companies",
    "drivers",
    "weekly_processing",
    "historical_trips",
    "payments",
    "payment_history",
    "company_balances",
    "transport_orders",
    "order_sequence",
]


def _id() -> sa.Column:
    return sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True)


def _tenant() -> sa.Column:
    return sa.Column("tenant_id", sa.String(64), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    # Tenants
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("storage_mode", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("provisioned_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    # Users
    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    # Companies
    op.create_table(
        "companies",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("cif", sa.String(50), nullable=True),
        sa.Column("trade_register_number", sa.String(100), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column("county", sa.String(100), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("contact", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_companies_tenant_name"),
    )

    # Drivers
    op.create_table(
        "drivers",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("name_variants", postgresql.JSONB(), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("email", sa.String(100), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="SET NULL"),
    )

    # Weekly processing
    op.create_table(
        "weekly_processing",
        _id(),
        _tenant(),
        sa.Column("week_label", sa.String(100), nullable=False),
        sa.Column("processing_date", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("trip_data_count", sa.Integer(), nullable=False),
        sa.Column("invoice7_count", sa.Integer(), nullable=False),
        sa.Column("invoice30_count", sa.Integer(), nullable=False),
        sa.Column("processed_data", postgresql.JSONB(), nullable=True),
        sa.Column("trip_data", postgresql.JSONB(), nullable=True),
        sa.Column("invoice7_data", postgresql.JSONB(), nullable=True),
        sa.Column("invoice30_data", postgresql.JSONB(), nullable=True),
        sa.UniqueConstraint("tenant_id", "week_label", name="uq_weekly_processing_tenant_week"),
    )

    # Historical trips
    op.create_table(
        "historical_trips",
        _id(),
        _tenant(),
        sa.Column("vrid", sa.String(100), nullable=False),
        sa.Column("driver_name", sa.String(200), nullable=True),
        sa.Column("week_label", sa.String(100), nullable=False),
        sa.Column("trip_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("route", sa.String(200), nullable=True),
        sa.Column("raw_trip_data", postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "vrid", name="uq_historical_trips_tenant_vrid"),
    )

    # Payments
    op.create_table(
        "payments",
        _id(),
        _tenant(),
        sa.Column("company_name", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("week_label", sa.String(100), nullable=False),
        sa.Column("payment_type", sa.String(50), nullable=False),
    )

    # Payment history
    op.create_table(
        "payment_history",
        _id(),
        _tenant(),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("previous_data", postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="SET NULL"),
    )

    # Company balances
    op.create_table(
        "company_balances",
        _id(),
        _tenant(),
        sa.Column("company_name", sa.String(100), nullable=False),
        sa.Column("week_label", sa.String(100), nullable=False),
        sa.Column("total_invoiced", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("outstanding_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_status", sa.String(50), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "company_name", "week_label", name="uq_company_balances_tenant_company_week"),
    )

    # Transport orders
    op.create_table(
        "transport_orders",
        _id(),
        _tenant(),
        sa.Column("order_number", sa.String(100), nullable=False),
        sa.Column("company_name", sa.String(100), nullable=False),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("week_label", sa.String(100), nullable=False),
        sa.Column("vrids", postgresql.JSONB(), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("route", sa.String(200), nullable=True),
        sa.Column("status", sa.String(50), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_transport_orders_tenant_number"),
    )

    # Order sequence
    op.create_table(
        "order_sequence",
        _id(),
        _tenant(),
        sa.Column("current_number", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("tenant_id", name="uq_order_sequence_tenant"),
    )

    for tbl in TENANT_TABLES:
        op.create_index(f"ix_{tbl}_tenant_id", tbl, ["tenant_id"])


def downgrade() -> None:
    for tbl in reversed(TENANT_TABLES):
        op.drop_index(f"ix_{tbl}_tenant_id", table_name=tbl)
        op.drop_table(tbl)
    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_table("users")
    op.drop_table("tenants")
