"""equity ledger schema: companies, grants, portfolios, orders and transfers

Revision ID: 20261017_ledger_schema
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261017_ledger_schema"
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name: str, *args, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def _company_fk() -> sa.Column:
    return _uuid("company_id", sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "companies",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        *_timestamps(),
    )

    op.create_table(
        "employees",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        _uuid("user_id", nullable=True),
        sa.Column("employee_number", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "employee_number", name="uq_employees_company_number"),
    )
    op.create_index("ix_employees_company_id", "employees", ["company_id"])
    op.create_index("ix_employees_user_id", "employees", ["user_id"])

    op.create_table(
        "incentive_plans",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("plan_type", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("plan_type IN ('ESOP', 'RSU', 'RSA')", name="ck_incentive_plans_plan_type"),
    )
    op.create_index("ix_incentive_plans_company_id", "incentive_plans", ["company_id"])

    op.create_table(
        "grants",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        _uuid("employee_id", sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
        _uuid("plan_id", sa.ForeignKey("incentive_plans.id"), nullable=False),
        sa.Column("grant_date", sa.Date(), nullable=False),
        sa.Column("total_shares", sa.BigInteger(), nullable=False),
        sa.Column("exercise_price", sa.Numeric(15, 4), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        *_timestamps(),
        sa.CheckConstraint("total_shares > 0", name="ck_grants_total_shares_positive"),
        sa.CheckConstraint("exercise_price >= 0", name="ck_grants_exercise_price_nonnegative"),
    )
    for column in ("company_id", "employee_id", "plan_id"):
        op.create_index(f"ix_grants_{column}", "grants", [column])

    op.create_table(
        "vesting_events",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        _uuid("grant_id", sa.ForeignKey("grants.id", ondelete="CASCADE"), nullable=False),
        _uuid("employee_id", sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("vesting_date", sa.Date(), nullable=False),
        sa.Column("shares_to_vest", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("exercise_price", sa.Numeric(15, 4), nullable=True),
        sa.Column("requires_exercise", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("shares_to_vest > 0", name="ck_vesting_events_shares_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'due', 'vested', 'pending_exercise', 'exercised', "
            "'transferred', 'forfeited', 'cancelled')",
            name="ck_vesting_events_status",
        ),
        sa.UniqueConstraint("grant_id", "vesting_date", name="uq_vesting_events_grant_date"),
    )
    for column in ("company_id", "grant_id", "employee_id", "vesting_date", "status"):
        op.create_index(f"ix_vesting_events_{column}", "vesting_events", [column])

    op.create_table(
        "portfolios",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        _uuid("employee_id", sa.ForeignKey("employees.id"), nullable=True),
        sa.Column("portfolio_type", sa.String(length=32), nullable=False),
        sa.Column("portfolio_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("total_shares", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("available_shares", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("locked_shares", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("cash_balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint(
            "portfolio_type IN ('company_reserved', 'employee_vested', 'company_cash', 'employee_cash')",
            name="ck_portfolios_type",
        ),
        sa.CheckConstraint("total_shares >= 0", name="ck_portfolios_total_shares_nonnegative"),
        sa.CheckConstraint("available_shares >= 0", name="ck_portfolios_available_nonnegative"),
        sa.CheckConstraint("locked_shares >= 0", name="ck_portfolios_locked_nonnegative"),
        sa.CheckConstraint("available_shares <= total_shares", name="ck_portfolios_available_le_total"),
        sa.CheckConstraint("cash_balance >= 0", name="ck_portfolios_cash_nonnegative"),
    )
    op.create_index("ix_portfolios_company_id", "portfolios", ["company_id"])
    op.create_index("ix_portfolios_employee_id", "portfolios", ["employee_id"])
    op.create_index(
        "ux_portfolios_company_singleton",
        "portfolios",
        ["company_id", "portfolio_type"],
        unique=True,
        postgresql_where=sa.text("employee_id IS NULL"),
    )
    op.create_index(
        "ux_portfolios_employee_type",
        "portfolios",
        ["company_id", "employee_id", "portfolio_type"],
        unique=True,
        postgresql_where=sa.text("employee_id IS NOT NULL"),
    )

    op.create_table(
        "exercise_orders",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        sa.Column("order_number", sa.String(length=64), nullable=False, unique=True),
        _uuid("employee_id", sa.ForeignKey("employees.id"), nullable=False),
        _uuid("grant_id", sa.ForeignKey("grants.id"), nullable=False),
        _uuid("vesting_event_id", sa.ForeignKey("vesting_events.id"), nullable=False),
        sa.Column("shares_to_exercise", sa.BigInteger(), nullable=False),
        sa.Column("exercise_price_per_share", sa.Numeric(15, 4), nullable=False),
        sa.Column("total_exercise_cost", sa.Numeric(15, 2), nullable=False),
        _uuid("cash_portfolio_id", sa.ForeignKey("portfolios.id"), nullable=False),
        sa.Column("cash_balance_at_order", sa.Numeric(15, 2), nullable=False),
        sa.Column("sufficient_funds", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _uuid("approved_by", nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("processed_by", nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.CheckConstraint("shares_to_exercise > 0", name="ck_exercise_orders_shares_positive"),
        sa.CheckConstraint("exercise_price_per_share >= 0", name="ck_exercise_orders_price_nonnegative"),
        sa.CheckConstraint("total_exercise_cost >= 0", name="ck_exercise_orders_cost_nonnegative"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'processed', 'cancelled')",
            name="ck_exercise_orders_status",
        ),
    )
    for column in ("company_id", "employee_id", "grant_id", "vesting_event_id", "status"):
        op.create_index(f"ix_exercise_orders_{column}", "exercise_orders", [column])
    op.create_index(
        "ux_exercise_orders_active_vesting_event",
        "exercise_orders",
        ["vesting_event_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
    )

    op.create_table(
        "cash_transfers",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        sa.Column("transfer_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("transfer_type", sa.String(length=32), nullable=False),
        _uuid("from_portfolio_id", sa.ForeignKey("portfolios.id"), nullable=True),
        _uuid("to_portfolio_id", sa.ForeignKey("portfolios.id"), nullable=True),
        _uuid("employee_id", sa.ForeignKey("employees.id"), nullable=True),
        _uuid("exercise_order_id", sa.ForeignKey("exercise_orders.id"), nullable=True, unique=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _uuid("approved_by", nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("created_by", nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_cash_transfers_amount_positive"),
        sa.CheckConstraint(
            "transfer_type IN ('company_deposit', 'employee_deposit', 'exercise_settlement')",
            name="ck_cash_transfers_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'processed')",
            name="ck_cash_transfers_status",
        ),
        sa.CheckConstraint(
            "(transfer_type = 'exercise_settlement') = (exercise_order_id IS NOT NULL)",
            name="ck_cash_transfers_settlement_order",
        ),
    )
    for column in ("company_id", "employee_id", "status"):
        op.create_index(f"ix_cash_transfers_{column}", "cash_transfers", [column])

    op.create_table(
        "share_transfers",
        _uuid("id", primary_key=True, nullable=False),
        _company_fk(),
        sa.Column("transfer_number", sa.String(length=64), nullable=False, unique=True),
        _uuid("grant_id", sa.ForeignKey("grants.id"), nullable=False),
        _uuid("employee_id", sa.ForeignKey("employees.id"), nullable=False),
        _uuid("vesting_event_id", sa.ForeignKey("vesting_events.id"), nullable=True),
        _uuid("exercise_order_id", sa.ForeignKey("exercise_orders.id"), nullable=True),
        _uuid("from_portfolio_id", sa.ForeignKey("portfolios.id"), nullable=False),
        _uuid("to_portfolio_id", sa.ForeignKey("portfolios.id"), nullable=False),
        sa.Column("shares_transferred", sa.BigInteger(), nullable=False),
        sa.Column("transfer_type", sa.String(length=20), nullable=False),
        sa.Column("transfer_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="transferred"),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("processed_by", nullable=True),
        sa.Column("processed_by_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("shares_transferred > 0", name="ck_share_transfers_shares_positive"),
        sa.CheckConstraint(
            "transfer_type IN ('vesting', 'forfeiture', 'exercise', 'cancellation')",
            name="ck_share_transfers_type",
        ),
    )
    for column in ("company_id", "grant_id", "employee_id"):
        op.create_index(f"ix_share_transfers_{column}", "share_transfers", [column])

    op.create_table(
        "audit_logs",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("company_id", nullable=True),
        _uuid("actor_id", nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_audit_logs_company_id", "audit_logs", ["company_id"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["company_id", "resource_type", "resource_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("share_transfers")
    op.drop_table("cash_transfers")
    op.drop_index("ux_exercise_orders_active_vesting_event", table_name="exercise_orders")
    op.drop_table("exercise_orders")
    op.drop_index("ux_portfolios_employee_type", table_name="portfolios")
    op.drop_index("ux_portfolios_company_singleton", table_name="portfolios")
    op.drop_table("portfolios")
    op.drop_table("vesting_events")
    op.drop_table("grants")
    op.drop_table("incentive_plans")
    op.drop_table("employees")
    op.drop_table("companies")
