import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Portfolio(Base):
    __tablename__ = "portfolios"
    __table_args__ = (
        CheckConstraint(
            "portfolio_type IN ('company_reserved', 'employee_vested', 'company_cash', 'employee_cash')",
            name="ck_portfolios_type",
        ),
        CheckConstraint("total_shares >= 0", name="ck_portfolios_total_shares_nonnegative"),
        CheckConstraint("available_shares >= 0", name="ck_portfolios_available_nonnegative"),
        CheckConstraint("locked_shares >= 0", name="ck_portfolios_locked_nonnegative"),
        CheckConstraint("available_shares <= total_shares", name="ck_portfolios_available_le_total"),
        CheckConstraint("cash_balance >= 0", name="ck_portfolios_cash_nonnegative"),
        Index(
            "ux_portfolios_company_singleton",
            "company_id",
            "portfolio_type",
            unique=True,
            postgresql_where=text("employee_id IS NULL"),
        ),
        Index(
            "ux_portfolios_employee_type",
            "company_id",
            "employee_id",
            "portfolio_type",
            unique=True,
            postgresql_where=text("employee_id IS NOT NULL"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True, index=True)
    portfolio_type = Column(String(32), nullable=False)
    portfolio_number = Column(String(64), nullable=False, unique=True)
    total_shares = Column(BigInteger, nullable=False, default=0)
    available_shares = Column(BigInteger, nullable=False, default=0)
    locked_shares = Column(BigInteger, nullable=False, default=0)
    cash_balance = Column(Numeric(15, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Every flush compares the loaded version; a concurrent writer raises StaleDataError.
    __mapper_args__ = {"version_id_col": version}
