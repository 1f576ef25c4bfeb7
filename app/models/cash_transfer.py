import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class CashTransfer(Base):
    __tablename__ = "cash_transfers"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_transfers_amount_positive"),
        CheckConstraint(
            "transfer_type IN ('company_deposit', 'employee_deposit', 'exercise_settlement')",
            name="ck_cash_transfers_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'processed')",
            name="ck_cash_transfers_status",
        ),
        CheckConstraint(
            "(transfer_type = 'exercise_settlement') = (exercise_order_id IS NOT NULL)",
            name="ck_cash_transfers_settlement_order",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transfer_number = Column(String(64), nullable=False, unique=True)
    transfer_type = Column(String(32), nullable=False)
    from_portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id"), nullable=True)
    to_portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id"), nullable=True)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True, index=True)
    exercise_order_id = Column(
        UUID(as_uuid=True), ForeignKey("exercise_orders.id"), nullable=True, unique=True
    )
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="SAR")
    status = Column(String(20), nullable=False, default="pending", index=True)
    description = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
