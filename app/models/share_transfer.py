import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ShareTransfer(Base):
    __tablename__ = "share_transfers"
    __table_args__ = (
        CheckConstraint("shares_transferred > 0", name="ck_share_transfers_shares_positive"),
        CheckConstraint(
            "transfer_type IN ('vesting', 'forfeiture', 'exercise', 'cancellation')",
            name="ck_share_transfers_type",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transfer_number = Column(String(64), nullable=False, unique=True)
    grant_id = Column(UUID(as_uuid=True), ForeignKey("grants.id"), nullable=False, index=True)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True)
    vesting_event_id = Column(UUID(as_uuid=True), ForeignKey("vesting_events.id"), nullable=True)
    exercise_order_id = Column(UUID(as_uuid=True), ForeignKey("exercise_orders.id"), nullable=True)
    from_portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id"), nullable=False)
    to_portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id"), nullable=False)
    shares_transferred = Column(BigInteger, nullable=False)
    transfer_type = Column(String(20), nullable=False)
    transfer_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="transferred")
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(UUID(as_uuid=True), nullable=True)
    processed_by_system = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
