import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ExerciseOrder(Base):
    __tablename__ = "exercise_orders"
    __table_args__ = (
        CheckConstraint("shares_to_exercise > 0", name="ck_exercise_orders_shares_positive"),
        CheckConstraint("exercise_price_per_share >= 0", name="ck_exercise_orders_price_nonnegative"),
        CheckConstraint("total_exercise_cost >= 0", name="ck_exercise_orders_cost_nonnegative"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'processed', 'cancelled')",
            name="ck_exercise_orders_status",
        ),
        # Terminal orders stay as history; only one live order may reference an event.
        Index(
            "ux_exercise_orders_active_vesting_event",
            "vesting_event_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved')"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_number = Column(String(64), nullable=False, unique=True)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True)
    grant_id = Column(UUID(as_uuid=True), ForeignKey("grants.id"), nullable=False, index=True)
    vesting_event_id = Column(UUID(as_uuid=True), ForeignKey("vesting_events.id"), nullable=False, index=True)
    shares_to_exercise = Column(BigInteger, nullable=False)
    exercise_price_per_share = Column(Numeric(15, 4), nullable=False)
    total_exercise_cost = Column(Numeric(15, 2), nullable=False)
    cash_portfolio_id = Column(UUID(as_uuid=True), ForeignKey("portfolios.id"), nullable=False)
    cash_balance_at_order = Column(Numeric(15, 2), nullable=False)
    sufficient_funds = Column(Boolean, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(UUID(as_uuid=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
