import uuid

from sqlalchemy import BigInteger, CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class Grant(Base):
    __tablename__ = "grants"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("total_shares > 0", name="ck_grants_total_shares_positive"),
        CheckConstraint("exercise_price >= 0", name="ck_grants_exercise_price_nonnegative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id = Column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id = Column(UUID(as_uuid=True), ForeignKey("incentive_plans.id"), nullable=False, index=True)
    grant_date = Column(Date, nullable=False)
    total_shares = Column(BigInteger, nullable=False)
    exercise_price = Column(Numeric(15, 4), nullable=False, default=0)
    status = Column(String(50), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    plan = relationship("IncentivePlan", lazy="joined")
    vesting_events = relationship(
        "VestingEvent",
        back_populates="grant",
        order_by="VestingEvent.vesting_date",
    )
