import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class VestingEvent(Base):
    __tablename__ = "vesting_events"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("shares_to_vest > 0", name="ck_vesting_events_shares_positive"),
        CheckConstraint(
            "status IN ('pending', 'due', 'vested', 'pending_exercise', 'exercised', "
            "'transferred', 'forfeited', 'cancelled')",
            name="ck_vesting_events_status",
        ),
        UniqueConstraint("grant_id", "vesting_date", name="uq_vesting_events_grant_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    grant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("grants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True)
    vesting_date = Column(Date, nullable=False, index=True)
    shares_to_vest = Column(BigInteger, nullable=False)
    status = Column(String(32), nullable=False, default="pending", index=True)
    exercise_price = Column(Numeric(15, 4), nullable=True)
    requires_exercise = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    grant = relationship("Grant", back_populates="vesting_events")
