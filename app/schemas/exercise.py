from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import ExerciseOrderStatus


class ExerciseOrderCreate(BaseModel):
    vesting_event_id: UUID
    # Underfunded orders are still recorded; this only controls whether the call fails afterwards.
    require_funds: bool = True


class ExerciseOrderReject(BaseModel):
    reason: str = Field(default="", max_length=2000)


class ExerciseOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    order_number: str
    employee_id: UUID
    grant_id: UUID
    vesting_event_id: UUID
    shares_to_exercise: int
    exercise_price_per_share: Decimal
    total_exercise_cost: Decimal
    cash_portfolio_id: UUID
    cash_balance_at_order: Decimal
    sufficient_funds: bool
    status: ExerciseOrderStatus
    rejection_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    processed_by: UUID | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None


class ExerciseOrderList(BaseModel):
    items: list[ExerciseOrderOut]
    total: int
    counts: dict[str, int] = Field(default_factory=dict)
