from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.schemas.common import VestingEventStatus


class VestingEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    grant_id: UUID
    employee_id: UUID
    vesting_date: date
    shares_to_vest: int
    status: VestingEventStatus
    exercise_price: Decimal | None = None
    requires_exercise: bool


class VestingRefreshRequest(BaseModel):
    as_of: date | None = None


class VestingRefreshOut(BaseModel):
    as_of: date
    advanced: int
    released: int = 0
    release_skipped: int = 0
