from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import PlanType


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=2, max_length=64, pattern=r"^[a-z0-9-]+$")
    currency: str = Field(default="SAR", min_length=3, max_length=3)
    reserved_shares: int = Field(default=0, ge=0)


class CompanyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    currency: str
    status: str


class EmployeeCreate(BaseModel):
    employee_number: str = Field(min_length=1, max_length=64)
    full_name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    user_id: UUID | None = None


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    employee_number: str
    full_name: str
    email: str | None = None
    user_id: UUID | None = None
    status: str


class IncentivePlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    plan_type: PlanType


class IncentivePlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    plan_type: PlanType
    status: str


class VestingEventCreate(BaseModel):
    vesting_date: date
    shares_to_vest: int = Field(gt=0)


class GrantCreate(BaseModel):
    employee_id: UUID
    plan_id: UUID
    grant_date: date
    total_shares: int = Field(gt=0)
    exercise_price: Decimal = Field(default=Decimal("0"), ge=0)
    vesting_events: list[VestingEventCreate] = Field(default_factory=list)

    @field_validator("vesting_events")
    @classmethod
    def _unique_dates(cls, events: list[VestingEventCreate]) -> list[VestingEventCreate]:
        dates = [event.vesting_date for event in events]
        if len(dates) != len(set(dates)):
            raise ValueError("vesting dates must be unique within a grant")
        return events


class GrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    plan_id: UUID
    grant_date: date
    total_shares: int
    exercise_price: Decimal
    status: str
