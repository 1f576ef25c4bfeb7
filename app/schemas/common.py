from __future__ import annotations

from enum import Enum


class PlanType(str, Enum):
    ESOP = "ESOP"
    RSU = "RSU"
    RSA = "RSA"


class PortfolioType(str, Enum):
    COMPANY_RESERVED = "company_reserved"
    EMPLOYEE_VESTED = "employee_vested"
    COMPANY_CASH = "company_cash"
    EMPLOYEE_CASH = "employee_cash"

    @property
    def holds_cash(self) -> bool:
        return self in (PortfolioType.COMPANY_CASH, PortfolioType.EMPLOYEE_CASH)


class VestingEventStatus(str, Enum):
    PENDING = "pending"
    DUE = "due"
    VESTED = "vested"
    PENDING_EXERCISE = "pending_exercise"
    EXERCISED = "exercised"
    TRANSFERRED = "transferred"
    FORFEITED = "forfeited"
    CANCELLED = "cancelled"


class ExerciseOrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"
    CANCELLED = "cancelled"

    @classmethod
    def active(cls) -> tuple["ExerciseOrderStatus", ...]:
        return (cls.PENDING, cls.APPROVED)


class CashTransferType(str, Enum):
    COMPANY_DEPOSIT = "company_deposit"
    EMPLOYEE_DEPOSIT = "employee_deposit"
    EXERCISE_SETTLEMENT = "exercise_settlement"


class CashTransferStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"


class ShareTransferType(str, Enum):
    VESTING = "vesting"
    FORFEITURE = "forfeiture"
    EXERCISE = "exercise"
    CANCELLATION = "cancellation"
