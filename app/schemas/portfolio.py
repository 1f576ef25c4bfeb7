from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import CashTransferStatus, CashTransferType, PortfolioType, ShareTransferType


class PortfolioOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    employee_id: UUID | None = None
    portfolio_type: PortfolioType
    portfolio_number: str
    total_shares: int
    available_shares: int
    locked_shares: int
    cash_balance: Decimal
    currency: str | None = None
    version: int | None = None


class DepositRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=15, decimal_places=2)
    description: str | None = Field(default=None, max_length=500)
    # Set by company approvers depositing into the company account.
    company_account: bool = False


class TransferReject(BaseModel):
    reason: str = Field(default="", max_length=2000)


class CashTransferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    transfer_number: str
    transfer_type: CashTransferType
    from_portfolio_id: UUID | None = None
    to_portfolio_id: UUID | None = None
    employee_id: UUID | None = None
    exercise_order_id: UUID | None = None
    amount: Decimal
    currency: str
    status: CashTransferStatus
    description: str | None = None
    rejection_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    created_at: datetime | None = None


class ShareTransferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    transfer_number: str
    grant_id: UUID
    employee_id: UUID
    from_portfolio_id: UUID
    to_portfolio_id: UUID
    shares_transferred: int
    transfer_type: ShareTransferType
    transfer_date: date
    status: str
    processed_by_system: bool


class CashLedgerEntry(BaseModel):
    transfer_id: UUID
    transfer_number: str
    transfer_type: CashTransferType
    status: CashTransferStatus
    signed_amount: Decimal
    currency: str
    created_at: datetime | None = None
