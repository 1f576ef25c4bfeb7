from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.cash_transfer import CashTransfer
from app.models.portfolio import Portfolio
from app.schemas.common import CashTransferStatus, CashTransferType
from app.schemas.portfolio import CashLedgerEntry, DepositRequest
from app.services import ledger_store, portfolios
from app.services.audit import model_snapshot, record_audit_log
from app.services.authz import Actor, require_approver, require_company
from app.services.ledger_errors import (
    AuthorizationError,
    InvalidStateError,
    PortfolioNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TRANSFER_TRANSITIONS: dict[CashTransferStatus, frozenset[CashTransferStatus]] = {
    CashTransferStatus.PENDING: frozenset({CashTransferStatus.PROCESSED, CashTransferStatus.REJECTED}),
    CashTransferStatus.APPROVED: frozenset({CashTransferStatus.PROCESSED}),
    CashTransferStatus.PROCESSED: frozenset(),
    CashTransferStatus.REJECTED: frozenset(),
}

DEPOSIT_TYPES = frozenset({CashTransferType.COMPANY_DEPOSIT, CashTransferType.EMPLOYEE_DEPOSIT})

TRANSFER_AUDIT_FIELDS = ("status", "rejection_reason", "approved_by", "approved_at")


def _ensure_transition(transfer: CashTransfer, target: CashTransferStatus) -> None:
    current = CashTransferStatus(transfer.status)
    if target not in TRANSFER_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Cash transfer cannot move from {current.value} to {target.value}",
            details={"transfer_id": str(transfer.id), "status": current.value},
        )


async def request_deposit(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    payload: DepositRequest,
    *,
    actor: Actor,
) -> CashTransfer:
    """Create a pending deposit into the company cash account or the actor's own cash portfolio."""
    require_company(actor, ctx.company_id)
    amount = portfolios.as_money(payload.amount)
    if amount <= Decimal("0"):
        raise ValidationError("Deposit amount must be greater than zero", details={"amount": str(amount)})

    async with ledger_store.transaction(db):
        if payload.company_account:
            require_approver(actor, action="cash_transfer.company_deposit")
            target = await portfolios.get_company_cash(db, ctx.company_id)
            transfer_type = CashTransferType.COMPANY_DEPOSIT
            employee_id = None
        else:
            if actor.employee_id is None:
                raise AuthorizationError(
                    "Only employees may request employee deposits",
                    details={"action": "cash_transfer.employee_deposit"},
                )
            target = await portfolios.get_employee_cash(db, ctx.company_id, actor.employee_id)
            transfer_type = CashTransferType.EMPLOYEE_DEPOSIT
            employee_id = actor.employee_id

        transfer = CashTransfer(
            company_id=ctx.company_id,
            transfer_number=portfolios.reference_number("CT", ctx.company_id),
            transfer_type=transfer_type.value,
            from_portfolio_id=None,
            to_portfolio_id=target.id,
            employee_id=employee_id,
            amount=amount,
            currency=target.currency or "SAR",
            status=CashTransferStatus.PENDING.value,
            description=payload.description,
            created_by=actor.id,
        )
        await ledger_store.insert(db, transfer)
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="cash_transfer.requested",
            resource_type="cash_transfer",
            resource_id=transfer.id,
            new_value=model_snapshot(transfer),
        )
    return transfer


async def approve_transfer(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    transfer_id: UUID,
    *,
    actor: Actor,
) -> CashTransfer:
    """Approve a pending deposit and credit its target portfolio in the same transaction."""
    require_company(actor, ctx.company_id)
    require_approver(actor, action="cash_transfer.approve")
    async with ledger_store.transaction(db):
        transfer = await ledger_store.get(
            db, CashTransfer, transfer_id, company_id=ctx.company_id, for_update=True
        )
        if CashTransferType(transfer.transfer_type) not in DEPOSIT_TYPES:
            raise InvalidStateError(
                "Settlement transfers are not approvable",
                details={"transfer_id": str(transfer.id), "transfer_type": transfer.transfer_type},
            )
        _ensure_transition(transfer, CashTransferStatus.PROCESSED)
        if transfer.to_portfolio_id is None:
            raise PortfolioNotFoundError("Deposit has no target portfolio", details={"transfer_id": str(transfer.id)})
        target = await ledger_store.get(
            db,
            Portfolio,
            transfer.to_portfolio_id,
            company_id=ctx.company_id,
            for_update=True,
            error=PortfolioNotFoundError,
        )
        before = model_snapshot(transfer, include=TRANSFER_AUDIT_FIELDS)
        balance_before = portfolios.as_money(target.cash_balance)

        portfolios.credit_cash(target, transfer.amount)
        await ledger_store.update(
            db,
            transfer,
            {
                "status": CashTransferStatus.PROCESSED.value,
                "approved_by": actor.id,
                "approved_at": datetime.now(timezone.utc),
            },
        )

        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="cash_transfer.approved",
            resource_type="cash_transfer",
            resource_id=transfer.id,
            old_value={**before, "cash_balance": str(balance_before)},
            new_value={
                **model_snapshot(transfer, include=TRANSFER_AUDIT_FIELDS),
                "cash_balance": str(portfolios.as_money(target.cash_balance)),
            },
        )
    logger.info("Deposit approved", extra={"resource_id": str(transfer.id)})
    return transfer


async def reject_transfer(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    transfer_id: UUID,
    reason: str,
    *,
    actor: Actor,
) -> CashTransfer:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError("Rejection reason is required", details={"field": "reason"})
    require_company(actor, ctx.company_id)
    require_approver(actor, action="cash_transfer.reject")
    async with ledger_store.transaction(db):
        transfer = await ledger_store.get(
            db, CashTransfer, transfer_id, company_id=ctx.company_id, for_update=True
        )
        _ensure_transition(transfer, CashTransferStatus.REJECTED)
        before = model_snapshot(transfer, include=TRANSFER_AUDIT_FIELDS)
        await ledger_store.update(
            db, transfer, {"status": CashTransferStatus.REJECTED.value, "rejection_reason": cleaned}
        )
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="cash_transfer.rejected",
            resource_type="cash_transfer",
            resource_id=transfer.id,
            old_value=before,
            new_value=model_snapshot(transfer, include=TRANSFER_AUDIT_FIELDS),
        )
    return transfer


async def list_transfers(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    *,
    status: CashTransferStatus | None = None,
    employee_id: UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[CashTransfer]:
    stmt = ledger_store.query(CashTransfer, ctx.company_id)
    if status is not None:
        stmt = stmt.where(CashTransfer.status == status.value)
    if employee_id is not None:
        stmt = stmt.where(CashTransfer.employee_id == employee_id)
    stmt = stmt.order_by(CashTransfer.created_at.desc()).offset(offset).limit(limit)
    return list((await ledger_store.execute(db, stmt)).scalars().all())


def signed_amount(transfer: CashTransfer, portfolio_id: UUID) -> Decimal:
    amount = portfolios.as_money(transfer.amount)
    if transfer.from_portfolio_id == portfolio_id:
        return -amount
    return amount


async def cash_ledger(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    employee_id: UUID,
) -> list[CashLedgerEntry]:
    """An employee's cash movements: deposits positive, exercise settlements negative."""
    cash = await portfolios.get_employee_cash(db, ctx.company_id, employee_id)
    stmt = (
        ledger_store.query(CashTransfer, ctx.company_id)
        .where(or_(CashTransfer.to_portfolio_id == cash.id, CashTransfer.from_portfolio_id == cash.id))
        .order_by(CashTransfer.created_at.desc())
    )
    transfers = (await ledger_store.execute(db, stmt)).scalars().all()
    return [
        CashLedgerEntry(
            transfer_id=transfer.id,
            transfer_number=transfer.transfer_number,
            transfer_type=CashTransferType(transfer.transfer_type),
            status=CashTransferStatus(transfer.status),
            signed_amount=signed_amount(transfer, cash.id),
            currency=transfer.currency,
            created_at=transfer.created_at,
        )
        for transfer in transfers
    ]
