"""Exercise order lifecycle: create, approve, reject, cancel and settle.

Settlement (``process_order``) runs as a single database transaction:

1. resolve the employee and company cash portfolios
2. re-check the employee's balance against the order cost
3. debit employee cash, credit company cash
4. record the exercise_settlement cash transfer
5. resolve the company reserve and the employee vested portfolio (created on first exercise)
6. move shares from the reserve to the employee
7. record the exercise share transfer
8. flip the order approved -> processed with a conditional update
9. mark the vesting event exercised

Order and portfolio rows are locked up front; portfolio writes are
additionally version checked. Any failure rolls back every step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.cash_transfer import CashTransfer
from app.models.employee import Employee
from app.models.exercise_order import ExerciseOrder
from app.models.grant import Grant
from app.models.portfolio import Portfolio
from app.models.share_transfer import ShareTransfer
from app.models.vesting_event import VestingEvent
from app.schemas.common import (
    CashTransferStatus,
    CashTransferType,
    ExerciseOrderStatus,
    ShareTransferType,
    VestingEventStatus,
)
from app.services import ledger_store, portfolios
from app.services.audit import model_snapshot, record_audit_log
from app.services.authz import Actor, is_approver, require_approver, require_company, require_employee
from app.services.ledger_errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    PortfolioNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS: dict[ExerciseOrderStatus, frozenset[ExerciseOrderStatus]] = {
    ExerciseOrderStatus.PENDING: frozenset(
        {ExerciseOrderStatus.APPROVED, ExerciseOrderStatus.REJECTED, ExerciseOrderStatus.CANCELLED}
    ),
    ExerciseOrderStatus.APPROVED: frozenset({ExerciseOrderStatus.PROCESSED}),
    ExerciseOrderStatus.PROCESSED: frozenset(),
    ExerciseOrderStatus.REJECTED: frozenset(),
    ExerciseOrderStatus.CANCELLED: frozenset(),
}

ORDER_AUDIT_FIELDS = (
    "status",
    "rejection_reason",
    "approved_by",
    "approved_at",
    "processed_by",
    "processed_at",
)


@dataclass(frozen=True)
class SettlementResult:
    order: ExerciseOrder
    cash_transfer: CashTransfer
    share_transfer: ShareTransfer
    employee_cash: Portfolio
    company_cash: Portfolio
    company_reserved: Portfolio
    employee_vested: Portfolio


def ensure_transition(order: ExerciseOrder, target: ExerciseOrderStatus) -> ExerciseOrderStatus:
    current = ExerciseOrderStatus(order.status)
    if target not in ORDER_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Exercise order cannot move from {current.value} to {target.value}",
            details={"order_id": str(order.id), "status": current.value, "target": target.value},
        )
    return current


def is_exercisable(event: VestingEvent) -> bool:
    status = VestingEventStatus(event.status)
    if status is VestingEventStatus.PENDING_EXERCISE:
        return True
    return status is VestingEventStatus.VESTED and bool(event.requires_exercise)


def compute_exercise_cost(shares: int, price_per_share) -> Decimal:
    price = price_per_share if isinstance(price_per_share, Decimal) else Decimal(str(price_per_share))
    return portfolios.as_money(Decimal(int(shares)) * price)


def _order_snapshot(order: ExerciseOrder) -> dict:
    return model_snapshot(order, include=ORDER_AUDIT_FIELDS)


async def _resolve_exercise_price(db: AsyncSession, event: VestingEvent) -> Decimal:
    if event.exercise_price is not None:
        return Decimal(str(event.exercise_price))
    grant = await ledger_store.get(db, Grant, event.grant_id, company_id=event.company_id)
    return Decimal(str(grant.exercise_price))


async def _has_active_order(db: AsyncSession, vesting_event_id: UUID) -> bool:
    stmt = select(ExerciseOrder.id).where(
        ExerciseOrder.vesting_event_id == vesting_event_id,
        ExerciseOrder.status.in_([status.value for status in ExerciseOrderStatus.active()]),
    )
    result = await ledger_store.execute(db, stmt)
    return result.scalar_one_or_none() is not None


async def create_order(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    vesting_event_id: UUID,
    *,
    actor: Actor,
) -> ExerciseOrder:
    """Record an exercise request for one vesting event.

    Creation is never blocked on funds: the balance and a sufficient_funds flag
    are snapshotted on the order so operators can see attempted exercises.
    """
    require_company(actor, ctx.company_id)
    async with ledger_store.transaction(db):
        event = await ledger_store.get(
            db, VestingEvent, vesting_event_id, company_id=ctx.company_id, for_update=True
        )
        require_employee(actor, event.employee_id, action="exercise_order.create")
        if not is_exercisable(event):
            raise InvalidStateError(
                "Vesting event is not awaiting exercise",
                details={"vesting_event_id": str(event.id), "status": event.status},
            )
        if await _has_active_order(db, event.id):
            raise ConflictError(
                "An exercise order is already open for this vesting event",
                details={"vesting_event_id": str(event.id)},
            )

        cash = await portfolios.get_employee_cash(db, ctx.company_id, event.employee_id)
        price = await _resolve_exercise_price(db, event)
        total = compute_exercise_cost(event.shares_to_vest, price)
        balance = portfolios.as_money(cash.cash_balance)

        order = ExerciseOrder(
            company_id=ctx.company_id,
            order_number=portfolios.reference_number("EX", ctx.company_id),
            employee_id=event.employee_id,
            grant_id=event.grant_id,
            vesting_event_id=event.id,
            shares_to_exercise=int(event.shares_to_vest),
            exercise_price_per_share=price,
            total_exercise_cost=total,
            cash_portfolio_id=cash.id,
            cash_balance_at_order=balance,
            sufficient_funds=balance >= total,
            status=ExerciseOrderStatus.PENDING.value,
            created_by=actor.id,
        )
        await ledger_store.insert(db, order)
        event.status = VestingEventStatus.PENDING_EXERCISE.value
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="exercise_order.created",
            resource_type="exercise_order",
            resource_id=order.id,
            new_value=model_snapshot(order),
        )

    logger.info(
        "Exercise order created sufficient_funds=%s",
        order.sufficient_funds,
        extra={"order_number": order.order_number},
    )
    return order


async def approve_order(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    order_id: UUID,
    *,
    actor: Actor,
) -> ExerciseOrder:
    require_company(actor, ctx.company_id)
    require_approver(actor, action="exercise_order.approve")
    async with ledger_store.transaction(db):
        order = await ledger_store.get(db, ExerciseOrder, order_id, company_id=ctx.company_id, for_update=True)
        ensure_transition(order, ExerciseOrderStatus.APPROVED)
        before = _order_snapshot(order)
        order.status = ExerciseOrderStatus.APPROVED.value
        order.approved_by = actor.id
        order.approved_at = datetime.now(timezone.utc)
        await ledger_store.flush(db)
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="exercise_order.approved",
            resource_type="exercise_order",
            resource_id=order.id,
            old_value=before,
            new_value=_order_snapshot(order),
        )
    return order


async def _revert_vesting_event(db: AsyncSession, order: ExerciseOrder) -> None:
    event = await ledger_store.get(
        db, VestingEvent, order.vesting_event_id, company_id=order.company_id, for_update=True
    )
    event.status = VestingEventStatus.PENDING_EXERCISE.value


async def reject_order(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    order_id: UUID,
    reason: str,
    *,
    actor: Actor,
) -> ExerciseOrder:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError("Rejection reason is required", details={"field": "reason"})
    require_company(actor, ctx.company_id)
    require_approver(actor, action="exercise_order.reject")
    async with ledger_store.transaction(db):
        order = await ledger_store.get(db, ExerciseOrder, order_id, company_id=ctx.company_id, for_update=True)
        ensure_transition(order, ExerciseOrderStatus.REJECTED)
        before = _order_snapshot(order)
        order.status = ExerciseOrderStatus.REJECTED.value
        order.rejection_reason = cleaned
        await _revert_vesting_event(db, order)
        await ledger_store.flush(db)
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="exercise_order.rejected",
            resource_type="exercise_order",
            resource_id=order.id,
            old_value=before,
            new_value=_order_snapshot(order),
        )
    return order


async def cancel_order(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    order_id: UUID,
    *,
    actor: Actor,
) -> ExerciseOrder:
    """Withdraw a pending order; open to the owning employee and to approvers."""
    require_company(actor, ctx.company_id)
    async with ledger_store.transaction(db):
        order = await ledger_store.get(db, ExerciseOrder, order_id, company_id=ctx.company_id, for_update=True)
        if actor.employee_id != order.employee_id and not is_approver(actor):
            raise AuthorizationError(
                "Only the owning employee or an approver may cancel this order",
                details={"action": "exercise_order.cancel"},
            )
        ensure_transition(order, ExerciseOrderStatus.CANCELLED)
        before = _order_snapshot(order)
        order.status = ExerciseOrderStatus.CANCELLED.value
        await _revert_vesting_event(db, order)
        await ledger_store.flush(db)
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="exercise_order.cancelled",
            resource_type="exercise_order",
            resource_id=order.id,
            old_value=before,
            new_value=_order_snapshot(order),
        )
    return order


async def process_order(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    order_id: UUID,
    *,
    actor: Actor,
) -> SettlementResult:
    require_company(actor, ctx.company_id)
    require_approver(actor, action="exercise_order.process")
    async with ledger_store.transaction(db):
        order = await ledger_store.get(db, ExerciseOrder, order_id, company_id=ctx.company_id, for_update=True)
        ensure_transition(order, ExerciseOrderStatus.PROCESSED)
        event = await ledger_store.get(
            db, VestingEvent, order.vesting_event_id, company_id=ctx.company_id, for_update=True
        )
        amount = portfolios.as_money(order.total_exercise_cost)
        shares = int(order.shares_to_exercise)
        before = _order_snapshot(order)

        held = await portfolios.lock_settlement_portfolios(
            db, order.company_id, order.employee_id, cash_portfolio_id=order.cash_portfolio_id
        )
        if held.employee_cash is None or held.company_cash is None:
            raise PortfolioNotFoundError(
                "Cash portfolio missing for settlement",
                details={
                    "employee_cash": held.employee_cash is not None,
                    "company_cash": held.company_cash is not None,
                },
            )

        portfolios.debit_cash(held.employee_cash, amount)
        portfolios.credit_cash(held.company_cash, amount)

        cash_transfer = CashTransfer(
            company_id=order.company_id,
            transfer_number=portfolios.reference_number("CT", order.company_id),
            transfer_type=CashTransferType.EXERCISE_SETTLEMENT.value,
            from_portfolio_id=held.employee_cash.id,
            to_portfolio_id=held.company_cash.id,
            employee_id=order.employee_id,
            exercise_order_id=order.id,
            amount=amount,
            currency=held.employee_cash.currency or held.company_cash.currency or "SAR",
            status=CashTransferStatus.PROCESSED.value,
            description=f"Exercise settlement for {order.order_number}",
            approved_by=actor.id,
            approved_at=datetime.now(timezone.utc),
            created_by=actor.id,
        )
        await ledger_store.insert(db, cash_transfer)

        if held.company_reserved is None:
            raise PortfolioNotFoundError(
                "Company reserved share portfolio missing",
                details={"company_id": str(order.company_id)},
            )
        vested = held.employee_vested
        if vested is None:
            employee = await ledger_store.get(db, Employee, order.employee_id, company_id=order.company_id)
            vested = await portfolios.create_employee_vested(db, employee)

        portfolios.move_shares(held.company_reserved, vested, shares)

        now = datetime.now(timezone.utc)
        share_transfer = ShareTransfer(
            company_id=order.company_id,
            transfer_number=portfolios.reference_number("TRF", order.company_id),
            grant_id=order.grant_id,
            employee_id=order.employee_id,
            vesting_event_id=order.vesting_event_id,
            exercise_order_id=order.id,
            from_portfolio_id=held.company_reserved.id,
            to_portfolio_id=vested.id,
            shares_transferred=shares,
            transfer_type=ShareTransferType.EXERCISE.value,
            transfer_date=date.today(),
            status="transferred",
            processed_at=now,
            processed_by=actor.id,
            processed_by_system=actor.is_system,
        )
        await ledger_store.insert(db, share_transfer)

        flipped = await ledger_store.execute(
            db,
            update(ExerciseOrder)
            .where(
                ExerciseOrder.id == order.id,
                ExerciseOrder.status == ExerciseOrderStatus.APPROVED.value,
            )
            .values(
                status=ExerciseOrderStatus.PROCESSED.value,
                processed_at=now,
                processed_by=actor.id,
            )
            .execution_options(synchronize_session=False),
        )
        if flipped.rowcount != 1:
            raise ConflictError(
                "Exercise order was settled concurrently",
                details={"order_id": str(order.id)},
            )
        order.status = ExerciseOrderStatus.PROCESSED.value
        order.processed_at = now
        order.processed_by = actor.id

        event.status = VestingEventStatus.EXERCISED.value
        await ledger_store.flush(db)

        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="exercise_order.processed",
            resource_type="exercise_order",
            resource_id=order.id,
            old_value=before,
            new_value={
                **_order_snapshot(order),
                "cash_transfer_id": str(cash_transfer.id),
                "share_transfer_id": str(share_transfer.id),
                "amount": str(amount),
                "shares": shares,
            },
        )

    logger.info("Exercise order settled", extra={"order_number": order.order_number})
    return SettlementResult(
        order=order,
        cash_transfer=cash_transfer,
        share_transfer=share_transfer,
        employee_cash=held.employee_cash,
        company_cash=held.company_cash,
        company_reserved=held.company_reserved,
        employee_vested=vested,
    )


async def get_order(db: AsyncSession, ctx: deps.CompanyContext, order_id: UUID) -> ExerciseOrder:
    return await ledger_store.get(db, ExerciseOrder, order_id, company_id=ctx.company_id)


async def list_orders(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    *,
    status: ExerciseOrderStatus | None = None,
    employee_id: UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[ExerciseOrder], int]:
    stmt = ledger_store.query(ExerciseOrder, ctx.company_id)
    count_stmt = select(func.count(ExerciseOrder.id)).where(ExerciseOrder.company_id == ctx.company_id)
    if status is not None:
        stmt = stmt.where(ExerciseOrder.status == status.value)
        count_stmt = count_stmt.where(ExerciseOrder.status == status.value)
    if employee_id is not None:
        stmt = stmt.where(ExerciseOrder.employee_id == employee_id)
        count_stmt = count_stmt.where(ExerciseOrder.employee_id == employee_id)
    stmt = stmt.order_by(ExerciseOrder.created_at.desc()).offset(offset).limit(limit)
    items = (await ledger_store.execute(db, stmt)).scalars().all()
    total = (await ledger_store.execute(db, count_stmt)).scalar_one_or_none() or 0
    return list(items), int(total)


async def order_counts(
    db: AsyncSession, ctx: deps.CompanyContext, *, employee_id: UUID | None = None
) -> dict[str, int]:
    stmt = (
        select(ExerciseOrder.status, func.count(ExerciseOrder.id))
        .where(ExerciseOrder.company_id == ctx.company_id)
        .group_by(ExerciseOrder.status)
    )
    if employee_id is not None:
        stmt = stmt.where(ExerciseOrder.employee_id == employee_id)
    rows = (await ledger_store.execute(db, stmt)).all()
    counts = {status.value: 0 for status in ExerciseOrderStatus}
    for status, count in rows:
        counts[str(status)] = int(count)
    return counts
