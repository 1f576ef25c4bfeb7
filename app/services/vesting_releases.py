from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee import Employee
from app.models.share_transfer import ShareTransfer
from app.models.vesting_event import VestingEvent
from app.schemas.common import ShareTransferType, VestingEventStatus
from app.services import ledger_store, portfolios
from app.services.audit import record_audit_log
from app.services.authz import Actor
from app.services.ledger_errors import (
    ConflictError,
    InsufficientSharesError,
    PortfolioNotFoundError,
)
from app.services.vesting_refresher import ensure_vesting_transition

logger = logging.getLogger(__name__)

# Failures that leave one event in place without blocking the rest of the batch.
SKIPPABLE_ERRORS = (InsufficientSharesError, PortfolioNotFoundError, ConflictError)


@dataclass
class ReleaseResult:
    released: list[UUID] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


async def release_event(db: AsyncSession, event_id: UUID, *, actor: Actor) -> ShareTransfer:
    """Move the shares of one vested RSU/RSA event into the employee's vested portfolio."""
    async with ledger_store.transaction(db):
        event = await ledger_store.get(db, VestingEvent, event_id, for_update=True)
        if event.status == VestingEventStatus.TRANSFERRED.value:
            # Another release committed between the batch listing and this lock.
            raise ConflictError(
                "Vesting event was released concurrently",
                details={"vesting_event_id": str(event.id)},
            )
        ensure_vesting_transition(event, VestingEventStatus.TRANSFERRED)
        shares = int(event.shares_to_vest)

        held = await portfolios.lock_settlement_portfolios(db, event.company_id, event.employee_id)
        if held.company_reserved is None:
            raise PortfolioNotFoundError(
                "Company reserved share portfolio missing",
                details={"company_id": str(event.company_id)},
            )
        vested = held.employee_vested
        if vested is None:
            employee = await ledger_store.get(db, Employee, event.employee_id, company_id=event.company_id)
            vested = await portfolios.create_employee_vested(db, employee)

        portfolios.move_shares(held.company_reserved, vested, shares)

        now = datetime.now(timezone.utc)
        transfer = ShareTransfer(
            company_id=event.company_id,
            transfer_number=portfolios.reference_number("TRF", event.company_id),
            grant_id=event.grant_id,
            employee_id=event.employee_id,
            vesting_event_id=event.id,
            from_portfolio_id=held.company_reserved.id,
            to_portfolio_id=vested.id,
            shares_transferred=shares,
            transfer_type=ShareTransferType.VESTING.value,
            transfer_date=date.today(),
            status="transferred",
            processed_at=now,
            processed_by=None if actor.is_system else actor.id,
            processed_by_system=actor.is_system,
            notes="Automatic release on vesting",
        )
        await ledger_store.insert(db, transfer)

        flipped = await ledger_store.execute(
            db,
            update(VestingEvent)
            .where(
                VestingEvent.id == event.id,
                VestingEvent.status == VestingEventStatus.VESTED.value,
            )
            .values(status=VestingEventStatus.TRANSFERRED.value)
            .execution_options(synchronize_session=False),
        )
        if flipped.rowcount != 1:
            raise ConflictError(
                "Vesting event was released concurrently",
                details={"vesting_event_id": str(event.id)},
            )
        event.status = VestingEventStatus.TRANSFERRED.value
        await ledger_store.flush(db)
        record_audit_log(
            db,
            event.company_id,
            actor=actor,
            action="vesting_event.released",
            resource_type="vesting_event",
            resource_id=event.id,
            old_value={"status": VestingEventStatus.VESTED.value},
            new_value={"status": VestingEventStatus.TRANSFERRED.value, "share_transfer_id": str(transfer.id)},
        )
    return transfer


async def release_vested_events(
    db: AsyncSession,
    *,
    actor: Actor,
    company_id: UUID | None = None,
    limit: int = 500,
) -> ReleaseResult:
    """Release every vested event that needs no exercise, one transaction per event."""
    stmt = select(VestingEvent.id).where(
        VestingEvent.status == VestingEventStatus.VESTED.value,
        VestingEvent.requires_exercise.is_(False),
    )
    if company_id is not None:
        stmt = stmt.where(VestingEvent.company_id == company_id)
    stmt = stmt.order_by(VestingEvent.vesting_date, VestingEvent.id).limit(limit)
    event_ids = list((await ledger_store.execute(db, stmt)).scalars().all())
    # Close the read transaction before per-event writes.
    await db.rollback()

    result = ReleaseResult()
    for event_id in event_ids:
        try:
            await release_event(db, event_id, actor=actor)
        except SKIPPABLE_ERRORS as exc:
            logger.warning("Vesting release skipped event=%s code=%s", event_id, exc.code)
            result.skipped[str(event_id)] = exc.code
            continue
        result.released.append(event_id)

    if event_ids:
        logger.info(
            "Vesting release finished skipped=%s",
            len(result.skipped),
            extra={"released": len(result.released)},
        )
    return result
