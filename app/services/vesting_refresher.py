from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.models.grant import Grant
from app.models.incentive_plan import IncentivePlan
from app.models.vesting_event import VestingEvent
from app.schemas.common import PlanType, VestingEventStatus
from app.services import ledger_store
from app.services.authz import Actor
from app.services.ledger_errors import InvalidStateError

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()

# Forward-only lifecycle; forfeited/cancelled are set by operators, never here.
VESTING_TRANSITIONS: dict[VestingEventStatus, frozenset[VestingEventStatus]] = {
    VestingEventStatus.PENDING: frozenset({VestingEventStatus.DUE}),
    VestingEventStatus.DUE: frozenset({VestingEventStatus.VESTED, VestingEventStatus.PENDING_EXERCISE}),
    VestingEventStatus.VESTED: frozenset({VestingEventStatus.TRANSFERRED, VestingEventStatus.PENDING_EXERCISE}),
    VestingEventStatus.PENDING_EXERCISE: frozenset({VestingEventStatus.EXERCISED}),
    VestingEventStatus.EXERCISED: frozenset(),
    VestingEventStatus.TRANSFERRED: frozenset(),
    VestingEventStatus.FORFEITED: frozenset(),
    VestingEventStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class RefreshResult:
    as_of: date
    became_due: int
    awaiting_exercise: int
    vested: int
    advanced: int


def ensure_vesting_transition(event: VestingEvent, target: VestingEventStatus) -> None:
    current = VestingEventStatus(event.status)
    if target not in VESTING_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Vesting event cannot move from {current.value} to {target.value}",
            details={"vesting_event_id": str(event.id), "status": current.value},
        )


def _esop_grants():
    return (
        select(Grant.id)
        .join(IncentivePlan, IncentivePlan.id == Grant.plan_id)
        .where(IncentivePlan.plan_type == PlanType.ESOP.value)
    )


def _advance(
    source: VestingEventStatus,
    target: VestingEventStatus,
    *,
    company_id: UUID | None,
):
    stmt = (
        update(VestingEvent)
        .where(VestingEvent.status == source.value)
        .values(status=target.value)
        .returning(VestingEvent.id)
        .execution_options(synchronize_session=False)
    )
    if company_id is not None:
        stmt = stmt.where(VestingEvent.company_id == company_id)
    return stmt


def build_refresh_statements(as_of: date, company_id: UUID | None = None) -> list:
    """The three conditional updates of one refresh pass, in execution order."""
    became_due = _advance(VestingEventStatus.PENDING, VestingEventStatus.DUE, company_id=company_id).where(
        VestingEvent.vesting_date <= as_of
    )
    esop_due = _advance(
        VestingEventStatus.DUE, VestingEventStatus.PENDING_EXERCISE, company_id=company_id
    ).where(VestingEvent.grant_id.in_(_esop_grants()))
    other_due = _advance(VestingEventStatus.DUE, VestingEventStatus.VESTED, company_id=company_id).where(
        VestingEvent.grant_id.not_in(_esop_grants())
    )
    return [became_due, esop_due, other_due]


async def refresh(
    db: AsyncSession,
    *,
    actor: Actor,
    as_of: date | None = None,
    company_id: UUID | None = None,
) -> RefreshResult:
    """Advance pending -> due, then due -> pending_exercise (ESOP) or vested (RSU/RSA).

    Both rules run in one pass and one transaction, so an ESOP event dated
    yesterday lands in pending_exercise after a single call. Every statement
    is conditional on the current status, which keeps concurrent refreshes
    and repeated calls idempotent.
    """
    as_of = as_of or date.today()
    if company_id is None and not actor.is_system:
        company_id = actor.company_id

    due_stmt, esop_stmt, other_stmt = build_refresh_statements(as_of, company_id)
    async with ledger_store.transaction(db):
        due_ids = set((await ledger_store.execute(db, due_stmt)).scalars().all())
        esop_ids = set((await ledger_store.execute(db, esop_stmt)).scalars().all())
        vested_ids = set((await ledger_store.execute(db, other_stmt)).scalars().all())

    advanced = due_ids | esop_ids | vested_ids
    result = RefreshResult(
        as_of=as_of,
        became_due=len(due_ids),
        awaiting_exercise=len(esop_ids),
        vested=len(vested_ids),
        advanced=len(advanced),
    )
    if result.advanced:
        audit_logger.info(
            "vesting.refreshed",
            extra={"advanced": result.advanced, "resource_type": "vesting_event", "system": actor.is_system},
        )
    logger.info(
        "Vesting refresh as_of=%s company=%s advanced=%s",
        as_of.isoformat(),
        company_id or "*",
        result.advanced,
    )
    return result
