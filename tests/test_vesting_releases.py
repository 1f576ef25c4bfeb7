from uuid import uuid4

import pytest

from app.models.employee import Employee
from app.models.portfolio import Portfolio
from app.models.share_transfer import ShareTransfer
from app.models.vesting_event import VestingEvent
from app.schemas.common import PortfolioType, VestingEventStatus
from app.services import vesting_releases
from app.services.authz import SYSTEM_ACTOR
from app.services.ledger_errors import ConflictError, InvalidStateError
from conftest import FakeResult, entity_handler, make_event, make_portfolio, update_handler


def _vesting_events_handler(events):
    """Serve the id listing, then each event in turn for the per-event lock."""
    pending = list(events)

    def _handler(stmt):
        descriptions = getattr(stmt, "column_descriptions", None)
        if not descriptions or descriptions[0].get("entity") is not VestingEvent:
            return None
        if descriptions[0].get("name") == "id":
            return FakeResult(items=[event.id for event in events])
        return FakeResult(scalar=pending.pop(0) if pending else None)

    return _handler


def _seed(fake_db, employee, events, *, reserve_shares=1000, with_vested=True, rowcount=1):
    reserve = make_portfolio(PortfolioType.COMPANY_RESERVED, total_shares=reserve_shares)
    vested = make_portfolio(PortfolioType.EMPLOYEE_VESTED, employee_id=employee.id) if with_vested else None
    locked = [reserve] + ([vested] if vested is not None else [])
    fake_db.on_execute(update_handler(VestingEvent, FakeResult(rowcount=rowcount)))
    fake_db.on_execute(_vesting_events_handler(events))
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(items=locked)))
    fake_db.on_execute(entity_handler(Employee, FakeResult(scalar=employee)))
    return reserve, vested


def _rsu_event(employee, shares=100):
    return make_event(
        employee_id=employee.id,
        status=VestingEventStatus.VESTED,
        requires_exercise=False,
        exercise_price=None,
        shares_to_vest=shares,
    )


@pytest.mark.asyncio
async def test_release_moves_reserve_shares_to_employee(fake_db, employee):
    event = _rsu_event(employee)
    reserve, vested = _seed(fake_db, employee, [event])

    transfer = await vesting_releases.release_event(fake_db, event.id, actor=SYSTEM_ACTOR)

    assert reserve.available_shares == 900
    assert vested.total_shares == 100
    assert vested.available_shares == 100
    assert event.status == VestingEventStatus.TRANSFERRED.value
    assert transfer.transfer_type == "vesting"
    assert transfer.vesting_event_id == event.id
    assert transfer.processed_by_system is True
    assert transfer.processed_by is None
    assert fake_db.commits == 1


@pytest.mark.asyncio
async def test_release_requires_vested_status(fake_db, employee):
    event = make_event(employee_id=employee.id, status=VestingEventStatus.DUE, requires_exercise=False)
    _seed(fake_db, employee, [event])

    with pytest.raises(InvalidStateError):
        await vesting_releases.release_event(fake_db, event.id, actor=SYSTEM_ACTOR)
    assert not fake_db.added_of(ShareTransfer)


@pytest.mark.asyncio
async def test_release_conflict_when_event_already_moved(fake_db, employee):
    event = _rsu_event(employee)
    _seed(fake_db, employee, [event], rowcount=0)

    with pytest.raises(ConflictError):
        await vesting_releases.release_event(fake_db, event.id, actor=SYSTEM_ACTOR)
    assert fake_db.rolled_back
    assert event.status == VestingEventStatus.VESTED.value


@pytest.mark.asyncio
async def test_release_batch_skips_events_the_reserve_cannot_cover(fake_db, employee):
    first, second = _rsu_event(employee), _rsu_event(employee)
    reserve, vested = _seed(fake_db, employee, [first, second], reserve_shares=150)

    result = await vesting_releases.release_vested_events(fake_db, actor=SYSTEM_ACTOR)

    assert result.released == [first.id]
    assert result.skipped == {str(second.id): "insufficient_shares"}
    assert first.status == VestingEventStatus.TRANSFERRED.value
    assert second.status == VestingEventStatus.VESTED.value
    assert reserve.available_shares == 50
    assert vested.total_shares == 100
    assert fake_db.commits == 1


@pytest.mark.asyncio
async def test_release_creates_vested_portfolio_when_missing(fake_db, employee):
    event = _rsu_event(employee)
    _seed(fake_db, employee, [event], with_vested=False)

    transfer = await vesting_releases.release_event(fake_db, event.id, actor=SYSTEM_ACTOR)

    created = [p for p in fake_db.added_of(Portfolio) if p.portfolio_type == "employee_vested"]
    assert len(created) == 1
    assert transfer.to_portfolio_id == created[0].id
    assert created[0].total_shares == 100


@pytest.mark.asyncio
async def test_release_batch_with_nothing_vested(fake_db, employee):
    _seed(fake_db, employee, [])

    result = await vesting_releases.release_vested_events(fake_db, actor=SYSTEM_ACTOR, company_id=uuid4())

    assert result.released == []
    assert result.skipped == {}


@pytest.mark.asyncio
async def test_release_batch_skips_event_released_by_another_run(fake_db, employee):
    first, second = _rsu_event(employee), _rsu_event(employee)
    first.status = VestingEventStatus.TRANSFERRED.value
    reserve, vested = _seed(fake_db, employee, [first, second])

    result = await vesting_releases.release_vested_events(fake_db, actor=SYSTEM_ACTOR)

    assert result.released == [second.id]
    assert result.skipped == {str(first.id): "conflict"}
    assert reserve.available_shares == 900
    assert vested.total_shares == 100
    assert len(fake_db.added_of(ShareTransfer)) == 1
    assert fake_db.commits == 1


@pytest.mark.asyncio
async def test_release_of_already_transferred_event_is_a_conflict(fake_db, employee):
    event = _rsu_event(employee)
    event.status = VestingEventStatus.TRANSFERRED.value
    _seed(fake_db, employee, [event])

    with pytest.raises(ConflictError):
        await vesting_releases.release_event(fake_db, event.id, actor=SYSTEM_ACTOR)
    assert fake_db.rolled_back
    assert not fake_db.added_of(ShareTransfer)
