from datetime import date, timedelta
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql import operators
from sqlalchemy.sql.elements import BinaryExpression
from sqlalchemy.sql.visitors import iterate

from app.models.vesting_event import VestingEvent
from app.schemas.common import VestingEventStatus
from app.services import vesting_refresher
from app.services.authz import SYSTEM_ACTOR
from app.services.ledger_errors import InvalidStateError, StoreUnavailableError
from conftest import COMPANY_ID, FakeResult, make_event, sequence_handler


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def test_refresh_statements_apply_both_rules_in_order():
    as_of = date(2025, 3, 1)
    due, esop, other = vesting_refresher.build_refresh_statements(as_of, COMPANY_ID)

    due_sql = _sql(due)
    assert "UPDATE vesting_events SET status=" in due_sql
    assert "vesting_events.vesting_date <=" in due_sql
    assert "RETURNING vesting_events.id" in due_sql
    assert "pending" in due.compile().params.values()

    esop_sql = _sql(esop)
    assert "incentive_plans.plan_type" in esop_sql
    assert "IN (SELECT grants.id" in esop_sql

    other_sql = _sql(other)
    assert "NOT IN (SELECT grants.id" in other_sql

    for stmt in (due, esop, other):
        assert "vesting_events.company_id" in _sql(stmt)


def test_refresh_statements_without_company_cover_every_company():
    for stmt in vesting_refresher.build_refresh_statements(date(2025, 3, 1)):
        assert "vesting_events.company_id" not in _sql(stmt)


@pytest.mark.asyncio
async def test_esop_event_due_yesterday_reaches_pending_exercise_in_one_call(fake_db, approver_actor):
    event_id = uuid4()
    fake_db.on_execute(
        sequence_handler(
            [
                FakeResult(items=[event_id]),
                FakeResult(items=[event_id]),
                FakeResult(items=[]),
            ]
        )
    )
    yesterday = date.today() - timedelta(days=1)

    result = await vesting_refresher.refresh(fake_db, actor=approver_actor, as_of=yesterday)

    assert result.became_due == 1
    assert result.awaiting_exercise == 1
    assert result.vested == 0
    assert result.advanced == 1
    assert len(fake_db.statements) == 3
    assert fake_db.commits == 1


class VestingTable:
    """In-memory vesting_events rows driven by the refresh statements' own status filters.

    The status a statement selects on is read from its WHERE clause and the
    status it writes from its SET values; the date and plan predicates are
    applied by statement position within a pass.
    """

    def __init__(self, as_of, rows):
        self.as_of = as_of
        self.rows = rows
        self.executed = 0

    @staticmethod
    def source_status(stmt):
        for node in iterate(stmt.whereclause):
            if (
                isinstance(node, BinaryExpression)
                and node.operator is operators.eq
                and getattr(getattr(node.left, "table", None), "name", None) == VestingEvent.__tablename__
                and getattr(node.left, "key", None) == "status"
            ):
                return node.right.value
        return None

    def __call__(self, stmt):
        rule = self.executed % 3
        self.executed += 1
        source = self.source_status(stmt)
        target = stmt.compile().params["status"]
        moved = []
        for row in self.rows:
            if row["status"] != source:
                continue
            if rule == 0 and row["vesting_date"] > self.as_of:
                continue
            if rule == 1 and not row["esop"]:
                continue
            if rule == 2 and row["esop"]:
                continue
            row["status"] = target
            moved.append(row["id"])
        return FakeResult(items=moved)


def test_refresh_statements_never_match_their_own_output():
    for stmt in vesting_refresher.build_refresh_statements(date(2025, 3, 1), COMPANY_ID):
        source = VestingTable.source_status(stmt)
        target = stmt.compile().params["status"]
        assert source is not None
        assert source != target


@pytest.mark.asyncio
async def test_refresh_is_idempotent(fake_db, approver_actor):
    as_of = date(2025, 3, 1)
    rows = [
        {"id": uuid4(), "status": "pending", "vesting_date": date(2025, 2, 28), "esop": True},
        {"id": uuid4(), "status": "pending", "vesting_date": date(2025, 1, 1), "esop": False},
        {"id": uuid4(), "status": "pending", "vesting_date": date(2025, 6, 1), "esop": False},
        {"id": uuid4(), "status": "pending_exercise", "vesting_date": date(2024, 1, 1), "esop": True},
    ]
    fake_db.on_execute(VestingTable(as_of, rows))

    first = await vesting_refresher.refresh(fake_db, actor=approver_actor, as_of=as_of)
    after_first = [row["status"] for row in rows]
    second = await vesting_refresher.refresh(fake_db, actor=approver_actor, as_of=as_of)

    assert first.advanced == 2
    assert first.awaiting_exercise == 1
    assert first.vested == 1
    assert after_first == ["pending_exercise", "vested", "pending", "pending_exercise"]
    assert second.advanced == 0
    assert [row["status"] for row in rows] == after_first


@pytest.mark.asyncio
async def test_refresh_counts_distinct_events(fake_db, approver_actor):
    rsu_id, esop_id = uuid4(), uuid4()
    fake_db.on_execute(
        sequence_handler(
            [
                FakeResult(items=[rsu_id, esop_id]),
                FakeResult(items=[esop_id]),
                FakeResult(items=[rsu_id]),
            ]
        )
    )

    result = await vesting_refresher.refresh(fake_db, actor=approver_actor, as_of=date(2025, 1, 1))

    assert result.advanced == 2
    assert result.vested == 1


@pytest.mark.asyncio
async def test_user_refresh_is_scoped_to_own_company(fake_db, approver_actor):
    fake_db.on_execute_return(FakeResult(items=[]))

    await vesting_refresher.refresh(fake_db, actor=approver_actor)

    for stmt in fake_db.statements:
        assert COMPANY_ID in stmt.compile().params.values()


@pytest.mark.asyncio
async def test_system_refresh_spans_all_companies(fake_db):
    fake_db.on_execute_return(FakeResult(items=[]))

    await vesting_refresher.refresh(fake_db, actor=SYSTEM_ACTOR)

    for stmt in fake_db.statements:
        assert "vesting_events.company_id" not in _sql(stmt)


@pytest.mark.asyncio
async def test_store_outage_surfaces_as_store_unavailable(fake_db, approver_actor):
    from sqlalchemy.exc import OperationalError

    def _boom(_stmt):
        raise OperationalError("UPDATE vesting_events", {}, ConnectionRefusedError())

    fake_db.on_execute(_boom)

    with pytest.raises(StoreUnavailableError):
        await vesting_refresher.refresh(fake_db, actor=approver_actor)
    assert fake_db.rolled_back


def test_vesting_transitions_are_forward_only():
    event = make_event(status=VestingEventStatus.EXERCISED)
    with pytest.raises(InvalidStateError):
        vesting_refresher.ensure_vesting_transition(event, VestingEventStatus.PENDING)

    vested = make_event(status=VestingEventStatus.VESTED, requires_exercise=False)
    vesting_refresher.ensure_vesting_transition(vested, VestingEventStatus.TRANSFERRED)
