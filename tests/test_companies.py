from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.models.company import Company
from app.models.employee import Employee
from app.models.incentive_plan import IncentivePlan
from app.models.portfolio import Portfolio
from app.models.vesting_event import VestingEvent
from app.schemas.companies import CompanyCreate, EmployeeCreate, GrantCreate, VestingEventCreate
from app.services import companies, portfolios
from app.services.ledger_errors import AuthorizationError, ValidationError
from conftest import FakeResult, entity_handler, make_actor, make_company


def _plan(plan_type: str) -> IncentivePlan:
    return IncentivePlan(id=uuid4(), company_id=make_company().id, name=f"{plan_type} 2025", plan_type=plan_type)


@pytest.mark.asyncio
async def test_create_company_provisions_cash_and_reserve(fake_db):
    admin = make_actor(company_id=None, roles=["super_admin"])

    company = await companies.create_company(
        fake_db,
        CompanyCreate(name=" Acme ", slug="acme", currency="sar", reserved_shares=10000),
        actor=admin,
    )

    assert company.name == "Acme"
    assert company.currency == "SAR"
    created = {p.portfolio_type: p for p in fake_db.added_of(Portfolio)}
    code = portfolios.company_code(company.id)
    assert created["company_cash"].portfolio_number == f"CASH-COMP-{code}-000001"
    assert created["company_cash"].currency == "SAR"
    assert created["company_reserved"].portfolio_number == f"RSV-{code}-000001"
    assert created["company_reserved"].total_shares == 10000
    assert created["company_reserved"].available_shares == 10000
    assert created["company_reserved"].currency is None
    assert fake_db.commits == 1


@pytest.mark.asyncio
async def test_company_admin_of_another_company_cannot_create_company(fake_db):
    with pytest.raises(AuthorizationError):
        await companies.create_company(
            fake_db, CompanyCreate(name="Other", slug="other"), actor=make_actor(roles=["finance_admin"])
        )
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_create_employee_provisions_numbered_cash_portfolio(fake_db, company_ctx):
    company = make_company()
    fake_db.on_execute(entity_handler(Company, FakeResult(scalar=company)))
    fake_db.on_execute_return(FakeResult(scalar=3))
    admin = make_actor(roles=["company_admin"])

    employee = await companies.create_employee(
        fake_db,
        company_ctx,
        EmployeeCreate(employee_number=" E-042 ", full_name="Omar Example"),
        actor=admin,
    )

    assert employee.employee_number == "E-042"
    cash = fake_db.added_of(Portfolio)[0]
    assert cash.portfolio_type == "employee_cash"
    assert cash.employee_id == employee.id
    assert cash.portfolio_number == "CASH-1A2B3C4D-000004"


@pytest.mark.asyncio
async def test_employee_creation_needs_ledger_admin(fake_db, company_ctx, employee_actor):
    with pytest.raises(AuthorizationError):
        await companies.create_employee(
            fake_db, company_ctx, EmployeeCreate(employee_number="E-1", full_name="X"), actor=employee_actor
        )


def test_empty_schedule_vests_everything_on_grant_date():
    events = companies.build_vesting_events(date(2025, 1, 1), 400, [])
    assert [(e.vesting_date, e.shares_to_vest) for e in events] == [(date(2025, 1, 1), 400)]


def test_schedule_must_sum_to_total_shares():
    schedule = [
        VestingEventCreate(vesting_date=date(2026, 1, 1), shares_to_vest=100),
        VestingEventCreate(vesting_date=date(2027, 1, 1), shares_to_vest=200),
    ]
    with pytest.raises(ValidationError):
        companies.build_vesting_events(date(2025, 1, 1), 400, schedule)


def test_schedule_cannot_start_before_grant():
    schedule = [VestingEventCreate(vesting_date=date(2024, 12, 31), shares_to_vest=400)]
    with pytest.raises(ValidationError):
        companies.build_vesting_events(date(2025, 1, 1), 400, schedule)


def test_grant_rejects_duplicate_vesting_dates():
    with pytest.raises(PydanticValidationError):
        GrantCreate(
            employee_id=uuid4(),
            plan_id=uuid4(),
            grant_date=date(2025, 1, 1),
            total_shares=200,
            exercise_price=Decimal("1"),
            vesting_events=[
                VestingEventCreate(vesting_date=date(2026, 1, 1), shares_to_vest=100),
                VestingEventCreate(vesting_date=date(2026, 1, 1), shares_to_vest=100),
            ],
        )


@pytest.mark.asyncio
async def test_esop_grant_events_carry_strike_and_require_exercise(fake_db, company_ctx, employee):
    plan = _plan("ESOP")
    fake_db.on_execute(entity_handler(Employee, FakeResult(scalar=employee)))
    fake_db.on_execute(entity_handler(IncentivePlan, FakeResult(scalar=plan)))
    admin = make_actor(roles=["company_admin"])

    grant = await companies.create_grant(
        fake_db,
        company_ctx,
        GrantCreate(
            employee_id=employee.id,
            plan_id=plan.id,
            grant_date=date(2025, 1, 1),
            total_shares=200,
            exercise_price=Decimal("12.5"),
            vesting_events=[
                VestingEventCreate(vesting_date=date(2027, 1, 1), shares_to_vest=100),
                VestingEventCreate(vesting_date=date(2026, 1, 1), shares_to_vest=100),
            ],
        ),
        actor=admin,
    )

    assert grant.exercise_price == Decimal("12.5000")
    events = fake_db.added_of(VestingEvent)
    assert [e.vesting_date for e in events] == [date(2026, 1, 1), date(2027, 1, 1)]
    assert all(e.requires_exercise for e in events)
    assert all(e.exercise_price == Decimal("12.5000") for e in events)
    assert all(e.status == "pending" for e in events)
    assert all(e.grant_id == grant.id for e in events)


@pytest.mark.asyncio
async def test_rsu_grant_events_need_no_exercise(fake_db, company_ctx, employee):
    plan = _plan("RSU")
    fake_db.on_execute(entity_handler(Employee, FakeResult(scalar=employee)))
    fake_db.on_execute(entity_handler(IncentivePlan, FakeResult(scalar=plan)))

    grant = await companies.create_grant(
        fake_db,
        company_ctx,
        GrantCreate(
            employee_id=employee.id,
            plan_id=plan.id,
            grant_date=date(2025, 1, 1),
            total_shares=50,
            exercise_price=Decimal("9.99"),
        ),
        actor=make_actor(permissions=["ledger.admin"]),
    )

    assert grant.exercise_price == Decimal("0")
    (event,) = fake_db.added_of(VestingEvent)
    assert event.requires_exercise is False
    assert event.exercise_price is None
    assert event.shares_to_vest == 50
