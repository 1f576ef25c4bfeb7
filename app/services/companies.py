from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import ActorRole, PermissionCode
from app.models.company import Company
from app.models.employee import Employee
from app.models.grant import Grant
from app.models.incentive_plan import IncentivePlan
from app.models.vesting_event import VestingEvent
from app.schemas.common import PlanType, VestingEventStatus
from app.schemas.companies import (
    CompanyCreate,
    EmployeeCreate,
    GrantCreate,
    IncentivePlanCreate,
    VestingEventCreate,
)
from app.services import ledger_store, portfolios
from app.services.audit import model_snapshot, record_audit_log
from app.services.authz import Actor, require_any_permission, require_company
from app.services.ledger_errors import AuthorizationError, ValidationError

PRICE_PLACES = Decimal("0.0001")


def _require_admin(actor: Actor, ctx: deps.CompanyContext, action: str) -> None:
    require_company(actor, ctx.company_id)
    require_any_permission(actor, [PermissionCode.LEDGER_ADMIN], action=action)


async def create_company(db: AsyncSession, payload: CompanyCreate, *, actor: Actor) -> Company:
    """Create a company with its cash account and share reserve."""
    if not actor.has_role(ActorRole.SUPER_ADMIN.value) and not actor.has_permission(PermissionCode.LEDGER_ADMIN):
        raise AuthorizationError("Only platform administrators may create companies")
    async with ledger_store.transaction(db):
        company = Company(name=payload.name.strip(), slug=payload.slug, currency=payload.currency.upper())
        await ledger_store.insert(db, company)
        cash, reserved = await portfolios.provision_company_portfolios(
            db, company, reserved_shares=payload.reserved_shares
        )
        record_audit_log(
            db,
            company.id,
            actor=actor,
            action="company.created",
            resource_type="company",
            resource_id=company.id,
            new_value={
                **model_snapshot(company),
                "cash_portfolio": cash.portfolio_number,
                "reserved_portfolio": reserved.portfolio_number,
            },
        )
    return company


async def create_employee(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    payload: EmployeeCreate,
    *,
    actor: Actor,
) -> Employee:
    _require_admin(actor, ctx, "employee.create")
    async with ledger_store.transaction(db):
        company = await ledger_store.get(db, Company, ctx.company_id)
        employee = Employee(
            company_id=company.id,
            employee_number=payload.employee_number.strip(),
            full_name=payload.full_name.strip(),
            email=payload.email,
            user_id=payload.user_id,
        )
        await ledger_store.insert(db, employee)
        cash = await portfolios.provision_employee_cash(db, company, employee)
        record_audit_log(
            db,
            company.id,
            actor=actor,
            action="employee.created",
            resource_type="employee",
            resource_id=employee.id,
            new_value={**model_snapshot(employee), "cash_portfolio": cash.portfolio_number},
        )
    return employee


async def create_plan(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    payload: IncentivePlanCreate,
    *,
    actor: Actor,
) -> IncentivePlan:
    _require_admin(actor, ctx, "plan.create")
    async with ledger_store.transaction(db):
        plan = IncentivePlan(company_id=ctx.company_id, name=payload.name.strip(), plan_type=payload.plan_type.value)
        await ledger_store.insert(db, plan)
    return plan


def build_vesting_events(
    grant_date: date,
    total_shares: int,
    events: list[VestingEventCreate],
) -> list[VestingEventCreate]:
    """Validate a schedule; an empty schedule vests everything on the grant date."""
    if not events:
        return [VestingEventCreate(vesting_date=grant_date, shares_to_vest=total_shares)]
    if any(event.vesting_date < grant_date for event in events):
        raise ValidationError("Vesting events cannot occur before grant_date")
    if sum(event.shares_to_vest for event in events) != total_shares:
        raise ValidationError("Sum of vesting_events.shares_to_vest must equal total_shares")
    return sorted(events, key=lambda event: event.vesting_date)


async def create_grant(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    payload: GrantCreate,
    *,
    actor: Actor,
) -> Grant:
    _require_admin(actor, ctx, "grant.create")
    schedule = build_vesting_events(payload.grant_date, payload.total_shares, payload.vesting_events)
    async with ledger_store.transaction(db):
        await ledger_store.get(db, Employee, payload.employee_id, company_id=ctx.company_id)
        plan = await ledger_store.get(db, IncentivePlan, payload.plan_id, company_id=ctx.company_id)
        is_esop = PlanType(plan.plan_type) is PlanType.ESOP
        price = Decimal(str(payload.exercise_price)).quantize(PRICE_PLACES) if is_esop else Decimal("0")
        grant = Grant(
            company_id=ctx.company_id,
            employee_id=payload.employee_id,
            plan_id=plan.id,
            grant_date=payload.grant_date,
            total_shares=payload.total_shares,
            exercise_price=price,
        )
        await ledger_store.insert(db, grant)
        for item in schedule:
            db.add(
                VestingEvent(
                    company_id=ctx.company_id,
                    grant_id=grant.id,
                    employee_id=payload.employee_id,
                    vesting_date=item.vesting_date,
                    shares_to_vest=item.shares_to_vest,
                    status=VestingEventStatus.PENDING.value,
                    exercise_price=price if is_esop else None,
                    requires_exercise=is_esop,
                )
            )
        await ledger_store.flush(db)
        record_audit_log(
            db,
            ctx.company_id,
            actor=actor,
            action="grant.created",
            resource_type="grant",
            resource_id=grant.id,
            new_value={**model_snapshot(grant), "vesting_events": len(schedule), "exercise_price": str(price)},
        )
    return grant


async def list_employees(db: AsyncSession, ctx: deps.CompanyContext) -> list[Employee]:
    stmt = ledger_store.query(Employee, ctx.company_id).order_by(Employee.employee_number)
    return list((await ledger_store.execute(db, stmt)).scalars().all())


async def list_vesting_events(
    db: AsyncSession,
    ctx: deps.CompanyContext,
    *,
    employee_id: UUID | None = None,
    status: VestingEventStatus | None = None,
) -> list[VestingEvent]:
    stmt = ledger_store.query(VestingEvent, ctx.company_id)
    if employee_id is not None:
        stmt = stmt.where(VestingEvent.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(VestingEvent.status == status.value)
    stmt = stmt.order_by(VestingEvent.vesting_date, VestingEvent.id)
    return list((await ledger_store.execute(db, stmt)).scalars().all())


async def get_company(db: AsyncSession, company_id: UUID) -> Company:
    return await ledger_store.get(db, Company, company_id)

