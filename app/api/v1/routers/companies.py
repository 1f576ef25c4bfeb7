from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.companies import (
    CompanyCreate,
    CompanyOut,
    EmployeeCreate,
    EmployeeOut,
    GrantCreate,
    GrantOut,
    IncentivePlanCreate,
    IncentivePlanOut,
)
from app.services import companies
from app.services.authz import Actor

router = APIRouter(tags=["companies"])


@router.post(
    "/companies",
    response_model=CompanyOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a company with its cash and reserve portfolios",
)
async def create_company(
    payload: CompanyCreate,
    actor: Actor = Depends(deps.get_authenticated_actor),
    db: AsyncSession = Depends(get_db),
) -> CompanyOut:
    company = await companies.create_company(db, payload, actor=actor)
    return CompanyOut.model_validate(company)


@router.get("/companies/current", response_model=CompanyOut, summary="Get the current company")
async def get_current_company(
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    _: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CompanyOut:
    company = await companies.get_company(db, ctx.company_id)
    return CompanyOut.model_validate(company)


@router.get(
    "/employees",
    response_model=list[EmployeeOut],
    summary="List employees of the company",
)
async def list_employees(
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    _: Actor = Depends(deps.require_permission(PermissionCode.LEDGER_ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> list[EmployeeOut]:
    employees = await companies.list_employees(db, ctx)
    return [EmployeeOut.model_validate(employee) for employee in employees]


@router.post(
    "/employees",
    response_model=EmployeeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register an employee and provision their cash portfolio",
)
async def create_employee(
    payload: EmployeeCreate,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> EmployeeOut:
    employee = await companies.create_employee(db, ctx, payload, actor=actor)
    return EmployeeOut.model_validate(employee)


@router.post(
    "/plans",
    response_model=IncentivePlanOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an incentive plan",
)
async def create_plan(
    payload: IncentivePlanCreate,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> IncentivePlanOut:
    plan = await companies.create_plan(db, ctx, payload, actor=actor)
    return IncentivePlanOut.model_validate(plan)


@router.post(
    "/grants",
    response_model=GrantOut,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a grant with its vesting schedule",
)
async def create_grant(
    payload: GrantCreate,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> GrantOut:
    grant = await companies.create_grant(db, ctx, payload, actor=actor)
    return GrantOut.model_validate(grant)
