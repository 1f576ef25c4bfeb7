from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.company import Company
from app.models.employee import Employee
from app.models.portfolio import Portfolio
from app.models.share_transfer import ShareTransfer
from app.schemas.common import PortfolioType
from app.services import ledger_store
from app.services.ledger_errors import (
    InsufficientFundsError,
    InsufficientSharesError,
    PortfolioNotFoundError,
    ValidationError,
)

TWOPLACES = Decimal("0.01")


def as_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def company_code(company_id: UUID) -> str:
    return str(company_id).split("-")[0].upper()


def reference_number(prefix: str, company_id: UUID) -> str:
    """Human-readable unique reference such as ``EX-1A2B3C4D-1700000000000-9F2C1A``."""
    millis = int(time.time() * 1000)
    return f"{prefix}-{company_code(company_id)}-{millis}-{uuid4().hex[:6].upper()}"


def company_cash_number(company_id: UUID) -> str:
    return f"CASH-COMP-{company_code(company_id)}-000001"


def company_reserved_number(company_id: UUID) -> str:
    return f"RSV-{company_code(company_id)}-000001"


def employee_cash_number(company_id: UUID, sequence: int) -> str:
    return f"CASH-{company_code(company_id)}-{sequence:06d}"


def employee_vested_number(company_id: UUID, employee_number: str) -> str:
    return f"VEST-{company_code(company_id)}-{employee_number}"


def _new_portfolio(
    company_id: UUID,
    portfolio_type: PortfolioType,
    number: str,
    *,
    employee_id: UUID | None = None,
    currency: str | None = None,
    total_shares: int = 0,
) -> Portfolio:
    return Portfolio(
        company_id=company_id,
        employee_id=employee_id,
        portfolio_type=portfolio_type.value,
        portfolio_number=number,
        total_shares=total_shares,
        available_shares=total_shares,
        locked_shares=0,
        cash_balance=Decimal("0.00"),
        currency=currency if portfolio_type.holds_cash else None,
    )


async def provision_company_portfolios(
    db: AsyncSession, company: Company, *, reserved_shares: int = 0
) -> tuple[Portfolio, Portfolio]:
    cash = _new_portfolio(
        company.id,
        PortfolioType.COMPANY_CASH,
        company_cash_number(company.id),
        currency=company.currency,
    )
    reserved = _new_portfolio(
        company.id,
        PortfolioType.COMPANY_RESERVED,
        company_reserved_number(company.id),
        total_shares=reserved_shares,
    )
    await ledger_store.insert(db, cash)
    await ledger_store.insert(db, reserved)
    return cash, reserved


async def provision_employee_cash(db: AsyncSession, company: Company, employee: Employee) -> Portfolio:
    stmt = select(func.count(Portfolio.id)).where(
        Portfolio.company_id == company.id,
        Portfolio.portfolio_type == PortfolioType.EMPLOYEE_CASH.value,
    )
    existing = (await ledger_store.execute(db, stmt)).scalar_one_or_none() or 0
    portfolio = _new_portfolio(
        company.id,
        PortfolioType.EMPLOYEE_CASH,
        employee_cash_number(company.id, existing + 1),
        employee_id=employee.id,
        currency=company.currency,
    )
    return await ledger_store.insert(db, portfolio)


async def create_employee_vested(db: AsyncSession, employee: Employee) -> Portfolio:
    portfolio = _new_portfolio(
        employee.company_id,
        PortfolioType.EMPLOYEE_VESTED,
        employee_vested_number(employee.company_id, employee.employee_number),
        employee_id=employee.id,
    )
    return await ledger_store.insert(db, portfolio)


@dataclass(slots=True)
class SettlementPortfolios:
    employee_cash: Portfolio | None = None
    company_cash: Portfolio | None = None
    company_reserved: Portfolio | None = None
    employee_vested: Portfolio | None = None


def classify(portfolios: Iterable[Portfolio], *, employee_id: UUID, cash_portfolio_id: UUID | None = None) -> SettlementPortfolios:
    found = SettlementPortfolios()
    for portfolio in portfolios:
        kind = PortfolioType(portfolio.portfolio_type)
        if kind is PortfolioType.COMPANY_CASH and portfolio.employee_id is None:
            found.company_cash = portfolio
        elif kind is PortfolioType.COMPANY_RESERVED and portfolio.employee_id is None:
            found.company_reserved = portfolio
        elif kind is PortfolioType.EMPLOYEE_CASH and portfolio.employee_id == employee_id:
            if cash_portfolio_id is None or portfolio.id == cash_portfolio_id:
                found.employee_cash = portfolio
        elif kind is PortfolioType.EMPLOYEE_VESTED and portfolio.employee_id == employee_id:
            found.employee_vested = portfolio
    return found


async def lock_settlement_portfolios(
    db: AsyncSession,
    company_id: UUID,
    employee_id: UUID,
    *,
    cash_portfolio_id: UUID | None = None,
) -> SettlementPortfolios:
    """Load and row-lock every portfolio a settlement touches.

    One statement ordered by id keeps lock acquisition order identical across
    concurrent settlements against the same company.
    """
    employee_cash_filter = (
        Portfolio.id == cash_portfolio_id
        if cash_portfolio_id is not None
        else and_(
            Portfolio.employee_id == employee_id,
            Portfolio.portfolio_type == PortfolioType.EMPLOYEE_CASH.value,
        )
    )
    stmt = (
        select(Portfolio)
        .where(
            Portfolio.company_id == company_id,
            or_(
                employee_cash_filter,
                and_(
                    Portfolio.employee_id.is_(None),
                    Portfolio.portfolio_type.in_(
                        [PortfolioType.COMPANY_CASH.value, PortfolioType.COMPANY_RESERVED.value]
                    ),
                ),
                and_(
                    Portfolio.employee_id == employee_id,
                    Portfolio.portfolio_type == PortfolioType.EMPLOYEE_VESTED.value,
                ),
            ),
        )
        .order_by(Portfolio.id)
        .with_for_update()
    )
    result = await ledger_store.execute(db, stmt)
    return classify(result.scalars().all(), employee_id=employee_id, cash_portfolio_id=cash_portfolio_id)


async def get_employee_cash(db: AsyncSession, company_id: UUID, employee_id: UUID) -> Portfolio:
    stmt = ledger_store.query(Portfolio, company_id).where(
        Portfolio.employee_id == employee_id,
        Portfolio.portfolio_type == PortfolioType.EMPLOYEE_CASH.value,
    )
    portfolio = (await ledger_store.execute(db, stmt)).scalar_one_or_none()
    if portfolio is None:
        raise PortfolioNotFoundError(
            "Employee cash portfolio not found",
            details={"employee_id": str(employee_id), "portfolio_type": PortfolioType.EMPLOYEE_CASH.value},
        )
    return portfolio


async def get_company_cash(db: AsyncSession, company_id: UUID) -> Portfolio:
    stmt = ledger_store.query(Portfolio, company_id).where(
        Portfolio.employee_id.is_(None),
        Portfolio.portfolio_type == PortfolioType.COMPANY_CASH.value,
    )
    portfolio = (await ledger_store.execute(db, stmt)).scalar_one_or_none()
    if portfolio is None:
        raise PortfolioNotFoundError(
            "Company cash portfolio not found",
            details={"company_id": str(company_id), "portfolio_type": PortfolioType.COMPANY_CASH.value},
        )
    return portfolio


async def list_portfolios(
    db: AsyncSession, company_id: UUID, *, employee_id: UUID | None = None
) -> list[Portfolio]:
    stmt = ledger_store.query(Portfolio, company_id)
    if employee_id is not None:
        stmt = stmt.where(Portfolio.employee_id == employee_id)
    stmt = stmt.order_by(Portfolio.portfolio_type, Portfolio.portfolio_number)
    result = await ledger_store.execute(db, stmt)
    return list(result.scalars().all())


def debit_cash(portfolio: Portfolio, amount: Decimal) -> None:
    amount = as_money(amount)
    if amount <= 0:
        raise ValidationError("Cash movements must be positive", details={"amount": str(amount)})
    balance = as_money(portfolio.cash_balance)
    if balance < amount:
        raise InsufficientFundsError(
            "Insufficient cash balance",
            details={
                "portfolio_id": str(portfolio.id),
                "available": str(balance),
                "required": str(amount),
            },
        )
    portfolio.cash_balance = as_money(balance - amount)


def credit_cash(portfolio: Portfolio, amount: Decimal) -> None:
    amount = as_money(amount)
    if amount <= 0:
        raise ValidationError("Cash movements must be positive", details={"amount": str(amount)})
    portfolio.cash_balance = as_money(as_money(portfolio.cash_balance) + amount)


def move_shares(source: Portfolio, target: Portfolio, shares: int) -> None:
    """Debit ``source.available_shares`` and credit both share counters of ``target``."""
    if shares <= 0:
        raise ValidationError("Share movements must be positive", details={"shares": shares})
    available = int(source.available_shares or 0)
    if available < shares:
        raise InsufficientSharesError(
            "Insufficient shares in company reserve",
            details={
                "portfolio_id": str(source.id),
                "available": available,
                "required": shares,
            },
        )
    source.available_shares = available - shares
    target.total_shares = int(target.total_shares or 0) + shares
    target.available_shares = int(target.available_shares or 0) + shares


async def list_share_transfers(
    db: AsyncSession, company_id: UUID, *, employee_id: UUID | None = None, limit: int = 200
) -> list[ShareTransfer]:
    stmt = ledger_store.query(ShareTransfer, company_id)
    if employee_id is not None:
        stmt = stmt.where(ShareTransfer.employee_id == employee_id)
    stmt = stmt.order_by(ShareTransfer.created_at.desc()).limit(limit)
    return list((await ledger_store.execute(db, stmt)).scalars().all())
