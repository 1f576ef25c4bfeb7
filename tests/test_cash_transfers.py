from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm.exc import StaleDataError

from app.models.cash_transfer import CashTransfer
from app.models.portfolio import Portfolio
from app.schemas.common import CashTransferStatus, CashTransferType, PortfolioType
from app.schemas.portfolio import DepositRequest
from app.services import cash_transfers
from app.services.ledger_errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    PortfolioNotFoundError,
    ValidationError,
)
from conftest import COMPANY_ID, FakeResult, entity_handler, make_actor, make_portfolio


def _transfer(target: Portfolio, *, amount="250.00", status=CashTransferStatus.PENDING, **overrides) -> CashTransfer:
    defaults = dict(
        id=uuid4(),
        company_id=COMPANY_ID,
        transfer_number=f"CT-TEST-{uuid4().hex[:6]}",
        transfer_type=CashTransferType.EMPLOYEE_DEPOSIT.value,
        from_portfolio_id=None,
        to_portfolio_id=target.id,
        employee_id=target.employee_id,
        amount=Decimal(amount),
        currency="SAR",
        status=status.value,
    )
    defaults.update(overrides)
    return CashTransfer(**defaults)


@pytest.mark.asyncio
async def test_employee_deposit_targets_own_cash_portfolio(fake_db, company_ctx, employee, employee_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id)
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(scalar=cash)))

    transfer = await cash_transfers.request_deposit(
        fake_db, company_ctx, DepositRequest(amount=Decimal("100.5")), actor=employee_actor
    )

    assert transfer.transfer_type == CashTransferType.EMPLOYEE_DEPOSIT.value
    assert transfer.status == CashTransferStatus.PENDING.value
    assert transfer.to_portfolio_id == cash.id
    assert transfer.employee_id == employee.id
    assert transfer.amount == Decimal("100.50")
    assert transfer.transfer_number.startswith("CT-1A2B3C4D-")
    assert cash.cash_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_company_deposit_needs_approver(fake_db, company_ctx, employee_actor):
    with pytest.raises(AuthorizationError):
        await cash_transfers.request_deposit(
            fake_db,
            company_ctx,
            DepositRequest(amount=Decimal("1000"), company_account=True),
            actor=employee_actor,
        )
    assert fake_db.rolled_back


@pytest.mark.asyncio
async def test_company_deposit_by_approver(fake_db, company_ctx, approver_actor):
    company_cash = make_portfolio(PortfolioType.COMPANY_CASH)
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(scalar=company_cash)))

    transfer = await cash_transfers.request_deposit(
        fake_db,
        company_ctx,
        DepositRequest(amount=Decimal("1000"), company_account=True),
        actor=approver_actor,
    )

    assert transfer.transfer_type == CashTransferType.COMPANY_DEPOSIT.value
    assert transfer.employee_id is None
    assert transfer.to_portfolio_id == company_cash.id


@pytest.mark.asyncio
async def test_non_employee_cannot_request_employee_deposit(fake_db, company_ctx, approver_actor):
    with pytest.raises(AuthorizationError):
        await cash_transfers.request_deposit(
            fake_db, company_ctx, DepositRequest(amount=Decimal("10")), actor=approver_actor
        )


@pytest.mark.asyncio
async def test_approve_deposit_credits_target(fake_db, company_ctx, employee, approver_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id, cash_balance="500.00")
    transfer = _transfer(cash)
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(scalar=transfer)))
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(scalar=cash)))

    approved = await cash_transfers.approve_transfer(fake_db, company_ctx, transfer.id, actor=approver_actor)

    assert approved.status == CashTransferStatus.PROCESSED.value
    assert approved.approved_by == approver_actor.id
    assert approved.approved_at is not None
    assert cash.cash_balance == Decimal("750.00")
    assert fake_db.commits == 1


@pytest.mark.asyncio
async def test_processed_deposit_cannot_be_approved_twice(fake_db, company_ctx, employee, approver_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id, cash_balance="500.00")
    transfer = _transfer(cash, status=CashTransferStatus.PROCESSED)
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(scalar=transfer)))
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(scalar=cash)))

    with pytest.raises(InvalidStateError):
        await cash_transfers.approve_transfer(fake_db, company_ctx, transfer.id, actor=approver_actor)
    assert cash.cash_balance == Decimal("500.00")


@pytest.mark.asyncio
async def test_settlement_transfers_are_not_approvable(fake_db, company_ctx, employee, approver_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id)
    transfer = _transfer(
        cash,
        transfer_type=CashTransferType.EXERCISE_SETTLEMENT.value,
        exercise_order_id=uuid4(),
    )
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(scalar=transfer)))

    with pytest.raises(InvalidStateError):
        await cash_transfers.approve_transfer(fake_db, company_ctx, transfer.id, actor=approver_actor)


@pytest.mark.asyncio
async def test_approve_with_missing_target_portfolio(fake_db, company_ctx, employee, approver_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id)
    transfer = _transfer(cash)
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(scalar=transfer)))

    with pytest.raises(PortfolioNotFoundError):
        await cash_transfers.approve_transfer(fake_db, company_ctx, transfer.id, actor=approver_actor)
    assert transfer.status == CashTransferStatus.PENDING.value


@pytest.mark.asyncio
async def test_employee_cannot_approve_deposit(fake_db, company_ctx, employee_actor):
    with pytest.raises(AuthorizationError):
        await cash_transfers.approve_transfer(fake_db, company_ctx, uuid4(), actor=employee_actor)


@pytest.mark.asyncio
async def test_reject_deposit_requires_reason(fake_db, company_ctx, employee, approver_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id)
    transfer = _transfer(cash)
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(scalar=transfer)))

    with pytest.raises(ValidationError):
        await cash_transfers.reject_transfer(fake_db, company_ctx, transfer.id, " ", actor=approver_actor)

    rejected = await cash_transfers.reject_transfer(
        fake_db, company_ctx, transfer.id, "Bank reference not found", actor=approver_actor
    )
    assert rejected.status == CashTransferStatus.REJECTED.value
    assert rejected.rejection_reason == "Bank reference not found"
    assert cash.cash_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_cash_ledger_signs_settlements_negative(fake_db, company_ctx, employee):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id)
    company_cash = make_portfolio(PortfolioType.COMPANY_CASH)
    deposit = _transfer(cash, amount="2000.00", status=CashTransferStatus.PROCESSED)
    settlement = _transfer(
        company_cash,
        amount="1250.00",
        status=CashTransferStatus.PROCESSED,
        transfer_type=CashTransferType.EXERCISE_SETTLEMENT.value,
        from_portfolio_id=cash.id,
        exercise_order_id=uuid4(),
        employee_id=employee.id,
    )
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(scalar=cash)))
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(items=[settlement, deposit])))

    entries = await cash_transfers.cash_ledger(fake_db, company_ctx, employee.id)

    assert [entry.signed_amount for entry in entries] == [Decimal("-1250.00"), Decimal("2000.00")]
    assert sum(entry.signed_amount for entry in entries) == Decimal("750.00")


def test_deposit_amount_must_be_positive():
    with pytest.raises(PydanticValidationError):
        DepositRequest(amount=Decimal("0"))
    with pytest.raises(PydanticValidationError):
        DepositRequest(amount=Decimal("-5"))


@pytest.mark.asyncio
async def test_deposit_for_other_company_is_forbidden(fake_db, company_ctx):
    outsider = make_actor(company_id=uuid4(), employee_id=uuid4())
    with pytest.raises(AuthorizationError):
        await cash_transfers.request_deposit(
            fake_db, company_ctx, DepositRequest(amount=Decimal("10")), actor=outsider
        )


@pytest.mark.asyncio
async def test_stale_portfolio_version_aborts_approval(fake_db, company_ctx, employee, approver_actor):
    cash = make_portfolio(PortfolioType.EMPLOYEE_CASH, employee_id=employee.id, cash_balance="500.00")
    transfer = _transfer(cash)
    fake_db.on_execute(entity_handler(CashTransfer, FakeResult(scalar=transfer)))
    fake_db.on_execute(entity_handler(Portfolio, FakeResult(scalar=cash)))
    fake_db.flush_error = StaleDataError("0 rows matched for portfolios")

    with pytest.raises(ConflictError):
        await cash_transfers.approve_transfer(fake_db, company_ctx, transfer.id, actor=approver_actor)

    assert fake_db.rolled_back
    assert not fake_db.committed
