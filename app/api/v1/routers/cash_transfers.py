from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.common import CashTransferStatus
from app.schemas.portfolio import CashLedgerEntry, CashTransferOut, DepositRequest, TransferReject
from app.services import authz, cash_transfers
from app.services.authz import Actor
from app.services.ledger_errors import AuthorizationError

router = APIRouter(prefix="/cash-transfers", tags=["cash-transfers"])


@router.post(
    "/deposits",
    response_model=CashTransferOut,
    status_code=status.HTTP_201_CREATED,
    summary="Request a cash deposit",
)
async def request_deposit(
    payload: DepositRequest,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CashTransferOut:
    transfer = await cash_transfers.request_deposit(db, ctx, payload, actor=actor)
    return CashTransferOut.model_validate(transfer)


@router.get(
    "",
    response_model=list[CashTransferOut],
    summary="List cash transfers for the company",
)
async def list_cash_transfers(
    status_filter: CashTransferStatus | None = Query(default=None, alias="status"),
    employee_id: UUID | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    _: Actor = Depends(deps.require_permission(PermissionCode.APPROVE_CASH_TRANSFERS)),
    db: AsyncSession = Depends(get_db),
) -> list[CashTransferOut]:
    transfers = await cash_transfers.list_transfers(
        db,
        ctx,
        status=status_filter,
        employee_id=employee_id,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return [CashTransferOut.model_validate(transfer) for transfer in transfers]


@router.get(
    "/ledger",
    response_model=list[CashLedgerEntry],
    summary="Cash movements of one employee",
)
async def cash_ledger(
    employee_id: UUID | None = Query(default=None),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[CashLedgerEntry]:
    target = employee_id or actor.employee_id
    if target is None:
        return []
    if target != actor.employee_id and not authz.is_approver(actor):
        raise AuthorizationError("Not allowed to view this ledger", details={"employee_id": str(target)})
    return await cash_transfers.cash_ledger(db, ctx, target)


@router.post(
    "/{transfer_id}/approve",
    response_model=CashTransferOut,
    summary="Approve a pending deposit and credit its portfolio",
)
async def approve_cash_transfer(
    transfer_id: UUID,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CashTransferOut:
    transfer = await cash_transfers.approve_transfer(db, ctx, transfer_id, actor=actor)
    return CashTransferOut.model_validate(transfer)


@router.post(
    "/{transfer_id}/reject",
    response_model=CashTransferOut,
    summary="Reject a pending deposit",
)
async def reject_cash_transfer(
    transfer_id: UUID,
    payload: TransferReject,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CashTransferOut:
    transfer = await cash_transfers.reject_transfer(db, ctx, transfer_id, payload.reason, actor=actor)
    return CashTransferOut.model_validate(transfer)
