from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.portfolio import PortfolioOut, ShareTransferOut
from app.services import authz, portfolios
from app.services.authz import Actor

router = APIRouter(prefix="/portfolios", tags=["portfolios"])


@router.get(
    "",
    response_model=list[PortfolioOut],
    summary="List portfolios visible to the caller",
)
async def list_portfolios(
    employee_id: UUID | None = Query(default=None),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[PortfolioOut]:
    if not authz.is_approver(actor):
        if actor.employee_id is None:
            return []
        employee_id = actor.employee_id
    items = await portfolios.list_portfolios(db, ctx.company_id, employee_id=employee_id)
    return [PortfolioOut.model_validate(item) for item in items]


@router.get(
    "/share-transfers",
    response_model=list[ShareTransferOut],
    summary="Share movements visible to the caller",
)
async def list_share_transfers(
    employee_id: UUID | None = Query(default=None),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ShareTransferOut]:
    if not authz.is_approver(actor):
        if actor.employee_id is None:
            return []
        employee_id = actor.employee_id
    items = await portfolios.list_share_transfers(db, ctx.company_id, employee_id=employee_id)
    return [ShareTransferOut.model_validate(item) for item in items]
