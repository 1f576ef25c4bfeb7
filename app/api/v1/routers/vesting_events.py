from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.core.settings import settings
from app.db.session import get_db
from app.schemas.common import VestingEventStatus
from app.schemas.vesting import VestingEventOut, VestingRefreshOut, VestingRefreshRequest
from app.services import authz, companies, vesting_refresher, vesting_releases
from app.services.authz import Actor

router = APIRouter(prefix="/vesting-events", tags=["vesting"])


@router.get(
    "",
    response_model=list[VestingEventOut],
    summary="Refresh vesting statuses, then list vesting events",
)
async def list_vesting_events(
    employee_id: UUID | None = Query(default=None),
    status_filter: VestingEventStatus | None = Query(default=None, alias="status"),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[VestingEventOut]:
    if not (authz.is_approver(actor) or actor.has_permission(PermissionCode.VESTING_VIEW)):
        # Employees only ever see their own schedule.
        employee_id = actor.employee_id
        if employee_id is None:
            return []
    await vesting_refresher.refresh(db, actor=actor, company_id=ctx.company_id)
    events = await companies.list_vesting_events(db, ctx, employee_id=employee_id, status=status_filter)
    return [VestingEventOut.model_validate(event) for event in events]


@router.post(
    "/refresh",
    response_model=VestingRefreshOut,
    summary="Advance vesting statuses as of a date",
)
async def refresh_vesting_events(
    payload: VestingRefreshRequest,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.require_permission(PermissionCode.VESTING_REFRESH)),
    db: AsyncSession = Depends(get_db),
) -> VestingRefreshOut:
    as_of = payload.as_of or date.today()
    result = await vesting_refresher.refresh(db, actor=actor, as_of=as_of, company_id=ctx.company_id)
    released = skipped = 0
    if settings.vesting_release_enabled:
        release = await vesting_releases.release_vested_events(db, actor=actor, company_id=ctx.company_id)
        released, skipped = len(release.released), len(release.skipped)
    return VestingRefreshOut(
        as_of=result.as_of,
        advanced=result.advanced,
        released=released,
        release_skipped=skipped,
    )
