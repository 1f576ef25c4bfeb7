from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.common import ExerciseOrderStatus
from app.schemas.exercise import (
    ExerciseOrderCreate,
    ExerciseOrderList,
    ExerciseOrderOut,
    ExerciseOrderReject,
)
from app.services import authz, exercise_orders
from app.services.authz import Actor
from app.services.ledger_errors import AuthorizationError, InsufficientFundsError

router = APIRouter(prefix="/exercise-orders", tags=["exercise-orders"])


@router.post(
    "",
    response_model=ExerciseOrderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Request exercise of a vested ESOP event",
)
async def create_exercise_order(
    payload: ExerciseOrderCreate,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderOut:
    order = await exercise_orders.create_order(db, ctx, payload.vesting_event_id, actor=actor)
    if payload.require_funds and not order.sufficient_funds:
        raise InsufficientFundsError(
            "Insufficient cash balance to exercise; the request was recorded for review",
            details={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "cash_balance_at_order": str(order.cash_balance_at_order),
                "total_exercise_cost": str(order.total_exercise_cost),
            },
        )
    return ExerciseOrderOut.model_validate(order)


@router.get(
    "",
    response_model=ExerciseOrderList,
    summary="List exercise orders for the company",
)
async def list_exercise_orders(
    status_filter: ExerciseOrderStatus | None = Query(default=None, alias="status"),
    employee_id: UUID | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    _: Actor = Depends(deps.require_permission(PermissionCode.EXERCISE_ORDER_VIEW_ALL)),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderList:
    offset = (page - 1) * page_size
    items, total = await exercise_orders.list_orders(
        db, ctx, status=status_filter, employee_id=employee_id, offset=offset, limit=page_size
    )
    counts = await exercise_orders.order_counts(db, ctx, employee_id=employee_id)
    return ExerciseOrderList(
        items=[ExerciseOrderOut.model_validate(item) for item in items],
        total=total,
        counts=counts,
    )


@router.get(
    "/mine",
    response_model=ExerciseOrderList,
    summary="List the caller's own exercise orders",
)
async def list_my_exercise_orders(
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderList:
    if actor.employee_id is None:
        return ExerciseOrderList(items=[], total=0)
    items, total = await exercise_orders.list_orders(db, ctx, employee_id=actor.employee_id, limit=200)
    counts = await exercise_orders.order_counts(db, ctx, employee_id=actor.employee_id)
    return ExerciseOrderList(
        items=[ExerciseOrderOut.model_validate(item) for item in items],
        total=total,
        counts=counts,
    )


@router.get(
    "/{order_id}",
    response_model=ExerciseOrderOut,
    summary="Get an exercise order",
)
async def get_exercise_order(
    order_id: UUID,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderOut:
    order = await exercise_orders.get_order(db, ctx, order_id)
    if order.employee_id != actor.employee_id and not (
        authz.is_approver(actor) or actor.has_permission(PermissionCode.EXERCISE_ORDER_VIEW_ALL)
    ):
        raise AuthorizationError("Not allowed to view this order", details={"order_id": str(order_id)})
    return ExerciseOrderOut.model_validate(order)


@router.post(
    "/{order_id}/approve",
    response_model=ExerciseOrderOut,
    summary="Approve a pending exercise order",
)
async def approve_exercise_order(
    order_id: UUID,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderOut:
    order = await exercise_orders.approve_order(db, ctx, order_id, actor=actor)
    return ExerciseOrderOut.model_validate(order)


@router.post(
    "/{order_id}/reject",
    response_model=ExerciseOrderOut,
    summary="Reject a pending exercise order",
)
async def reject_exercise_order(
    order_id: UUID,
    payload: ExerciseOrderReject,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderOut:
    order = await exercise_orders.reject_order(db, ctx, order_id, payload.reason, actor=actor)
    return ExerciseOrderOut.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=ExerciseOrderOut,
    summary="Withdraw a pending exercise order",
)
async def cancel_exercise_order(
    order_id: UUID,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderOut:
    order = await exercise_orders.cancel_order(db, ctx, order_id, actor=actor)
    return ExerciseOrderOut.model_validate(order)


@router.post(
    "/{order_id}/process",
    response_model=ExerciseOrderOut,
    summary="Settle an approved exercise order",
)
async def process_exercise_order(
    order_id: UUID,
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ExerciseOrderOut:
    settlement = await exercise_orders.process_order(db, ctx, order_id, actor=actor)
    return ExerciseOrderOut.model_validate(settlement.order)
