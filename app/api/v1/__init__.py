from fastapi import APIRouter

from app.api.v1.routers import (
    cash_transfers,
    companies,
    exercise_orders,
    health,
    portfolios,
    vesting_events,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(companies.router)
api_router.include_router(portfolios.router)
api_router.include_router(vesting_events.router)
api_router.include_router(exercise_orders.router)
api_router.include_router(cash_transfers.router)

__all__ = ["api_router"]
