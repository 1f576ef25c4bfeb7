import logging

from fastapi import FastAPI

from app.db.session import engine
from app.jobs import vesting_refresh

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup")
        vesting_refresh.start_scheduler()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        vesting_refresh.stop_scheduler()
        await engine.dispose()
