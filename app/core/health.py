from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.jobs import vesting_refresh
from app.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_database() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": exc.__class__.__name__}
    return {"status": "ok"}


async def check_redis() -> dict[str, str]:
    try:
        await get_redis_client().ping()
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": exc.__class__.__name__}
    return {"status": "ok"}


def scheduler_state() -> dict[str, Any]:
    if not settings.vesting_refresh_enabled:
        return {"status": "disabled"}
    running = vesting_refresh.is_running()
    return {
        "status": "ok" if running else "stopped",
        "interval_minutes": settings.vesting_refresh_interval_minutes,
    }


async def collect_checks() -> dict[str, dict[str, Any]]:
    return {
        "database": await check_database(),
        "redis": await check_redis(),
    }


def overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    checks = await collect_checks()
    overall, ready = overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "timestamp": _now(),
        "checks": checks,
    }


async def status_summary_payload() -> dict[str, Any]:
    checks = await collect_checks()
    overall, ready = overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "tenancy_mode": settings.tenancy_mode,
        "version": APP_VERSION,
        "timestamp": _now(),
        "checks": {**checks, "vesting_scheduler": scheduler_state()},
    }
