from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings


def build_limiter(storage_uri: str | None = None) -> Limiter:
    """Per-client limiter; the client address is already resolved by the trusted-proxies middleware."""
    return Limiter(
        key_func=get_remote_address,
        default_limits=[f"{settings.rate_limit_per_minute}/minute"],
        storage_uri=storage_uri or settings.redis_url,
        headers_enabled=False,
    )


limiter = build_limiter()

__all__ = ["build_limiter", "limiter"]
