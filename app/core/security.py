from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Iterable

from jose import JWTError, jwt

from app.core.settings import settings

ACCESS_TOKEN_TYPE = "access"


class JWTKeyError(RuntimeError):
    pass


def _uses_shared_secret() -> bool:
    return settings.jwt_algorithm.upper().startswith("HS")


@lru_cache(maxsize=1)
def _load_verification_key() -> str:
    if _uses_shared_secret():
        return settings.secret_key
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_public_key_path:
        with open(settings.jwt_public_key_path, "r", encoding="utf-8") as key_file:
            return key_file.read()
    raise JWTKeyError("JWT public key not configured")


def create_access_token(
    subject: str,
    *,
    company_id: str | None,
    roles: Iterable[str] = (),
    permissions: Iterable[str] = (),
    employee_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint an HS* access token; used by local tooling and tests, issuing lives upstream."""
    if not _uses_shared_secret():
        raise JWTKeyError("Token minting is only supported with a shared secret")
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode: dict[str, Any] = {
        "sub": subject,
        "exp": expire,
        "type": ACCESS_TOKEN_TYPE,
        "company_id": company_id,
        "roles": list(roles),
        "permissions": list(permissions),
        "employee_id": employee_id,
    }
    if settings.jwt_audience:
        to_encode["aud"] = settings.jwt_audience
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str | None = ACCESS_TOKEN_TYPE) -> dict[str, Any]:
    key = _load_verification_key()
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if expected_type and payload.get("type", expected_type) != expected_type:
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload
