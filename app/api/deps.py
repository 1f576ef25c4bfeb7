from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.context import set_actor_id, set_company_id
from app.core.permissions import PermissionCode
from app.core.security import decode_token
from app.core.settings import settings
from app.services import authz
from app.services.authz import Actor


@dataclass(slots=True)
class CompanyContext:
    company_id: UUID


bearer_scheme = HTTPBearer(auto_error=False)


def _parse_company_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_company", "message": "X-Company-ID must be a UUID"},
        ) from exc


async def get_company_context(
    company_id: str | None = Header(default=None, alias="X-Company-ID"),
) -> CompanyContext:
    if settings.tenancy_mode == "multi":
        if not company_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Company resolution failed: provide X-Company-ID header",
            )
        resolved = _parse_company_id(company_id)
    else:
        if not settings.default_company_id:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="DEFAULT_COMPANY_ID is not configured",
            )
        resolved = _parse_company_id(settings.default_company_id)
    set_company_id(str(resolved))
    return CompanyContext(company_id=resolved)


def _actor_from_token(token: str) -> Actor:
    try:
        claims = decode_token(token)
        actor = authz.actor_from_claims(claims)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc) or "Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    set_actor_id(str(actor.id))
    return actor


async def get_authenticated_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    """Resolve the bearer token without tying it to a company (platform-level routes)."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _actor_from_token(credentials.credentials)


async def get_current_actor(
    actor: Actor = Depends(get_authenticated_actor),
    ctx: CompanyContext = Depends(get_company_context),
) -> Actor:
    if actor.company_id != ctx.company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Actor does not belong to the requested company",
        )
    return actor


def require_permission(permission_code: PermissionCode | str, *, allow_approvers: bool = True):
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if allow_approvers and authz.is_approver(actor):
            return actor
        if actor.has_permission(permission_code):
            return actor
        target = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing permission: {target}",
        )

    return dependency
