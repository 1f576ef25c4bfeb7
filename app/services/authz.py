"""Actor identity and the authorization rules the ledger services enforce."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from uuid import UUID

from app.core.permissions import ActorRole, PermissionCode
from app.core.settings import settings
from app.services.ledger_errors import AuthorizationError


@dataclass(frozen=True, slots=True)
class Actor:
    id: UUID
    company_id: UUID | None
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    employee_id: UUID | None = None
    is_system: bool = False

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)

    def has_permission(self, code: PermissionCode | str) -> bool:
        target = code.value if isinstance(code, PermissionCode) else str(code)
        return target in self.permissions


# Used by the scheduler; refreshes are the only operation it runs.
SYSTEM_ACTOR = Actor(
    id=UUID(int=0),
    company_id=None,
    roles=frozenset({ActorRole.SUPER_ADMIN.value}),
    is_system=True,
)


def _as_uuid(value: Any) -> UUID | None:
    if value in (None, ""):
        return None
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


def _as_strings(value: Any) -> frozenset[str]:
    if not value:
        return frozenset()
    if isinstance(value, str):
        return frozenset(part.strip() for part in value.split(",") if part.strip())
    return frozenset(str(item) for item in value)


def actor_from_claims(claims: Mapping[str, Any]) -> Actor:
    """Build an Actor from decoded token claims; raises ValueError on malformed ids."""
    subject = claims.get("sub")
    if not subject:
        raise ValueError("Token subject missing")
    return Actor(
        id=_as_uuid(subject),
        company_id=_as_uuid(claims.get("company_id")),
        roles=_as_strings(claims.get("roles")),
        permissions=_as_strings(claims.get("permissions")),
        employee_id=_as_uuid(claims.get("employee_id")),
    )


def approver_roles() -> frozenset[str]:
    return frozenset(settings.approver_roles)


def is_approver(actor: Actor) -> bool:
    if actor.has_role(*approver_roles()):
        return True
    return actor.has_permission(settings.approver_permission)


def require_approver(actor: Actor, *, action: str) -> None:
    if not is_approver(actor):
        raise AuthorizationError(
            "Actor is not allowed to approve settlements",
            details={"action": action, "actor_id": str(actor.id)},
        )


def require_company(actor: Actor, company_id: UUID) -> None:
    if actor.is_system:
        return
    if actor.company_id != company_id:
        raise AuthorizationError(
            "Actor does not belong to this company",
            details={"company_id": str(company_id)},
        )


def require_employee(actor: Actor, employee_id: UUID, *, action: str) -> None:
    if actor.employee_id != employee_id:
        raise AuthorizationError(
            "Only the owning employee may perform this action",
            details={"action": action, "employee_id": str(employee_id)},
        )


def require_any_permission(actor: Actor, codes: Iterable[PermissionCode | str], *, action: str) -> None:
    if actor.has_role(ActorRole.SUPER_ADMIN.value, ActorRole.COMPANY_ADMIN.value):
        return
    if any(actor.has_permission(code) for code in codes):
        return
    raise AuthorizationError("Missing permission", details={"action": action})
