# Overview: Caller identity from upstream gateway headers and explicit role checks.

"""
Authentication happens upstream. The gateway forwards the resolved tenant,
role and user as headers; routes turn them into a Principal and call
require_role() before touching any service. Services only ever see the
explicit tenant_id taken from the Principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .domain import ROLE_OWNER, ROLE_SELLER
from .errors import AuthenticationRequired, AuthorizationError

TENANT_HEADER = "X-Tenant-Id"
ROLE_HEADER = "X-User-Role"
USER_HEADER = "X-User-Id"

KNOWN_ROLES = (ROLE_OWNER, ROLE_SELLER)
SALES_ROLES = (ROLE_OWNER, ROLE_SELLER)
PURCHASE_ROLES = (ROLE_OWNER,)


@dataclass(frozen=True)
class Principal:
    tenant_id: int
    role: str
    user_id: int | None = None


def _positive_int(raw: str | None, header: str) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw)
    except ValueError:
        raise AuthenticationRequired(f"{header} must be an integer")
    if value <= 0:
        raise AuthenticationRequired(f"{header} must be positive")
    return value


def principal_from_headers(headers) -> Principal:
    """Build the caller's Principal; missing tenant or role is a 401."""
    tenant_id = _positive_int(headers.get(TENANT_HEADER), TENANT_HEADER)
    role = (headers.get(ROLE_HEADER) or "").strip().upper()
    if tenant_id is None or not role:
        raise AuthenticationRequired("Authentication required")
    return Principal(
        tenant_id=tenant_id,
        role=role,
        user_id=_positive_int(headers.get(USER_HEADER), USER_HEADER),
    )


def require_role(principal: Principal, roles: Iterable[str]) -> Principal:
    roles = tuple(roles)
    if principal.role not in roles:
        raise AuthorizationError(
            "Permission denied",
            details={"role": principal.role, "required": list(roles)},
        )
    return principal
