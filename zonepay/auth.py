"""
Authentication boundary.

Authentication itself lives outside this service: an upstream gateway
verifies the caller and forwards the principal in trusted headers
(X-Principal-Id, X-Principal-Role). Deployments with a different scheme
override ``get_principal`` through FastAPI's dependency_overrides.

For principals with the client role, ``id`` is the client id.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException

from zonepay.models.enums import Role

PAYMENT_ROLES = (Role.MANAGER.value, Role.SUPERVISOR.value, Role.CHIEF.value, Role.CLIENT.value)


@dataclass(frozen=True)
class Principal:
    id: int
    role: str
    username: Optional[str] = None


async def get_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_role: Optional[str] = Header(None),
) -> Principal:
    if not x_principal_id or not x_principal_role:
        raise HTTPException(status_code=401, detail="Missing authorization")
    try:
        principal_id = int(x_principal_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid principal") from None
    return Principal(id=principal_id, role=x_principal_role.strip().lower())


def require_role(*roles: str) -> Callable:
    """Dependency factory: the principal must hold one of ``roles``."""

    async def checker(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden: insufficient role")
        return principal

    return checker
