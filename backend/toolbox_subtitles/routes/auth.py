"""Bearer-token authentication dependencies."""

from dataclasses import dataclass, field
from typing import FrozenSet

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer
from fastapi.security.http import HTTPAuthorizationCredentials

from toolbox_subtitles.utils.security import decode_access_token

security = HTTPBearer(auto_error=False)

VIEW_PERMISSION = "toolbox_talks.view"
EDIT_PERMISSION = "toolbox_talks.edit"


@dataclass(frozen=True)
class Principal:
    """Caller identity taken from the token claims."""

    user_id: str
    tenant_id: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)


def principal_from_token(token: str) -> Principal:
    """Decode a token into a principal.

    Raises:
        HTTPException: 401 if the token is invalid or lacks required claims
    """
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing subject or tenant",
            headers={"WWW-Authenticate": "Bearer"},
        )

    permissions = payload.get("permissions") or []
    if isinstance(permissions, str):
        permissions = permissions.split()
    return Principal(
        user_id=str(user_id), tenant_id=str(tenant_id), permissions=frozenset(permissions)
    )


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """
    Dependency to get the authenticated caller from the JWT token.

    Raises:
        HTTPException: 403 if the header is missing, 401 if the token is invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Authorization header missing",
        )
    return principal_from_token(credentials.credentials)


def require_permission(permission: str):
    """Build a dependency that also checks the caller holds ``permission``."""

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if permission not in principal.permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission}",
            )
        return principal

    return dependency
