"""Bearer tokens for the subtitle API.

Tokens are issued by the host application. Each one carries the user id as
``sub``, the caller's ``tenant_id`` and a list of ``permissions``.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from jose import JWTError, jwt

from toolbox_subtitles.config import settings

_DECODE_OPTIONS = {"require_exp": True, "require_sub": True}


def create_access_token(
    user_id: str,
    tenant_id: str,
    permissions: Iterable[str] = (),
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign a token for a tenant user.

    Args:
        user_id: Subject of the token
        tenant_id: Tenant every request with this token is scoped to
        permissions: Permission names such as ``toolbox_talks.view``
        expires_delta: Lifetime; defaults to ``access_token_expire_minutes``

    Returns:
        Encoded JWT
    """
    issued = datetime.utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
        "permissions": sorted(set(permissions)),
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the verified claims, or None if the token is invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options=_DECODE_OPTIONS,
        )
    except JWTError:
        return None
