from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from partnerhub.core.settings import settings


@dataclass(frozen=True)
class Principal:
    """An authenticated caller as asserted by the identity provider.

    ``app_metadata`` is administratively set and trusted; ``user_metadata`` is
    self-service and only consulted when the trusted channel carries no role.
    """

    id: str
    email: Optional[str] = None
    app_metadata: Dict[str, Any] = field(default_factory=dict)
    user_metadata: Dict[str, Any] = field(default_factory=dict)


def _expiry_delta(expires_delta: Optional[timedelta]) -> timedelta:
    if expires_delta is not None:
        return expires_delta
    minutes = settings.access_token_expire_minutes
    if minutes <= 0:
        minutes = 60
    return timedelta(minutes=minutes)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + _expiry_delta(expires_delta)
    to_encode.setdefault("iat", now)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.algorithm])


def principal_from_claims(claims: Dict[str, Any]) -> Optional[Principal]:
    raw_id = claims.get("sub")
    if raw_id is None or str(raw_id).strip() == "":
        return None
    app_metadata = claims.get("app_metadata")
    user_metadata = claims.get("user_metadata")
    return Principal(
        id=str(raw_id),
        email=claims.get("email"),
        app_metadata=dict(app_metadata) if isinstance(app_metadata, dict) else {},
        user_metadata=dict(user_metadata) if isinstance(user_metadata, dict) else {},
    )
