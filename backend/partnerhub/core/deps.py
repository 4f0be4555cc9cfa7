from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from partnerhub.core.errors import Forbidden, Unauthorized
from partnerhub.core.identity import ResolvedIdentity, identity_resolver
from partnerhub.core.security import Principal, decode_token, principal_from_claims
from partnerhub.db.session import get_db

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("security")


def _log_auth_event(event: str, *, request: Request, extra: Optional[dict] = None) -> None:
    payload = {
        "event": event,
        "request_id": request.headers.get("x-request-id"),
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else None,
    }
    if extra:
        payload.update(extra)
    logger.info(json.dumps(payload, default=str))


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        _log_auth_event("token_missing", request=request)
        raise Unauthorized("Could not validate credentials")
    try:
        claims = decode_token(credentials.credentials)
    except JWTError:
        _log_auth_event("token_invalid", request=request)
        raise Unauthorized("Could not validate credentials")

    principal = principal_from_claims(claims)
    if principal is None:
        _log_auth_event("token_missing_sub", request=request)
        raise Unauthorized("Could not validate credentials")
    return principal


def get_current_identity(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> ResolvedIdentity:
    identity = identity_resolver.resolve(db, principal)
    if identity.is_disabled:
        _log_auth_event("account_disabled", request=request, extra={"principal_id": principal.id})
        raise Forbidden("account_disabled")
    request.state.identity = identity
    return identity
