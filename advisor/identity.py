from __future__ import annotations
"""
Advisor — Identity
===================
Resolves the caller's bearer token to a Principal. Tokens are issued by the
external identity service and registered in ``auth_sessions``; this module
only looks them up.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Header, Request

from advisor import database
from advisor.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None


TokenVerifier = Callable[[str], Awaitable[Optional[Principal]]]


def bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


async def database_verifier(token: str) -> Principal | None:
    """Default verifier: token → user row via auth_sessions."""
    user = await database.get_user_by_token(token)
    if user is None:
        return None
    return Principal(uid=user["id"], email=user["email"], display_name=user["display_name"])


async def get_principal(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Principal:
    """FastAPI dependency. Raises AuthError (401) when no principal resolves."""
    token = bearer_token(authorization)
    if token is None:
        raise AuthError("Unauthorized")

    verifier: TokenVerifier = request.app.state.services.verifier
    principal = await verifier(token)
    if principal is None:
        logger.info("[auth] Rejected unknown or expired token")
        raise AuthError("Unauthorized")
    return principal
