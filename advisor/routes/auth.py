from __future__ import annotations
"""
Advisor — Auth Routes
======================
Tokens are minted by the external identity service. These routes only let
a client see who a token resolves to and revoke it.
"""
import logging

from fastapi import APIRouter, Depends, Header

from advisor import database
from advisor.identity import Principal, bearer_token, get_principal

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/auth/me")
async def auth_me(principal: Principal = Depends(get_principal)):
    """Return the principal behind the bearer token."""
    return {
        "uid": principal.uid,
        "email": principal.email,
        "display_name": principal.display_name,
    }


@router.post("/api/auth/logout")
async def auth_logout(
    principal: Principal = Depends(get_principal),
    authorization: str | None = Header(default=None),
):
    """Revoke the current bearer token."""
    await database.delete_auth_session(bearer_token(authorization))
    logger.info(f"[auth] {principal.uid} logged out")
    return {"success": True}
