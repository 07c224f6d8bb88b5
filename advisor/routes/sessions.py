from __future__ import annotations
"""
Advisor — Chat Session Routes
==============================
Read and delete access to a user's stored transcripts.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from advisor import database
from advisor.identity import Principal, get_principal

logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_session(session_id: str, principal: Principal) -> dict:
    session = await database.get_chat_session(session_id)
    # Foreign sessions look the same as missing ones
    if session is None or session["user_id"] != principal.uid:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


# Routes: Chat Sessions (auth required)
# ===========================================================================

@router.get("/api/chat/sessions")
async def list_chat_sessions(principal: Principal = Depends(get_principal)):
    """List the caller's chat sessions, most recent first."""
    sessions = await database.get_user_chat_sessions(principal.uid)
    return {"sessions": sessions}


@router.get("/api/chat/sessions/{session_id}")
async def get_chat_session(session_id: str, principal: Principal = Depends(get_principal)):
    """Get a chat session with its messages."""
    return await _owned_session(session_id, principal)


@router.delete("/api/chat/sessions/{session_id}")
async def delete_chat_session(session_id: str, principal: Principal = Depends(get_principal)):
    """Delete a chat session and its transcript."""
    await _owned_session(session_id, principal)
    await database.delete_chat_session(session_id)
    logger.info(f"[sessions] {principal.uid} deleted {session_id}")
    return {"success": True}
