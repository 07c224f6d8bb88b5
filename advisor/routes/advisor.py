from __future__ import annotations
"""
Advisor — Streaming Ask Route
==============================
POST /api/advisor/ask streams the answer as text/event-stream:

  data: <delta>\\n\\n                       one event per generated delta
  data: {"done":true,"content":...}\\n\\n   terminal result frame
  data: {"done":true,"error":...}\\n\\n     terminal frame on generation failure

Auth (401), question (400) and session ownership (404, only for a session
stored under another user) are checked before
the first frame. After that, failures only travel through the frame protocol.
"""
import asyncio
import json
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from advisor import database
from advisor.config import DISCONNECT_POLL_SECONDS, LONG_TERM_TOP_K
from advisor.context_builder import build_prompt
from advisor.errors import ValidationFailed
from advisor.identity import Principal, get_principal
from advisor.models import AskRequest
from advisor.result_parser import parse_result
from advisor.services import AdvisorServices, get_services
from advisor.streaming import relay

logger = logging.getLogger(__name__)

router = APIRouter()

GENERATION_FAILED = "The advisor could not finish this answer. Please try again."


def sse_frame(payload: str) -> str:
    """One SSE event. Multi-line payloads get one ``data:`` line per line."""
    lines = payload.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "".join(f"data: {line}\n" for line in lines) + "\n"


def json_frame(data: dict) -> str:
    return sse_frame(json.dumps(data, separators=(",", ":"), ensure_ascii=False))


async def _watch_disconnect(request: Request, disconnected: asyncio.Event) -> None:
    while not disconnected.is_set():
        if await request.is_disconnected():
            disconnected.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


# Routes
# ===========================================================================

@router.post("/api/advisor/ask")
async def ask_advisor(
    req: AskRequest,
    request: Request,
    principal: Principal = Depends(get_principal),
    services: AdvisorServices = Depends(get_services),
):
    """Stream an answer to one question, then persist the turn."""
    question = (req.question or "").strip()
    if not question:
        raise ValidationFailed("Question is required")

    user_id = principal.uid

    if req.session_id:
        chat = await database.get_chat_session(req.session_id)
        # No row yet: the first turn's transcript is still pending or failed
        if chat is not None and chat["user_id"] != user_id:
            raise HTTPException(status_code=404, detail="Session not found")
        session_id = req.session_id
    else:
        session_id = str(uuid.uuid4())

    memory = await services.memory.get_or_create(user_id)

    excerpts = []
    if memory.long_term is not None:
        excerpts = await memory.long_term.retrieve(user_id, question, LONG_TERM_TOP_K)

    market_rows = await services.market.snapshot()
    if not market_rows:
        logger.info("[advisor] No market snapshot available; answering without market data")

    prompt = build_prompt(
        question,
        profile=req.profile,
        market_snapshot=market_rows,
        short_term_history=memory.turns(),
        long_term_excerpts=excerpts,
    )
    stream = services.orchestrator.invoke(prompt, user_id=user_id)

    logger.info(
        f"[advisor] user={user_id} session={session_id} "
        f"history={len(prompt.short_term_history)} excerpts={len(excerpts)} "
        f"market_rows={len(prompt.market_snapshot)}"
    )

    async def event_generator():
        """SSE event generator."""
        disconnected = asyncio.Event()
        watcher = asyncio.create_task(_watch_disconnect(request, disconnected))
        try:
            async for delta in relay(stream, disconnected):
                if delta:
                    yield sse_frame(delta)

            if disconnected.is_set():
                # Nothing reached the client in full; nothing is persisted
                return

            if stream.error is not None:
                yield json_frame({"done": True, "error": GENERATION_FAILED})
                return

            result = parse_result(stream.text)
            services.fanout.schedule(user_id, session_id, question, result)
            yield json_frame(result.to_frame())
        finally:
            watcher.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Session-Id": session_id,
        },
    )
