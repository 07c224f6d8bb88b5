from __future__ import annotations
"""
Advisor — Persistence Fan-out
==============================
Commits one finished turn to three independent backends concurrently:

  short_term   the user's recent-turn window (SessionMemoryCache)
  long_term    the user's vector store, when the session carries a handle
  transcript   user message, then ai message, then the chat session's
               last-modified marker (aiosqlite)

Each write gets its own timeout and yields its own PersistenceOutcome. A
failure in one never cancels or retries the others, and is logged once.
Commits run after the terminal frame has gone out; schedule() keeps a
reference to each task so shutdown can drain them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable

from advisor import database
from advisor.config import PERSISTENCE_TIMEOUT_SECONDS
from advisor.records import ConversationTurn, PersistenceOutcome, StreamingResult, utcnow
from advisor.retrieval.long_term import BACKEND as LONG_TERM
from advisor.session_memory import SessionMemoryCache

logger = logging.getLogger(__name__)

SHORT_TERM = "short_term"
TRANSCRIPT = "transcript"

TITLE_LENGTH = 60


@dataclass(frozen=True)
class FanoutReport:
    short_term: PersistenceOutcome
    long_term: PersistenceOutcome
    transcript: PersistenceOutcome

    def outcomes(self) -> list[PersistenceOutcome]:
        return [self.short_term, self.long_term, self.transcript]

    def summary(self) -> str:
        parts = []
        for o in self.outcomes():
            if o.skipped:
                parts.append(f"{o.backend}=skipped")
            elif o.succeeded:
                parts.append(f"{o.backend}=ok")
            else:
                parts.append(f"{o.backend}=failed")
        return " ".join(parts)


class PersistenceFanout:
    def __init__(
        self,
        memory: SessionMemoryCache,
        transcript=database,
        timeout: float = PERSISTENCE_TIMEOUT_SECONDS,
    ):
        self.memory = memory
        self.transcript = transcript
        self.timeout = timeout
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def _bounded(self, backend: str, write: Awaitable, user_id: str) -> PersistenceOutcome:
        try:
            result = await asyncio.wait_for(write, timeout=self.timeout)
        except asyncio.TimeoutError:
            reason = f"timed out after {self.timeout}s"
        except Exception as e:
            reason = str(e) or e.__class__.__name__
        else:
            # Adapters that report their own outcome have already logged it
            if isinstance(result, PersistenceOutcome):
                return result
            return PersistenceOutcome.ok(backend)
        logger.warning(f"[fanout] {backend} write failed for {user_id}: {reason}")
        return PersistenceOutcome.failed(backend, reason)

    async def _write_transcript(self, session_id: str, user_id: str, question: str, answer: str) -> None:
        await self.transcript.add_chat_message(session_id, "user", question, utcnow().isoformat())
        await self.transcript.add_chat_message(session_id, "ai", answer, utcnow().isoformat())
        await self.transcript.upsert_chat_session(session_id, user_id, question[:TITLE_LENGTH])

    async def _skip(self, backend: str) -> PersistenceOutcome:
        return PersistenceOutcome.not_configured(backend)

    async def commit(
        self,
        user_id: str,
        session_id: str,
        question: str,
        result: StreamingResult,
    ) -> FanoutReport:
        """Write the turn to every backend. Never raises."""
        turn = ConversationTurn(question=question, answer=result.content)

        session = self.memory.get(user_id)
        handle = session.long_term if session is not None else self.memory.long_term

        if handle is None:
            long_term_write = self._skip(LONG_TERM)
        else:
            long_term_write = self._bounded(
                LONG_TERM,
                handle.append(user_id, question, result.content, turn.timestamp),
                user_id,
            )

        short_term, long_term, transcript = await asyncio.gather(
            self._bounded(SHORT_TERM, self.memory.append(user_id, turn), user_id),
            long_term_write,
            self._bounded(
                TRANSCRIPT,
                self._write_transcript(session_id, user_id, question, result.content),
                user_id,
            ),
        )
        report = FanoutReport(short_term=short_term, long_term=long_term, transcript=transcript)
        logger.info(f"[fanout] session={session_id} user={user_id} {report.summary()}")
        return report

    def schedule(
        self,
        user_id: str,
        session_id: str,
        question: str,
        result: StreamingResult,
    ) -> asyncio.Task:
        """Run commit() in the background, tracked until it finishes."""
        task = asyncio.create_task(self.commit(user_id, session_id, question, result))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled commit (each is bounded by its timeouts)."""
        if not self._pending:
            return
        logger.info(f"[fanout] Draining {len(self._pending)} pending commit(s)")
        await asyncio.gather(*list(self._pending), return_exceptions=True)
