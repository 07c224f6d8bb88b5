#!/usr/bin/env python3
"""
Persistence Fan-out Tests
==========================
Each of the three backend writes is isolated: a failure or timeout in one
leaves the other two successful. Transcript writes go to a fake store that
records calls in order.
"""
from __future__ import annotations
import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from advisor.persistence import SHORT_TERM, TRANSCRIPT, PersistenceFanout
from advisor.records import PersistenceOutcome, StreamingResult
from advisor.retrieval.long_term import BACKEND as LONG_TERM
from advisor.session_memory import SessionMemoryCache

RESULT = StreamingResult(content="Hold for now.", suggestions=["Why?"])


class FakeTranscript:
    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.calls = []

    async def _maybe_fail(self):
        if self.mode == "error":
            raise OSError("database is locked")
        if self.mode == "timeout":
            await asyncio.sleep(10)

    async def add_chat_message(self, session_id, role, content, timestamp=None):
        await self._maybe_fail()
        self.calls.append(("message", session_id, role, content))

    async def upsert_chat_session(self, session_id, user_id, title="New Chat"):
        await self._maybe_fail()
        self.calls.append(("session", session_id, user_id, title))


class FakeLongTerm:
    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.appended = []

    async def append(self, user_id, question, answer, timestamp=None):
        if self.mode == "error":
            raise ConnectionError("vector store down")
        if self.mode == "timeout":
            await asyncio.sleep(10)
        self.appended.append((user_id, question, answer))
        return PersistenceOutcome.ok(LONG_TERM)


class FailingMemory(SessionMemoryCache):
    def __init__(self, mode: str, **kwargs):
        super().__init__(**kwargs)
        self.mode = mode

    async def append(self, user_id, turn):
        if self.mode == "error":
            raise RuntimeError("memory corrupted")
        if self.mode == "timeout":
            await asyncio.sleep(10)
        await super().append(user_id, turn)


def _fanout(short="ok", long="ok", transcript="ok", timeout=0.1):
    long_term = FakeLongTerm(long)
    memory = FailingMemory(short, long_term=long_term)
    store = FakeTranscript(transcript)
    return PersistenceFanout(memory, transcript=store, timeout=timeout), memory, long_term, store


# ── Happy path ──────────────────────────────────────────────────────────

def test_commit_writes_all_three_backends():
    async def run():
        fanout, memory, long_term, store = _fanout()
        report = await fanout.commit("u1", "s1", "Should I sell MTNN?", RESULT)

        assert all(o.succeeded for o in report.outcomes())
        assert [o.backend for o in report.outcomes()] == [SHORT_TERM, LONG_TERM, TRANSCRIPT]
        assert [t.answer for t in memory.get("u1").turns()] == ["Hold for now."]
        assert long_term.appended == [("u1", "Should I sell MTNN?", "Hold for now.")]
        assert store.calls == [
            ("message", "s1", "user", "Should I sell MTNN?"),
            ("message", "s1", "ai", "Hold for now."),
            ("session", "s1", "u1", "Should I sell MTNN?"),
        ]

    asyncio.run(run())


def test_long_title_is_truncated():
    async def run():
        fanout, _, _, store = _fanout()
        await fanout.commit("u1", "s1", "x" * 200, RESULT)
        assert store.calls[-1][3] == "x" * 60

    asyncio.run(run())


def test_missing_long_term_handle_is_skipped_not_failed():
    async def run():
        memory = SessionMemoryCache()
        fanout = PersistenceFanout(memory, transcript=FakeTranscript(), timeout=0.1)
        report = await fanout.commit("u1", "s1", "q", RESULT)
        assert report.long_term.skipped
        assert report.long_term.succeeded
        assert report.short_term.succeeded and report.transcript.succeeded

    asyncio.run(run())


# ── Partial-failure isolation: 3 backends × {error, timeout} ────────────

@pytest.mark.parametrize("mode", ["error", "timeout"])
@pytest.mark.parametrize("failing", [SHORT_TERM, LONG_TERM, TRANSCRIPT])
def test_single_failure_is_isolated(failing, mode):
    async def run():
        fanout, _, _, _ = _fanout(
            short=mode if failing == SHORT_TERM else "ok",
            long=mode if failing == LONG_TERM else "ok",
            transcript=mode if failing == TRANSCRIPT else "ok",
        )
        report = await fanout.commit("u1", "s1", "q", RESULT)
        by_backend = {o.backend: o for o in report.outcomes()}

        assert not by_backend[failing].succeeded
        if mode == "timeout":
            assert "timed out" in by_backend[failing].reason
        for backend, outcome in by_backend.items():
            if backend != failing:
                assert outcome.succeeded, f"{backend} failed alongside {failing}"

    asyncio.run(run())


# ── Background scheduling ───────────────────────────────────────────────

def test_schedule_and_drain():
    async def run():
        fanout, memory, _, store = _fanout()
        task = fanout.schedule("u1", "s1", "q", RESULT)
        assert fanout.pending == 1
        await fanout.drain()
        assert task.done()
        assert fanout.pending == 0
        assert len(store.calls) == 3

    asyncio.run(run())


def test_drain_with_nothing_pending():
    async def run():
        fanout, _, _, _ = _fanout()
        await fanout.drain()

    asyncio.run(run())


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
