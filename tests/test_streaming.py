#!/usr/bin/env python3
"""
Streaming Orchestrator Tests
=============================
Delta ordering, mid-stream failure, single-use iteration, and cancellation
on client disconnect. Token sources are local async generators.
"""
from __future__ import annotations
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from advisor.context_builder import build_prompt
from advisor.streaming import GenerationStream, StreamingOrchestrator, relay

PROMPT = build_prompt("What's AAPL's outlook?")


def scripted(deltas, fail_after: int | None = None):
    async def source(prompt, user_id=None):
        for i, delta in enumerate(deltas):
            if fail_after is not None and i == fail_after:
                raise ConnectionError("upstream reset")
            await asyncio.sleep(0)
            yield delta

    return source


class EndlessSource:
    """Yields forever until closed; records whether it was closed."""

    def __init__(self):
        self.produced = 0
        self.closed = False

    async def __call__(self, prompt, user_id=None):
        try:
            while True:
                await asyncio.sleep(0.01)
                self.produced += 1
                yield f"tok{self.produced} "
        finally:
            self.closed = True


# ── Ordering and accumulation ───────────────────────────────────────────

def test_deltas_arrive_in_order_and_accumulate():
    async def run():
        orchestrator = StreamingOrchestrator(scripted(["Hel", "lo", " world"]))
        stream = orchestrator.invoke(PROMPT)
        seen = [d async for d in stream]
        assert seen == ["Hel", "lo", " world"]
        assert stream.text == "Hello world"
        assert stream.finished and stream.error is None

    asyncio.run(run())


def test_stream_is_not_restartable():
    async def run():
        stream = StreamingOrchestrator(scripted(["a"])).invoke(PROMPT)
        async for _ in stream:
            pass
        try:
            async for _ in stream:
                pass
        except RuntimeError:
            return
        raise AssertionError("second iteration was allowed")

    asyncio.run(run())


def test_nothing_is_requested_until_iterated():
    calls = []

    async def source(prompt, user_id=None):
        calls.append(user_id)
        yield "x"

    async def run():
        stream = StreamingOrchestrator(source).invoke(PROMPT, user_id="u1")
        assert calls == []
        assert [d async for d in stream] == ["x"]
        assert calls == ["u1"]

    asyncio.run(run())


# ── Failure ─────────────────────────────────────────────────────────────

def test_mid_stream_error_keeps_partial_text():
    async def run():
        stream = StreamingOrchestrator(scripted(["par", "tial", "never"], fail_after=2)).invoke(PROMPT)
        seen = [d async for d in stream]
        assert seen == ["par", "tial"]
        assert stream.text == "partial"
        assert stream.error is not None
        assert "upstream reset" in str(stream.error)
        assert not stream.finished

    asyncio.run(run())


def test_error_before_first_delta():
    async def source(prompt, user_id=None):
        raise RuntimeError("ANTHROPIC_API_KEY not set")
        yield  # pragma: no cover

    async def run():
        stream = StreamingOrchestrator(source).invoke(PROMPT)
        assert [d async for d in stream] == []
        assert stream.text == ""
        assert stream.error is not None

    asyncio.run(run())


# ── Relay and cancellation ──────────────────────────────────────────────

def test_relay_passes_everything_without_disconnect():
    async def run():
        stream = StreamingOrchestrator(scripted(["a", "b", "c"])).invoke(PROMPT)
        seen = [d async for d in relay(stream, asyncio.Event())]
        assert seen == ["a", "b", "c"]
        assert stream.finished

    asyncio.run(run())


def test_disconnect_after_one_delta_cancels_upstream():
    async def run():
        source = EndlessSource()
        stream = StreamingOrchestrator(source).invoke(PROMPT)
        disconnected = asyncio.Event()

        seen = []
        async for delta in relay(stream, disconnected):
            seen.append(delta)
            disconnected.set()

        assert seen == ["tok1 "]
        assert stream.cancelled
        assert source.closed
        produced = source.produced
        await asyncio.sleep(0.05)
        assert source.produced == produced

    asyncio.run(run())


def test_disconnect_while_waiting_for_next_delta():
    async def run():
        source = EndlessSource()
        stream = StreamingOrchestrator(source).invoke(PROMPT)
        disconnected = asyncio.Event()
        seen = []

        async def consume():
            async for delta in relay(stream, disconnected):
                seen.append(delta)

        consumer = asyncio.create_task(consume())
        while not seen:
            await asyncio.sleep(0)
        disconnected.set()
        await asyncio.wait_for(consumer, timeout=1)

        assert stream.cancelled
        assert source.closed
        count = len(seen)
        await asyncio.sleep(0.05)
        assert len(seen) == count

    asyncio.run(run())


def test_cancel_after_finish_is_a_no_op():
    async def run():
        stream = GenerationStream(scripted(["a"])(PROMPT))
        assert [d async for d in stream] == ["a"]
        await stream.cancel()
        assert stream.finished and not stream.cancelled

    asyncio.run(run())


if __name__ == "__main__":
    import pytest

    sys.exit(pytest.main([__file__, "-v"]))
