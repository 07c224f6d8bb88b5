from __future__ import annotations
"""
Advisor — Streaming Orchestrator
=================================
Wraps the upstream model call as a finite, non-restartable sequence of text
deltas.

  invoke(prompt) → GenerationStream
      Pull deltas with ``async for``. The stream accumulates the full text as
      it goes. An upstream error ends iteration cleanly: ``stream.error`` is
      set and ``stream.text`` keeps whatever arrived before the failure.

  relay(stream, disconnected)
      Yields deltas until the stream ends or the ``disconnected`` event fires.
      On disconnect the pending upstream read is cancelled and the upstream
      generator closed, so nothing further is consumed or relayed.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable

import anthropic

from advisor import database
from advisor.config import (
    ADVISOR_MAX_TOKENS,
    ADVISOR_MODEL,
    ADVISOR_TEMPERATURE,
    ANTHROPIC_API_KEY,
)
from advisor.context_builder import PromptContext
from advisor.errors import GenerationError
from advisor.prompting import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

# A token source turns a prompt into an async iterator of text deltas.
TokenSource = Callable[..., AsyncIterator[str]]


# ---------------------------------------------------------------------------
# Anthropic client
# ---------------------------------------------------------------------------
_client = None


def _get_client() -> anthropic.AsyncAnthropic:
    global _client
    if _client is None:
        if not ANTHROPIC_API_KEY:
            raise RuntimeError(
                "ANTHROPIC_API_KEY not set. Add it to your .env file."
            )
        _client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)
    return _client


class AnthropicTokenSource:
    """Streams text deltas from the Messages API."""

    def __init__(
        self,
        model: str = ADVISOR_MODEL,
        max_tokens: int = ADVISOR_MAX_TOKENS,
        temperature: float = ADVISOR_TEMPERATURE,
        client=None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client

    async def __call__(self, prompt: PromptContext, user_id: str | None = None) -> AsyncIterator[str]:
        client = self._client or _get_client()
        async with client.messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=SYSTEM_PROMPT,
            messages=prompt.messages(),
        ) as stream:
            async for text in stream.text_stream:
                yield text

            response = await stream.get_final_message()
            logger.info(
                f"[stream] model={response.model} "
                f"stop_reason={response.stop_reason} "
                f"input_tokens={response.usage.input_tokens} "
                f"output_tokens={response.usage.output_tokens}"
            )
            await database.log_llm_usage(response.usage, response.model, user_id)


# ===========================================================================
# Generation stream
# ===========================================================================

class GenerationStream:
    """One generation. Iterate once; the accumulated text stays available."""

    def __init__(self, upstream: AsyncIterator[str]):
        self._upstream = upstream
        self._parts: list[str] = []
        self._started = False
        self._closed = False
        self.error: GenerationError | None = None
        self.cancelled = False
        self.finished = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def done(self) -> bool:
        return self.finished or self.cancelled or self.error is not None

    def __aiter__(self) -> "GenerationStream":
        if self._started:
            raise RuntimeError("GenerationStream can only be iterated once")
        self._started = True
        return self

    async def __anext__(self) -> str:
        if self.done:
            raise StopAsyncIteration
        try:
            delta = await self._upstream.__anext__()
        except StopAsyncIteration:
            self.finished = True
            raise
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        except Exception as e:
            self.error = GenerationError(str(e) or e.__class__.__name__)
            logger.error(f"[stream] Upstream failed after {len(self.text)} chars: {self.error}")
            await self._close()
            raise StopAsyncIteration
        self._parts.append(delta)
        return delta

    async def cancel(self) -> None:
        """Stop consuming and release the upstream call."""
        if self.finished or self.error is not None:
            return
        self.cancelled = True
        await self._close()

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._upstream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug(f"[stream] Error closing upstream: {e}")


class StreamingOrchestrator:
    def __init__(self, source: TokenSource | None = None):
        self._source = source or AnthropicTokenSource()

    def invoke(self, prompt: PromptContext, user_id: str | None = None) -> GenerationStream:
        """Start a generation. Nothing is requested until the stream is iterated."""
        return GenerationStream(self._source(prompt, user_id=user_id))


# ===========================================================================
# Relay with disconnect handling
# ===========================================================================

async def relay(stream: GenerationStream, disconnected: asyncio.Event) -> AsyncIterator[str]:
    """Yield deltas in generation order until exhaustion, error or disconnect."""
    iterator = stream.__aiter__()
    waiter = asyncio.ensure_future(disconnected.wait())
    pending: asyncio.Future | None = None
    try:
        while True:
            pending = asyncio.ensure_future(iterator.__anext__())
            done, _ = await asyncio.wait(
                {pending, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if waiter in done:
                logger.info(f"[stream] Client disconnected after {len(stream.text)} chars; cancelling generation")
                break
            try:
                delta = pending.result()
            except StopAsyncIteration:
                pending = None
                return
            pending = None
            yield delta
    finally:
        waiter.cancel()
        if pending is not None and not pending.done():
            pending.cancel()
            try:
                await pending
            except (asyncio.CancelledError, StopAsyncIteration):
                pass
        await stream.cancel()
