from __future__ import annotations
"""
Advisor — Context Assembler
============================
Combines the question, the caller's profile, the market snapshot and both
memory tiers into one bounded prompt.

Section order is fixed:
  1. Question
  2. User profile        (only if non-empty)
  3. Market data         (only if non-empty; first MARKET_SNAPSHOT_LIMIT rows)
  4. Past conversations  (only if some excerpt has non-blank text)
  5. Answer-format reminder

The short-term window is NOT flattened into the text. It travels alongside
as structured turns and becomes alternating user/assistant messages.
Building never raises; a bad optional input just drops its section.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from advisor.config import MARKET_SNAPSHOT_LIMIT
from advisor.market_data import MarketRow
from advisor.prompting import RESPONSE_FORMAT
from advisor.records import ConversationTurn

logger = logging.getLogger(__name__)


@dataclass
class PromptContext:
    question: str
    text: str
    profile: dict | None = None
    market_snapshot: list[MarketRow] = field(default_factory=list)
    short_term_history: list[ConversationTurn] = field(default_factory=list)
    long_term_excerpts: list[str] = field(default_factory=list)

    def messages(self) -> list[dict]:
        """Turn-structured input: prior exchanges, then the assembled prompt."""
        messages = []
        for turn in self.short_term_history:
            if not turn.question or not turn.answer:
                continue
            messages.append({"role": "user", "content": turn.question})
            messages.append({"role": "assistant", "content": turn.answer})
        messages.append({"role": "user", "content": self.text})
        return messages


def format_market_row(row: MarketRow | dict) -> str:
    if isinstance(row, dict):
        row = MarketRow.from_api(row) or MarketRow(symbol="?", name="?")
    return (
        f"{row.symbol} ({row.name}) - Open: {row.open}, Close: {row.close}, "
        f"Change: {row.change}, Volume: {row.volume}"
    )


def _market_section(rows: Iterable, limit: int) -> tuple[list[MarketRow], str]:
    kept = []
    for row in rows or []:
        if len(kept) >= limit:
            break
        if isinstance(row, dict):
            row = MarketRow.from_api(row)
        if isinstance(row, MarketRow):
            kept.append(row)
    return kept, "\n".join(format_market_row(r) for r in kept)


def _profile_section(profile: Any) -> str:
    if not isinstance(profile, dict) or not profile:
        return ""
    try:
        return json.dumps(profile, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        logger.warning(f"[context] Dropping unserializable profile: {e}")
        return ""


def build_prompt(
    question: str,
    profile: dict | None = None,
    market_snapshot: Iterable | None = None,
    short_term_history: Iterable[ConversationTurn] | None = None,
    long_term_excerpts: Iterable[str] | None = None,
    market_limit: int = MARKET_SNAPSHOT_LIMIT,
) -> PromptContext:
    """Assemble the prompt for one request."""
    question = (question or "").strip()
    sections = [f"Question:\n{question}"]

    profile_text = _profile_section(profile)
    if profile_text:
        sections.append(f"User Profile:\n{profile_text}")

    rows, market_text = _market_section(market_snapshot, market_limit)
    if market_text:
        sections.append(f"Market Data:\n{market_text}")

    excerpts = [e.strip() for e in (long_term_excerpts or []) if isinstance(e, str) and e.strip()]
    if excerpts:
        sections.append("Relevant Past Conversations:\n" + "\n---\n".join(excerpts))

    sections.append(RESPONSE_FORMAT)

    history = [t for t in (short_term_history or []) if isinstance(t, ConversationTurn)]

    return PromptContext(
        question=question,
        text="\n\n".join(sections),
        profile=profile if profile_text else None,
        market_snapshot=rows,
        short_term_history=history,
        long_term_excerpts=excerpts,
    )
