from __future__ import annotations
"""
Advisor — Shared Records
=========================
Value types passed between memory, generation and persistence.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationTurn:
    """One question/answer exchange. Immutable once appended to a window."""

    question: str
    answer: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PersistenceOutcome:
    """Result of one backend write for one committed turn."""

    backend: str
    succeeded: bool
    reason: Optional[str] = None
    skipped: bool = False

    @classmethod
    def ok(cls, backend: str) -> "PersistenceOutcome":
        return cls(backend=backend, succeeded=True)

    @classmethod
    def failed(cls, backend: str, reason: str) -> "PersistenceOutcome":
        return cls(backend=backend, succeeded=False, reason=reason)

    @classmethod
    def not_configured(cls, backend: str) -> "PersistenceOutcome":
        return cls(backend=backend, succeeded=True, reason="not configured", skipped=True)


class Analysis(BaseModel):
    """Stock evaluation attached to an answer. Rating is a closed set."""

    rating: Literal["Buy", "Sell", "Hold"]
    currentPrice: Optional[str] = None
    targetPrice: Optional[str] = None
    upside: Optional[str] = None

    @field_validator("currentPrice", "targetPrice", "upside", mode="before")
    @classmethod
    def _numbers_as_text(cls, value):
        # Models sometimes emit 38.5 instead of "₦38.50"
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


@dataclass
class StreamingResult:
    """Structured result extracted from the accumulated generation text."""

    content: str
    suggestions: list[str] = field(default_factory=list)
    analysis: Optional[Analysis] = None

    def to_frame(self) -> dict:
        return {
            "done": True,
            "content": self.content,
            "suggestions": list(self.suggestions),
            "analysis": self.analysis.model_dump() if self.analysis else None,
        }
