from __future__ import annotations
"""
Advisor — Service Wiring
=========================
Builds the process-wide collaborators once at startup and hands them to
routes through ``app.state.services``.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from advisor.config import (
    LONG_TERM_ENABLED,
    MEMORY_TTL_SECONDS,
    MEMORY_WINDOW_SIZE,
    OPENAI_API_KEY,
    PERSISTENCE_TIMEOUT_SECONDS,
)
from advisor.identity import TokenVerifier, database_verifier
from advisor.market_data import MarketSnapshotCache
from advisor.persistence import PersistenceFanout
from advisor.retrieval.long_term import LongTermMemory
from advisor.session_memory import SessionMemoryCache
from advisor.streaming import StreamingOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class AdvisorServices:
    memory: SessionMemoryCache
    market: MarketSnapshotCache
    orchestrator: StreamingOrchestrator
    fanout: PersistenceFanout
    verifier: TokenVerifier


def build_long_term() -> LongTermMemory | None:
    if not LONG_TERM_ENABLED:
        print("[startup] Long-term memory disabled")
        return None
    if not OPENAI_API_KEY:
        print("[startup] WARNING: OPENAI_API_KEY not set, long-term memory disabled")
        return None
    return LongTermMemory()


def build_services() -> AdvisorServices:
    memory = SessionMemoryCache(
        capacity=MEMORY_WINDOW_SIZE,
        ttl_seconds=MEMORY_TTL_SECONDS,
        long_term=build_long_term(),
    )
    return AdvisorServices(
        memory=memory,
        market=MarketSnapshotCache(),
        orchestrator=StreamingOrchestrator(),
        fanout=PersistenceFanout(memory, timeout=PERSISTENCE_TIMEOUT_SECONDS),
        verifier=database_verifier,
    )


def get_services(request: Request) -> AdvisorServices:
    return request.app.state.services
