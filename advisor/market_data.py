from __future__ import annotations
"""
Advisor — Market Snapshot
==========================
Process-wide cache of the latest market snapshot.

The upstream feed returns ``{"data": [ {symbol, securityName, open, close,
change, dailyVolume}, ... ]}``. Rows are normalised to MarketRow. The cache
refreshes lazily once it is older than the refresh interval; a failed fetch
keeps the previous snapshot, and a cache that has never been filled returns
an empty list (the advisor then gives general, non-data-backed advice).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable

import httpx

from advisor.config import (
    MARKET_DATA_URL,
    MARKET_FETCH_TIMEOUT_SECONDS,
    MARKET_REFRESH_SECONDS,
)
from advisor.errors import BackendUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketRow:
    symbol: str
    name: str
    open: Any = None
    close: Any = None
    change: Any = None
    volume: Any = None

    @classmethod
    def from_api(cls, raw: dict) -> "MarketRow | None":
        symbol = str(raw.get("symbol") or "").strip()
        if not symbol:
            return None
        return cls(
            symbol=symbol,
            name=str(raw.get("securityName") or raw.get("name") or symbol),
            open=raw.get("open"),
            close=raw.get("close"),
            change=raw.get("change"),
            volume=raw.get("dailyVolume", raw.get("volume")),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def parse_feed(payload: Any) -> list[MarketRow]:
    """Normalise a feed payload (dict with ``data`` or a bare list) to rows."""
    if isinstance(payload, dict):
        payload = payload.get("data") or []
    if not isinstance(payload, list):
        return []
    rows = []
    for raw in payload:
        if isinstance(raw, dict):
            row = MarketRow.from_api(raw)
            if row is not None:
                rows.append(row)
    return rows


async def fetch_feed(url: str, timeout: float = MARKET_FETCH_TIMEOUT_SECONDS) -> list[MarketRow]:
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url)
        response.raise_for_status()
        return parse_feed(response.json())


class MarketSnapshotCache:
    """Cached, lazily refreshed market snapshot."""

    def __init__(
        self,
        url: str = MARKET_DATA_URL,
        refresh_seconds: float = MARKET_REFRESH_SECONDS,
        fetcher: Callable[[str], Awaitable[list[MarketRow]]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.refresh_seconds = refresh_seconds
        self._fetch = fetcher or fetch_feed
        self._clock = clock
        self._rows: list[MarketRow] = []
        self._fetched_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return self._clock() - self._fetched_at > self.refresh_seconds

    async def _fetch_rows(self) -> list[MarketRow]:
        try:
            return await self._fetch(self.url)
        except Exception as e:
            raise BackendUnavailable(str(e) or e.__class__.__name__) from e

    async def refresh(self, force: bool = True) -> list[MarketRow]:
        """Fetch a new snapshot. On failure the previous one is kept.

        With ``force=False`` a caller that waited on the lock returns the
        snapshot the previous holder just fetched.
        """
        if not self.url:
            return self._rows
        async with self._lock:
            if not force and not self.is_stale:
                return self._rows
            try:
                rows = await self._fetch_rows()
            except BackendUnavailable as e:
                logger.warning(f"[market] Snapshot fetch failed, keeping {len(self._rows)} cached rows: {e}")
                # Back off for a full interval rather than retrying on every request
                self._fetched_at = self._clock()
                return self._rows
            self._rows = rows
            self._fetched_at = self._clock()
            logger.info(f"[market] Cached {len(rows)} rows")
            return self._rows

    async def snapshot(self) -> list[MarketRow]:
        """Current rows, refreshing first if the cache is stale."""
        if self.is_stale:
            await self.refresh(force=False)
        return list(self._rows)
