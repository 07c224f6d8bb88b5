from __future__ import annotations
"""
Advisor — Long-Term Retrieval Adapter
======================================
Semantic recall over a user's previous exchanges.

Each committed turn is stored as one ChromaDB record tagged with the owning
user id and a timestamp. Retrieval filters on that tag in the query *and*
re-checks it on every hit, so a store that ignores the filter still cannot
leak another user's excerpts.

Both operations degrade instead of raising:
  - retrieve() returns [] on error or timeout
  - append() returns a failed PersistenceOutcome

Usage:
    memory = LongTermMemory()
    excerpts = await memory.retrieve("uid-123", "How is my AAPL position?", top_k=3)
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable

import chromadb
from openai import OpenAI

from advisor.config import (
    EMBEDDING_MODEL,
    LONG_TERM_COLLECTION,
    OPENAI_API_KEY,
    RETRIEVAL_TIMEOUT_SECONDS,
    VECTOR_STORE_PATH,
)
from advisor.errors import BackendUnavailable
from advisor.records import PersistenceOutcome, utcnow

logger = logging.getLogger(__name__)

BACKEND = "long_term"

# ---------------------------------------------------------------------------
# Clients (initialized lazily)
# ---------------------------------------------------------------------------
_openai_client = None


def _get_openai() -> OpenAI:
    global _openai_client
    if _openai_client is None:
        if not OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY not set. Add it to your .env file.")
        _openai_client = OpenAI(api_key=OPENAI_API_KEY)
    return _openai_client


def openai_embed(texts: list[str]) -> list[list[float]]:
    """Embed texts with the configured OpenAI embedding model."""
    response = _get_openai().embeddings.create(model=EMBEDDING_MODEL, input=texts)
    return [item.embedding for item in response.data]


def format_record(question: str, answer: str) -> str:
    return f"User: {question}\nAdvisor: {answer}"


class LongTermMemory:
    """User-scoped semantic store for past question/answer pairs."""

    def __init__(
        self,
        collection=None,
        embed: Callable[[list[str]], list[list[float]]] | None = None,
        timeout: float = RETRIEVAL_TIMEOUT_SECONDS,
        collection_name: str = LONG_TERM_COLLECTION,
    ):
        self._collection = collection
        self._embed = embed or openai_embed
        self.timeout = timeout
        self.collection_name = collection_name

    @property
    def collection(self):
        if self._collection is None:
            client = chromadb.PersistentClient(path=str(VECTOR_STORE_PATH))
            self._collection = client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        return self._collection

    async def _offload(self, fn, *args):
        """Run a blocking store call off the loop; any failure is BackendUnavailable."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise BackendUnavailable(f"timed out after {self.timeout}s") from e
        except Exception as e:
            raise BackendUnavailable(str(e) or e.__class__.__name__) from e

    # ===========================================================================
    # Retrieval
    # ===========================================================================

    def _query(self, user_id: str, query: str, top_k: int) -> list[str]:
        embedding = self._embed([query])[0]
        results = self.collection.query(
            query_embeddings=[embedding],
            n_results=top_k,
            where={"user_id": user_id},
            include=["documents", "metadatas", "distances"],
        )

        documents = (results.get("documents") or [[]])[0]
        metadatas = (results.get("metadatas") or [[]])[0]

        excerpts = []
        for doc, meta in zip(documents, metadatas):
            if not meta or meta.get("user_id") != user_id:
                logger.warning(f"[long_term] Dropped hit not owned by {user_id}")
                continue
            if doc:
                excerpts.append(doc)
        return excerpts[:top_k]

    async def retrieve(self, user_id: str, query: str, top_k: int = 3) -> list[str]:
        """Similarity search over this user's records only. Never raises."""
        if not user_id or not query.strip() or top_k <= 0:
            return []
        try:
            return await self._offload(self._query, user_id, query, top_k)
        except BackendUnavailable as e:
            logger.warning(f"[long_term] Retrieval failed for {user_id}: {e}")
            return []

    # ===========================================================================
    # Append
    # ===========================================================================

    def _upsert(self, user_id: str, question: str, answer: str, timestamp: datetime) -> None:
        document = format_record(question, answer)
        embedding = self._embed([document])[0]
        self.collection.upsert(
            ids=[str(uuid.uuid4())],
            documents=[document],
            embeddings=[embedding],
            metadatas=[{
                "user_id": user_id,
                "timestamp": timestamp.isoformat(),
            }],
        )

    async def append(
        self,
        user_id: str,
        question: str,
        answer: str,
        timestamp: datetime | None = None,
    ) -> PersistenceOutcome:
        """Store one exchange for this user. Failure is reported, never raised."""
        try:
            await self._offload(self._upsert, user_id, question, answer, timestamp or utcnow())
        except BackendUnavailable as e:
            logger.warning(f"[long_term] Append failed for {user_id}: {e}")
            return PersistenceOutcome.failed(BACKEND, str(e))
        return PersistenceOutcome.ok(BACKEND)
