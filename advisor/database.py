from __future__ import annotations
"""
Advisor — Database Layer
=========================
Async SQLite store for users, bearer-token sessions, chat transcripts and
LLM usage. Transcripts are append-only: one row per side of each turn,
keyed by chat session.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Database path (set by main.py at startup)
# ---------------------------------------------------------------------------
_db_path: str = ""


def set_db_path(path: str):
    global _db_path
    _db_path = path


def _get_db_path() -> str:
    if not _db_path:
        raise RuntimeError("Database path not set. Call set_db_path() first.")
    return _db_path


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ===========================================================================
# Initialization
# ===========================================================================

async def init_db():
    """Create tables if they don't exist."""
    Path(_get_db_path()).parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT,
                display_name TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                last_seen_at TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS auth_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                expires_at TIMESTAMP NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS chat_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT 'New Chat',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'ai')),
                content TEXT NOT NULL,
                timestamp TIMESTAMP NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS llm_usage (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT,
                model TEXT,
                input_tokens INTEGER,
                output_tokens INTEGER,
                estimated_cost_usd REAL,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages(session_id, timestamp)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_chat_sessions_user ON chat_sessions(user_id, updated_at)"
        )

        await db.commit()


# ===========================================================================
# LLM Usage Tracking
# ===========================================================================

# USD per 1M tokens
_MODEL_COSTS = {
    "claude-sonnet-4-20250514": {"input": 3.0, "output": 15.0},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "claude-haiku-3-5-20241022": {"input": 0.80, "output": 4.0},
}


async def log_llm_usage(response_usage, model: str, user_id: str | None = None) -> None:
    """Persist one generation's token usage. Telemetry only; never raises."""
    input_tokens = getattr(response_usage, "input_tokens", 0) or 0
    output_tokens = getattr(response_usage, "output_tokens", 0) or 0

    costs = _MODEL_COSTS.get(model, {"input": 3.0, "output": 15.0})
    estimated_cost = (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000

    try:
        async with aiosqlite.connect(_get_db_path()) as db:
            await db.execute(
                """INSERT INTO llm_usage
                   (user_id, model, input_tokens, output_tokens, estimated_cost_usd)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, model, input_tokens, output_tokens, estimated_cost),
            )
            await db.commit()
    except Exception as e:
        logger.warning(f"[usage] Could not record token usage: {e}")


# ===========================================================================
# Users & Token Sessions
# ===========================================================================

async def upsert_user(user_id: str, email: str | None = None, display_name: str | None = None) -> None:
    """Record a principal the identity service vouched for."""
    now = _now()
    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute(
            """
            INSERT INTO users (id, email, display_name, created_at, last_seen_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                email = COALESCE(excluded.email, users.email),
                display_name = COALESCE(excluded.display_name, users.display_name),
                last_seen_at = excluded.last_seen_at
            """,
            (user_id, email, display_name, now, now),
        )
        await db.commit()


async def create_auth_session(user_id: str, expires_at: str) -> str:
    """Register a bearer token for a user. Returns the token (which is the row ID)."""
    token = str(uuid.uuid4())

    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute(
            """
            INSERT INTO auth_sessions (id, user_id, created_at, expires_at)
            VALUES (?, ?, ?, ?)
            """,
            (token, user_id, _now(), expires_at),
        )
        await db.commit()

    return token


async def get_user_by_token(token: str) -> dict | None:
    """Look up a user by their session token. Returns None if invalid/expired."""
    async with aiosqlite.connect(_get_db_path()) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            """
            SELECT u.* FROM auth_sessions s
            JOIN users u ON s.user_id = u.id
            WHERE s.id = ? AND s.expires_at > ?
            """,
            (token, _now()),
        )
        row = await cursor.fetchone()

    if row is None:
        return None

    return {
        "id": row["id"],
        "email": row["email"],
        "display_name": row["display_name"],
        "created_at": row["created_at"],
    }


async def delete_auth_session(token: str) -> bool:
    """Delete a session token (logout)."""
    async with aiosqlite.connect(_get_db_path()) as db:
        cursor = await db.execute(
            "DELETE FROM auth_sessions WHERE id = ?", (token,)
        )
        await db.commit()
        return cursor.rowcount > 0


# ===========================================================================
# Chat Sessions
# ===========================================================================

async def upsert_chat_session(session_id: str, user_id: str, title: str = "New Chat") -> None:
    """Create the session on its first turn; afterwards only bump updated_at."""
    now = _now()
    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute(
            """
            INSERT INTO chat_sessions (id, user_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at
            """,
            (session_id, user_id, title or "New Chat", now, now),
        )
        await db.commit()


async def get_chat_session(session_id: str) -> dict | None:
    """Get a single chat session with all its messages, oldest first."""
    async with aiosqlite.connect(_get_db_path()) as db:
        db.row_factory = aiosqlite.Row

        cursor = await db.execute(
            "SELECT * FROM chat_sessions WHERE id = ?",
            (session_id,),
        )
        session_row = await cursor.fetchone()
        if session_row is None:
            return None

        cursor = await db.execute(
            """
            SELECT * FROM chat_messages
            WHERE session_id = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            (session_id,),
        )
        message_rows = await cursor.fetchall()

    return {
        "id": session_row["id"],
        "user_id": session_row["user_id"],
        "title": session_row["title"],
        "created_at": session_row["created_at"],
        "updated_at": session_row["updated_at"],
        "messages": [
            {
                "id": row["id"],
                "role": row["role"],
                "content": row["content"],
                "timestamp": row["timestamp"],
            }
            for row in message_rows
        ],
    }


async def get_user_chat_sessions(user_id: str) -> list[dict]:
    """List a user's chat sessions, most recently updated first."""
    async with aiosqlite.connect(_get_db_path()) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            """
            SELECT
                s.*,
                (SELECT COUNT(*) FROM chat_messages m WHERE m.session_id = s.id) as message_count
            FROM chat_sessions s
            WHERE s.user_id = ?
            ORDER BY s.updated_at DESC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()

    return [
        {
            "id": row["id"],
            "title": row["title"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "message_count": row["message_count"],
        }
        for row in rows
    ]


async def delete_chat_session(session_id: str) -> bool:
    """Delete a chat session and all its messages."""
    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute(
            "DELETE FROM chat_messages WHERE session_id = ?",
            (session_id,),
        )
        cursor = await db.execute(
            "DELETE FROM chat_sessions WHERE id = ?",
            (session_id,),
        )
        await db.commit()
        return cursor.rowcount > 0


# ===========================================================================
# Chat Messages
# ===========================================================================

async def add_chat_message(
    session_id: str,
    role: str,
    content: str,
    timestamp: str | None = None,
) -> dict:
    """Append one side of a turn to a session's transcript."""
    if role not in ("user", "ai"):
        raise ValueError(f"Invalid role: {role}")

    message_id = str(uuid.uuid4())
    timestamp = timestamp or _now()

    async with aiosqlite.connect(_get_db_path()) as db:
        await db.execute(
            """
            INSERT INTO chat_messages (id, session_id, role, content, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (message_id, session_id, role, content, timestamp),
        )
        await db.commit()

    return {
        "id": message_id,
        "session_id": session_id,
        "role": role,
        "content": content,
        "timestamp": timestamp,
    }
