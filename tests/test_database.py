#!/usr/bin/env python3
"""
Transcript Store Tests
=======================
aiosqlite layer against a temporary database file.
"""
from __future__ import annotations
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from advisor import database


def _setup(tmp_path):
    database.set_db_path(str(tmp_path / "store.db"))
    asyncio.run(database.init_db())


def _in(days: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


# ── Tokens ──────────────────────────────────────────────────────────────

def test_token_lookup_and_expiry(tmp_path):
    _setup(tmp_path)

    async def run():
        await database.upsert_user("u1", "ada@example.com", "Ada")
        live = await database.create_auth_session("u1", _in(1))
        stale = await database.create_auth_session("u1", _in(-1))

        user = await database.get_user_by_token(live)
        assert user["id"] == "u1" and user["email"] == "ada@example.com"
        assert await database.get_user_by_token(stale) is None
        assert await database.get_user_by_token("nope") is None

        assert await database.delete_auth_session(live) is True
        assert await database.get_user_by_token(live) is None

    asyncio.run(run())


def test_upsert_user_keeps_known_fields(tmp_path):
    _setup(tmp_path)

    async def run():
        await database.upsert_user("u1", "ada@example.com", "Ada")
        await database.upsert_user("u1")
        token = await database.create_auth_session("u1", _in(1))
        user = await database.get_user_by_token(token)
        assert user["display_name"] == "Ada"

    asyncio.run(run())


# ── Transcripts ─────────────────────────────────────────────────────────

def test_session_title_is_set_only_on_first_write(tmp_path):
    _setup(tmp_path)

    async def run():
        await database.upsert_chat_session("s1", "u1", "First question")
        first = await database.get_chat_session("s1")
        await database.upsert_chat_session("s1", "u1", "Second question")
        second = await database.get_chat_session("s1")
        assert second["title"] == "First question"
        assert second["updated_at"] >= first["updated_at"]

    asyncio.run(run())


def test_messages_come_back_in_order(tmp_path):
    _setup(tmp_path)

    async def run():
        await database.add_chat_message("s1", "user", "q1")
        await database.add_chat_message("s1", "ai", "a1")
        await database.add_chat_message("s1", "user", "q2")
        await database.upsert_chat_session("s1", "u1", "q1")

        session = await database.get_chat_session("s1")
        assert [m["content"] for m in session["messages"]] == ["q1", "a1", "q2"]

        listed = await database.get_user_chat_sessions("u1")
        assert listed[0]["message_count"] == 3
        assert await database.get_user_chat_sessions("u2") == []

    asyncio.run(run())


def test_invalid_role_is_rejected(tmp_path):
    _setup(tmp_path)

    async def run():
        try:
            await database.add_chat_message("s1", "assistant", "x")
        except ValueError:
            return
        raise AssertionError("role 'assistant' was accepted")

    asyncio.run(run())


def test_delete_session_removes_messages(tmp_path):
    _setup(tmp_path)

    async def run():
        await database.add_chat_message("s1", "user", "q")
        await database.upsert_chat_session("s1", "u1", "q")
        assert await database.delete_chat_session("s1") is True
        assert await database.get_chat_session("s1") is None
        assert await database.delete_chat_session("s1") is False

    asyncio.run(run())


if __name__ == "__main__":
    import pytest

    sys.exit(pytest.main([__file__, "-v"]))
