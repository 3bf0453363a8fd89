"""Tests for MemoryStore — history, facts, goals and intent processing."""

from unittest.mock import AsyncMock

import pytest

from assistant_relay.memory import MEMORY_TABLE, MemoryStore
from assistant_relay.storage import JsonlStore


def _make_memory(tmp_path) -> MemoryStore:
    return MemoryStore(JsonlStore(str(tmp_path / "data")))


class TestConversationHistory:
    @pytest.mark.asyncio
    async def test_recent_messages_oldest_first(self, tmp_path):
        memory = _make_memory(tmp_path)
        await memory.save_message("user", "hello")
        await memory.save_message("assistant", "hi there")
        await memory.save_message("user", "how are you")

        recent = await memory.get_recent_messages(2)
        assert recent == "Assistant: hi there\nUser: how are you"

    @pytest.mark.asyncio
    async def test_no_store_is_noop(self):
        memory = MemoryStore(None)
        await memory.save_message("user", "hello")
        assert await memory.get_recent_messages() == ""
        assert await memory.get_memory_context() == ""


class TestProcessIntents:
    @pytest.mark.asyncio
    async def test_remember_and_goal_are_stored(self, tmp_path):
        memory = _make_memory(tmp_path)
        cleaned = await memory.process_intents(
            "Got it. [REMEMBER: prefers mornings] [GOAL: launch site | DEADLINE: June]"
        )
        assert cleaned == "Got it."

        rows = await memory.store.select(MEMORY_TABLE, order_by="created_at")
        assert [(r["type"], r["content"]) for r in rows] == [
            ("fact", "prefers mornings"),
            ("goal", "launch site"),
        ]
        assert rows[1]["deadline"] == "June"

    @pytest.mark.asyncio
    async def test_done_completes_matching_goal(self, tmp_path):
        memory = _make_memory(tmp_path)
        await memory.save_goal("File taxes for 2025")
        await memory.save_goal("Learn Spanish")

        await memory.process_intents("Nice work! [DONE: taxes]")

        goals = await memory.store.select(MEMORY_TABLE, eq={"type": "goal"})
        completed = await memory.store.select(MEMORY_TABLE, eq={"type": "completed_goal"})
        assert [g["content"] for g in goals] == ["Learn Spanish"]
        assert [c["content"] for c in completed] == ["File taxes for 2025"]
        assert completed[0]["completed_at"]

    @pytest.mark.asyncio
    async def test_done_completes_only_most_recent_match(self, tmp_path):
        memory = _make_memory(tmp_path)
        await memory.save_goal("Read book one")
        await memory.save_goal("Read book two")

        assert await memory.complete_goal("read book") is True

        goals = await memory.store.select(MEMORY_TABLE, eq={"type": "goal"})
        assert [g["content"] for g in goals] == ["Read book one"]

    @pytest.mark.asyncio
    async def test_done_without_match_changes_nothing(self, tmp_path):
        memory = _make_memory(tmp_path)
        await memory.save_goal("Learn Spanish")
        assert await memory.complete_goal("marathon") is False
        assert len(await memory.store.select(MEMORY_TABLE, eq={"type": "goal"})) == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, tmp_path):
        memory = _make_memory(tmp_path)
        memory.save_fact = AsyncMock(side_effect=RuntimeError("disk full"))

        cleaned = await memory.process_intents("[REMEMBER: x] [GOAL: keep going]")

        assert cleaned == ""
        goals = await memory.store.select(MEMORY_TABLE, eq={"type": "goal"})
        assert [g["content"] for g in goals] == ["keep going"]

    @pytest.mark.asyncio
    async def test_without_store_still_strips_tags(self):
        memory = MemoryStore(None)
        assert await memory.process_intents("Ok [REMEMBER: x]") == "Ok"


class TestMemoryContext:
    @pytest.mark.asyncio
    async def test_sections(self, tmp_path):
        memory = _make_memory(tmp_path)
        await memory.save_goal("Ship v2", deadline="Friday")
        await memory.save_fact("Has a dog named Rex")
        await memory.store.insert(MEMORY_TABLE, {"type": "preference", "content": "Short answers"})

        context = await memory.get_memory_context()
        assert "ACTIVE GOALS:\n- Ship v2 (by Friday)" in context
        assert "PERSISTENT MEMORY:\n- Has a dog named Rex" in context
        assert "PREFERENCES:\n- Short answers" in context

    @pytest.mark.asyncio
    async def test_completed_goals_are_not_listed(self, tmp_path):
        memory = _make_memory(tmp_path)
        await memory.save_goal("Old goal")
        await memory.complete_goal("old")
        assert await memory.get_memory_context() == ""
