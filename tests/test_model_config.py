"""Tests for ModelConfigStore — TTL cache and structured updates."""

from unittest.mock import AsyncMock

import pytest

from assistant_relay.model_config import MODEL_CONFIG_TABLE, ModelConfigStore
from assistant_relay.storage import JsonlStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _make_configs(tmp_path, ttl=60.0):
    clock = FakeClock()
    store = JsonlStore(str(tmp_path / "data"))
    return ModelConfigStore(store, ttl=ttl, clock=clock), store, clock


class TestModelConfigStore:
    @pytest.mark.asyncio
    async def test_default_is_claude_cli(self, tmp_path):
        configs, _, _ = _make_configs(tmp_path)
        config = await configs.get("research")
        assert (config.provider, config.model) == ("claude", "claude-cli")

    @pytest.mark.asyncio
    async def test_no_store_defaults(self):
        configs = ModelConfigStore(None)
        config = await configs.get("general")
        assert config.provider == "claude"
        result = await configs.set("general", "ollama", "llama3.2")
        assert result == {"success": False, "description": "Database unavailable"}

    @pytest.mark.asyncio
    async def test_set_is_visible_immediately(self, tmp_path):
        configs, _, _ = _make_configs(tmp_path)
        await configs.set("general", "claude", "claude-cli")
        assert (await configs.get("research")).provider == "claude"

        result = await configs.set("research", "openrouter", "openai/gpt-4o")
        assert result["success"] is True

        config = await configs.get("research")
        assert (config.provider, config.model) == ("openrouter", "openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_set_overwrites_existing_row(self, tmp_path):
        configs, store, _ = _make_configs(tmp_path)
        await configs.set("finance", "ollama", "mistral")
        await configs.set("finance", "openrouter", "openai/gpt-4o-mini")

        rows = await store.select(MODEL_CONFIG_TABLE, eq={"agent": "finance"})
        assert len(rows) == 1
        assert rows[0]["provider"] == "openrouter"

    @pytest.mark.asyncio
    async def test_unknown_provider_rejected(self, tmp_path):
        configs, store, _ = _make_configs(tmp_path)
        result = await configs.set("general", "bard", "x")
        assert result == {"success": False, "description": "Unknown provider: bard"}
        assert await store.select(MODEL_CONFIG_TABLE) == []

    @pytest.mark.asyncio
    async def test_external_change_seen_after_ttl(self, tmp_path):
        configs, store, clock = _make_configs(tmp_path, ttl=60.0)
        await configs.set("content", "ollama", "llama3.2")
        assert (await configs.get("content")).provider == "ollama"

        await store.upsert(
            MODEL_CONFIG_TABLE,
            {"agent": "content", "provider": "openrouter", "model": "openai/gpt-4o", "enabled": True},
            key="agent",
        )
        clock.now += 30
        assert (await configs.get("content")).provider == "ollama"

        clock.now += 31
        assert (await configs.get("content")).provider == "openrouter"

    @pytest.mark.asyncio
    async def test_disabled_row_falls_back_to_default(self, tmp_path):
        configs, store, _ = _make_configs(tmp_path)
        await store.insert(MODEL_CONFIG_TABLE,
                           {"agent": "critic", "provider": "ollama", "model": "mistral", "enabled": False})
        assert (await configs.get("critic")).provider == "claude"

    @pytest.mark.asyncio
    async def test_rows_with_unknown_provider_are_ignored(self, tmp_path):
        configs, store, _ = _make_configs(tmp_path)
        await store.insert(MODEL_CONFIG_TABLE, {"agent": "critic", "provider": "bard", "model": "x"})
        assert (await configs.get("critic")).provider == "claude"
        assert await configs.get_all() == []

    @pytest.mark.asyncio
    async def test_model_alias_is_expanded(self, tmp_path):
        configs, _, _ = _make_configs(tmp_path)
        await configs.set("strategy", "openrouter", "opus")
        assert (await configs.get("strategy")).model == "anthropic/claude-opus-4"

    @pytest.mark.asyncio
    async def test_empty_table_is_cached_for_ttl(self, tmp_path):
        configs, store, clock = _make_configs(tmp_path, ttl=60.0)
        store.select = AsyncMock(wraps=store.select)

        await configs.get("general")
        await configs.get("research")
        await configs.get_all()
        assert store.select.await_count == 1

        clock.now += 61
        await configs.get("general")
        assert store.select.await_count == 2
