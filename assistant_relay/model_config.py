"""Per-agent provider/model assignment with a TTL cache.

Rows live in the ``model_config`` table. Reads hit the in-memory cache and
refresh it once the TTL has passed; writes invalidate it immediately so the
next read sees the change.
"""

import time
from typing import Dict, List, Optional

from assistant_relay.config import MODEL_ALIASES
from assistant_relay.domain.models import PROVIDER_CLAUDE, PROVIDERS, ModelConfig
from assistant_relay.logger import log, log_error
from assistant_relay.storage import JsonlStore

MODEL_CONFIG_TABLE = "model_config"
DEFAULT_MODEL = "claude-cli"


class ModelConfigStore:
    def __init__(self, store: Optional[JsonlStore], ttl: float = 60.0, clock=time.monotonic):
        self.store = store
        self.ttl = ttl
        self._clock = clock
        self._cache: Dict[str, ModelConfig] = {}
        self._last_fetch: Optional[float] = None

    def _is_stale(self) -> bool:
        return self._last_fetch is None or self._clock() - self._last_fetch > self.ttl

    def invalidate(self):
        self._last_fetch = None

    async def refresh(self):
        if not self.store:
            return
        try:
            rows = await self.store.select(MODEL_CONFIG_TABLE)
        except Exception as e:
            log_error("model_config_fetch_error", "Failed to refresh model config cache", e)
            return

        cache: Dict[str, ModelConfig] = {}
        for row in rows:
            provider = row.get("provider")
            if provider not in PROVIDERS:
                log("model_config_invalid", f"Ignoring {row.get('agent')}: unknown provider {provider!r}", level="warn")
                continue
            cache[row["agent"]] = ModelConfig(
                agent=row["agent"],
                provider=provider,
                model=row.get("model") or DEFAULT_MODEL,
                enabled=bool(row.get("enabled", True)),
            )
        self._cache = cache
        self._last_fetch = self._clock()

    async def get(self, agent_slug: str) -> ModelConfig:
        """Config for an agent; defaults to the Claude CLI when none is stored."""
        if self._is_stale():
            await self.refresh()
        config = self._cache.get(agent_slug)
        if config is None or not config.enabled:
            return ModelConfig(agent=agent_slug, provider=PROVIDER_CLAUDE, model=DEFAULT_MODEL)
        return config

    async def get_all(self) -> List[ModelConfig]:
        if self._is_stale():
            await self.refresh()
        return list(self._cache.values())

    async def set(self, agent: str, provider: str, model: str) -> dict:
        """Assign a provider/model to an agent. Returns a structured result."""
        if provider not in PROVIDERS:
            return {"success": False, "description": f"Unknown provider: {provider}"}
        if not self.store:
            return {"success": False, "description": "Database unavailable"}
        model = MODEL_ALIASES.get(model, model)
        try:
            await self.store.upsert(
                MODEL_CONFIG_TABLE,
                {"agent": agent, "provider": provider, "model": model, "enabled": True},
                key="agent",
            )
        except Exception as e:
            log_error("model_config_update_error", f"Failed to update model for {agent}", e)
            return {"success": False, "description": "Failed to update model config"}
        self.invalidate()
        log("model_config_updated", f"{agent} -> {provider}/{model}")
        return {"success": True, "description": f"{agent} now uses {provider}/{model}"}
