"""Construct the relay and its collaborators from a config dict."""

import os
from typing import Any, Dict

from assistant_relay.actions import ActionExecutor, ActionQueue
from assistant_relay.agents.orchestrator import BoardOrchestrator
from assistant_relay.agents.registry import AgentRegistry
from assistant_relay.memory import MemoryStore
from assistant_relay.model_config import ModelConfigStore
from assistant_relay.providers import ClaudeCLIProvider, OllamaProvider, OpenRouterProvider
from assistant_relay.relay import Relay
from assistant_relay.router import ProviderRouter
from assistant_relay.sessions import SessionStore
from assistant_relay.storage import open_store
from assistant_relay.usage import TokenUsageTracker


def build_relay(config: Dict[str, Any]) -> Relay:
    store = open_store(config)
    timeout = config["provider_timeout"]

    router = ProviderRouter(
        cli=ClaudeCLIProvider(config["claude_path"], config["project_dir"], timeout=timeout),
        openrouter=OpenRouterProvider(config["openrouter_api_key"], config["openrouter_model"], timeout=timeout),
        ollama=OllamaProvider(config["ollama_url"], config["ollama_model"], timeout=timeout),
        sessions=SessionStore(os.path.join(config["relay_dir"], "session.json")),
        model_configs=ModelConfigStore(store, ttl=config["model_config_ttl"]),
        usage=TokenUsageTracker(store),
        fallback_enabled=config["fallback_enabled"],
    )
    registry = AgentRegistry(config["agents_config_dir"], config["agents_map_file"])

    return Relay(
        config=config,
        registry=registry,
        memory=MemoryStore(store),
        actions=ActionQueue(store, ActionExecutor()),
        router=router,
        orchestrator=BoardOrchestrator(registry, max_concurrency=config["board_concurrency"]),
    )
