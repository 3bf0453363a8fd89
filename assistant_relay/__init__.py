"""Assistant Relay — chat-to-LLM relay with approval-gated actions."""

from assistant_relay.config import CONFIG
from assistant_relay.directives import extract_actions, extract_intents
from assistant_relay.actions import ActionExecutor, ActionQueue
from assistant_relay.memory import MemoryStore
from assistant_relay.sessions import SessionStore
from assistant_relay.model_config import ModelConfigStore
from assistant_relay.usage import TokenUsageTracker
from assistant_relay.router import ProviderRouter
from assistant_relay.agents.registry import AgentRegistry
from assistant_relay.agents.orchestrator import BoardOrchestrator
from assistant_relay.relay import Relay
from assistant_relay.bootstrap import build_relay

__all__ = [
    "CONFIG",
    "extract_actions",
    "extract_intents",
    "ActionExecutor",
    "ActionQueue",
    "MemoryStore",
    "SessionStore",
    "ModelConfigStore",
    "TokenUsageTracker",
    "ProviderRouter",
    "AgentRegistry",
    "BoardOrchestrator",
    "Relay",
    "build_relay",
]
