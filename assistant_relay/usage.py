"""Token usage and cost tracking for provider calls."""

import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from assistant_relay.domain.models import TokenUsage
from assistant_relay.logger import log_error
from assistant_relay.storage import JsonlStore

USAGE_TABLE = "token_usage"

# USD per million tokens: (input, output)
PRICING: Dict[str, Tuple[float, float]] = {
    "claude-cli": (0.0, 0.0),
    "anthropic/claude-sonnet-4": (3.0, 15.0),
    "anthropic/claude-sonnet-4-5-20250929": (3.0, 15.0),
    "anthropic/claude-opus-4": (15.0, 75.0),
    "anthropic/claude-haiku-4": (0.25, 1.25),
    "openai/gpt-4o": (2.5, 10.0),
    "openai/gpt-4o-mini": (0.15, 0.6),
    "google/gemini-2.0-flash": (0.1, 0.4),
    "llama3.2": (0.0, 0.0),
    "mistral": (0.0, 0.0),
    "codellama": (0.0, 0.0),
}

AVAILABLE_MODELS: Dict[str, List[str]] = {
    "claude": ["claude-cli"],
    "openrouter": [
        "anthropic/claude-sonnet-4",
        "anthropic/claude-opus-4",
        "anthropic/claude-haiku-4",
        "openai/gpt-4o",
        "openai/gpt-4o-mini",
        "google/gemini-2.0-flash",
    ],
    "ollama": ["llama3.2", "mistral", "codellama"],
}


def estimate_tokens(prompt: str, response: str) -> Tuple[int, int]:
    """Rough (prompt, completion) token counts at ~4 characters per token."""
    return math.ceil(len(prompt) / 4), math.ceil(len(response) / 4)


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Cost in USD; unknown models are priced at zero."""
    input_price, output_price = PRICING.get(model, (0.0, 0.0))
    return prompt_tokens / 1_000_000 * input_price + completion_tokens / 1_000_000 * output_price


class TokenUsageTracker:
    """Records per-call usage to the store and keeps in-process totals."""

    def __init__(self, store: Optional[JsonlStore] = None):
        self.store = store
        self._day = datetime.now(timezone.utc).date()
        self._calls_today = 0
        self._by_provider: Dict[str, Dict[str, float]] = {}

    def _roll_day(self):
        today = datetime.now(timezone.utc).date()
        if today != self._day:
            self._day = today
            self._calls_today = 0

    def build_usage(
        self,
        provider: str,
        model: str,
        prompt: str,
        response: str,
        agent: Optional[str] = None,
        duration_ms: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> TokenUsage:
        prompt_tokens, completion_tokens = estimate_tokens(prompt, response)
        return TokenUsage(
            provider=provider,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            cost_usd=calculate_cost(model, prompt_tokens, completion_tokens),
            agent=agent or "general",
            duration_ms=duration_ms,
            session_id=session_id,
        )

    async def track(self, usage: TokenUsage):
        """Count the call and persist it. Storage failures are logged only."""
        self._roll_day()
        self._calls_today += 1
        totals = self._by_provider.setdefault(usage.provider, {"calls": 0, "tokens": 0, "cost_usd": 0.0})
        totals["calls"] += 1
        totals["tokens"] += usage.total_tokens
        totals["cost_usd"] += usage.cost_usd

        if not self.store:
            return
        try:
            await self.store.insert(USAGE_TABLE, {
                "provider": usage.provider,
                "model": usage.model,
                "agent": usage.agent,
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
                "cost_usd": usage.cost_usd,
                "duration_ms": usage.duration_ms,
                "session_id": usage.session_id,
            })
        except Exception as e:
            log_error("token_tracking_error", "Failed to track token usage", e)

    def get_status(self) -> dict:
        self._roll_day()
        return {
            "calls_today": self._calls_today,
            "by_provider": {k: dict(v) for k, v in self._by_provider.items()},
        }
