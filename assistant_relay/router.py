"""Provider routing with fallback.

Order for one request:

1. the agent's configured provider, if it is OpenRouter or Ollama
2. the Claude CLI (the only provider with session continuity)
3. OpenRouter (unless step 1 already tried it), then Ollama

When every provider fails the caller gets an ``error``-tagged result with a
plain-language message, never an exception.
"""

import time
from typing import List, Optional

from assistant_relay.domain.models import (
    PROVIDER_CLAUDE,
    PROVIDER_ERROR,
    PROVIDER_OLLAMA,
    PROVIDER_OPENROUTER,
    ProviderResult,
)
from assistant_relay.errors import ProviderError
from assistant_relay.logger import log, log_error
from assistant_relay.model_config import DEFAULT_MODEL, ModelConfigStore
from assistant_relay.providers import ClaudeCLIProvider, OllamaProvider, OpenRouterProvider
from assistant_relay.sessions import DEFAULT_SESSION_KEY, SessionStore
from assistant_relay.usage import TokenUsageTracker

FALLBACK_DISABLED_MESSAGE = "Error: Claude is temporarily unavailable. No fallback providers configured."

_DISPLAY_NAMES = {
    PROVIDER_CLAUDE: "Claude",
    PROVIDER_OPENROUTER: "OpenRouter",
    PROVIDER_OLLAMA: "Ollama",
}


class ProviderRouter:
    def __init__(
        self,
        cli: ClaudeCLIProvider,
        openrouter: OpenRouterProvider,
        ollama: OllamaProvider,
        sessions: SessionStore,
        model_configs: ModelConfigStore,
        usage: Optional[TokenUsageTracker] = None,
        fallback_enabled: bool = True,
    ):
        self.cli = cli
        self.openrouter = openrouter
        self.ollama = ollama
        self.sessions = sessions
        self.model_configs = model_configs
        self.usage = usage or TokenUsageTracker()
        self.fallback_enabled = fallback_enabled
        self.last_provider = PROVIDER_CLAUDE

    def _http_provider(self, name: str):
        return self.openrouter if name == PROVIDER_OPENROUTER else self.ollama

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------
    async def _try_http(
        self, name: str, prompt: str, model: Optional[str], agent: str
    ) -> Optional[ProviderResult]:
        provider = self._http_provider(name)
        model = model or provider.model
        log("provider_trying", f"Attempting {_DISPLAY_NAMES[name]}", metadata={"model": model, "agent": agent})
        start = time.monotonic()
        try:
            text = await provider.call(prompt, model=model)
        except Exception as e:
            log_error(f"{name}_error", f"{_DISPLAY_NAMES[name]} failed after "
                      f"{int((time.monotonic() - start) * 1000)}ms", e)
            return None
        duration_ms = int((time.monotonic() - start) * 1000)
        await self._record(name, model, prompt, text, agent, duration_ms)
        return ProviderResult(text=text, provider=name, duration_ms=duration_ms)

    async def _try_claude(self, prompt: str, agent: str, resume: bool,
                          session: bool = True) -> Optional[ProviderResult]:
        """Call the CLI for ``agent``.

        Only a resumed call reads and then rewrites the agent's session id, so
        only that path holds the per-agent lock. With ``session=False`` the
        call neither reads nor stores a session id.
        """
        if session and resume:
            async with self.sessions.lock(agent):
                return await self._call_cli(prompt, agent, self.sessions.get(agent), session)
        return await self._call_cli(prompt, agent, None, session)

    async def _call_cli(self, prompt: str, agent: str, session_id: Optional[str],
                        session: bool) -> Optional[ProviderResult]:
        log("claude_called", prompt[:80], session_id=session_id, metadata={"agent": agent})
        start = time.monotonic()
        try:
            result = await self.cli.call(prompt, resume_session_id=session_id)
        except Exception as e:
            log_error("claude_error", f"Claude CLI failed after {int((time.monotonic() - start) * 1000)}ms", e)
            return None
        if session and result.session_id:
            self.sessions.set(agent, result.session_id)

        duration_ms = int((time.monotonic() - start) * 1000)
        log("claude_response", f"{len(result.text)} chars", duration_ms=duration_ms,
            session_id=result.session_id or session_id, metadata={"agent": agent})
        await self._record(PROVIDER_CLAUDE, DEFAULT_MODEL, prompt, result.text, agent, duration_ms,
                           session_id=result.session_id or session_id)
        return ProviderResult(text=result.text, provider=PROVIDER_CLAUDE, duration_ms=duration_ms)

    async def _record(self, provider: str, model: str, prompt: str, text: str, agent: str,
                      duration_ms: int, session_id: Optional[str] = None):
        usage = self.usage.build_usage(provider, model, prompt, text, agent=agent,
                                       duration_ms=duration_ms, session_id=session_id)
        await self.usage.track(usage)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def route(self, prompt: str, agent_slug: Optional[str] = None, resume: bool = False,
                    session: bool = True) -> ProviderResult:
        """Answer ``prompt`` with the first provider that succeeds.

        ``session=False`` makes a one-off Claude call that leaves the agent's
        stored session untouched.
        """
        agent = agent_slug or DEFAULT_SESSION_KEY
        config = await self.model_configs.get(agent)
        tried: List[str] = []

        if config.provider in (PROVIDER_OPENROUTER, PROVIDER_OLLAMA):
            tried.append(config.provider)
            result = await self._try_http(config.provider, prompt, config.model, agent)
            if result:
                return self._done(result)
            log("provider_fallthrough", f"{config.provider} failed for {agent}, trying Claude CLI", level="warn")

        tried.append(PROVIDER_CLAUDE)
        result = await self._try_claude(prompt, agent, resume, session)
        if result:
            return self._done(result)

        if not self.fallback_enabled:
            return self._done(ProviderResult(text=FALLBACK_DISABLED_MESSAGE, provider=PROVIDER_ERROR))

        log("fallback_activated", "Claude CLI failed, trying fallback providers")
        for name in (PROVIDER_OPENROUTER, PROVIDER_OLLAMA):
            # OpenRouter is not retried after failing as the preference
            if name == PROVIDER_OPENROUTER and name in tried:
                continue
            if not self._http_provider(name).is_configured:
                continue
            if name not in tried:
                tried.append(name)
            # Fallbacks always use their own default model
            result = await self._try_http(name, prompt, None, agent)
            if result:
                log("fallback_success", f"Served by {name}", duration_ms=result.duration_ms,
                    metadata={"provider": name})
                return self._done(result)

        return self._done(ProviderResult(text=self._exhausted_message(tried), provider=PROVIDER_ERROR))

    def _done(self, result: ProviderResult) -> ProviderResult:
        self.last_provider = result.provider
        return result

    @staticmethod
    def _exhausted_message(tried: List[str]) -> str:
        if tried == [PROVIDER_CLAUDE]:
            return ("Claude is temporarily unavailable and no fallback providers are configured. "
                    "Add OPENROUTER_API_KEY or set up Ollama for resilience.")
        names = ", ".join(_DISPLAY_NAMES[n] for n in tried)
        return f"All AI providers are currently unavailable (tried: {names}). Please try again later."

    async def call_claude(self, prompt: str, agent_slug: Optional[str] = None, resume: bool = False) -> str:
        """Text of the routed response; failures come back as a user-facing message."""
        return (await self.route(prompt, agent_slug=agent_slug, resume=resume)).text

    async def ask(self, prompt: str, agent_slug: Optional[str] = None) -> str:
        """One-off call that raises ``ProviderError`` when every provider failed.

        Used for board meetings: no session is resumed or stored, so concurrent
        calls never wait on each other.
        """
        result = await self.route(prompt, agent_slug=agent_slug, session=False)
        if result.provider == PROVIDER_ERROR:
            raise ProviderError(PROVIDER_ERROR, result.text)
        return result.text
