"""Relay exception types."""

from typing import Optional


class RelayError(Exception):
    """Base class for relay failures."""


class ProviderError(RelayError):
    """A model provider failed to produce a response."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status = status


class ProviderTimeout(ProviderError):
    """A provider call exceeded the configured timeout."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(provider, f"timed out after {timeout:.1f}s")
        self.timeout = timeout
