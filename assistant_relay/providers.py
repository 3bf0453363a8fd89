"""Model providers: Claude CLI subprocess, OpenRouter and Ollama.

Each ``call`` either returns text or raises ``ProviderError``. Every call is
bounded by a timeout; a stuck CLI process is killed.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import List, Optional

import aiohttp

from assistant_relay.domain.models import PROVIDER_CLAUDE, PROVIDER_OLLAMA, PROVIDER_OPENROUTER
from assistant_relay.errors import ProviderError, ProviderTimeout
from assistant_relay.logger import log

SESSION_ID_RE = re.compile(r"Session ID: ([a-f0-9-]+)", re.IGNORECASE)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


@dataclass
class CLIResult:
    text: str
    session_id: Optional[str] = None


class ClaudeCLIProvider:
    """Runs ``claude -p <prompt>`` and scrapes the session id for ``--resume``."""

    name = PROVIDER_CLAUDE

    def __init__(self, claude_path: str = "claude", project_dir: str = "", timeout: float = 60.0):
        self.claude_path = claude_path
        self.project_dir = project_dir or None
        self.timeout = timeout

    def build_args(self, prompt: str, resume_session_id: Optional[str] = None) -> List[str]:
        args = [self.claude_path, "-p", prompt]
        if resume_session_id:
            args += ["--resume", resume_session_id]
        args += ["--output-format", "text"]
        return args

    async def call(self, prompt: str, resume_session_id: Optional[str] = None) -> CLIResult:
        args = self.build_args(prompt, resume_session_id)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.project_dir,
            )
        except OSError as e:
            raise ProviderError(self.name, f"could not start {self.claude_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ProviderTimeout(self.name, self.timeout)

        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            raise ProviderError(self.name, err or f"Claude exited with code {proc.returncode}")

        match = SESSION_ID_RE.search(output)
        return CLIResult(text=output.strip(), session_id=match.group(1) if match else None)


class OpenRouterProvider:
    """Cloud multi-model gateway (OpenAI-compatible chat completions)."""

    name = PROVIDER_OPENROUTER

    def __init__(self, api_key: str = "", model: str = "anthropic/claude-sonnet-4", timeout: float = 60.0,
                 url: str = OPENROUTER_URL):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.url = url

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and "your_" not in self.api_key

    async def call(self, prompt: str, model: Optional[str] = None) -> str:
        if not self.is_configured:
            raise ProviderError(self.name, "API key not configured")

        model = model or self.model
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 4096,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": "Assistant Relay",
        }
        start = time.monotonic()
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(self.url, json=payload, headers=headers) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise ProviderError(self.name, f"HTTP {resp.status}: {body[:200]}", status=resp.status)
                    data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise ProviderTimeout(self.name, self.timeout)
        except aiohttp.ClientError as e:
            raise ProviderError(self.name, str(e)) from e

        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape")
        if data.get("error"):
            raise ProviderError(self.name, f"error: {data['error'].get('message', data['error'])}")
        try:
            text = (data["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError):
            text = ""
        if not text:
            raise ProviderError(self.name, "returned empty response")

        log("openrouter_response", f"{len(text)} chars",
            duration_ms=int((time.monotonic() - start) * 1000), metadata={"model": model})
        return text


class OllamaProvider:
    """Local inference server."""

    name = PROVIDER_OLLAMA

    def __init__(self, url: str = "http://localhost:11434", model: str = "llama3.2", timeout: float = 60.0):
        self.url = url.rstrip("/")
        self.model = model
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    async def call(self, prompt: str, model: Optional[str] = None) -> str:
        model = model or self.model
        start = time.monotonic()
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(
                    f"{self.url}/api/generate",
                    json={"model": model, "prompt": prompt, "stream": False},
                ) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise ProviderError(self.name, f"HTTP {resp.status}: {body[:200]}", status=resp.status)
                    data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise ProviderTimeout(self.name, self.timeout)
        except aiohttp.ClientError as e:
            raise ProviderError(self.name, str(e)) from e

        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape")
        if data.get("error"):
            raise ProviderError(self.name, f"error: {data['error']}")
        text = (data.get("response") or "").strip()
        if not text:
            raise ProviderError(self.name, "returned empty response")

        log("ollama_response", f"{len(text)} chars",
            duration_ms=int((time.monotonic() - start) * 1000), metadata={"model": model})
        return text
