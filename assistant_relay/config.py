"""Environment-backed configuration for the relay."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env(key: str, default: str = "") -> str:
    """Read an env var, treating template placeholders (``your_...``) as unset."""
    value = os.getenv(key, default)
    if value and "your_" in value:
        return default
    return value


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except ValueError:
        return default


def _data_dir(relay_dir: str) -> Optional[str]:
    raw = _env("DATA_DIR")
    if raw.strip().lower() == "none":
        return None
    return raw or os.path.join(relay_dir, "data")


def load_config() -> Dict[str, Any]:
    relay_dir = _env("RELAY_DIR") or os.path.join(os.path.expanduser("~"), ".claude-relay")
    return {
        "claude_path": _env("CLAUDE_PATH", "claude"),
        "project_dir": _env("PROJECT_DIR"),
        "relay_dir": relay_dir,
        "data_dir": _data_dir(relay_dir),
        # Only the literal "false" turns the fallback chain off
        "fallback_enabled": os.getenv("FALLBACK_ENABLED", "true") != "false",
        "openrouter_api_key": _env("OPENROUTER_API_KEY"),
        "openrouter_model": _env("OPENROUTER_MODEL", "anthropic/claude-sonnet-4"),
        "ollama_url": _env("OLLAMA_URL", "http://localhost:11434"),
        "ollama_model": _env("OLLAMA_MODEL", "llama3.2"),
        "provider_timeout": _env_float("PROVIDER_TIMEOUT", 60.0),
        "model_config_ttl": _env_float("MODEL_CONFIG_TTL", 60.0),
        "board_concurrency": _env_int("BOARD_CONCURRENCY", 0),
        "user_name": _env("USER_NAME"),
        "user_timezone": _env("USER_TIMEZONE", "UTC"),
        "discord_bot_token": _env("DISCORD_BOT_TOKEN"),
        "discord_user_id": _env("DISCORD_USER_ID"),
        "health_port": _env_int("HEALTH_PORT", 3000),
        "agents_config_dir": _env("AGENTS_CONFIG_DIR", str(PROJECT_ROOT / "config" / "agents")),
        "agents_map_file": _env("AGENTS_MAP_FILE", str(PROJECT_ROOT / "config" / "agents.json")),
        "profile_file": _env("PROFILE_FILE", str(PROJECT_ROOT / "config" / "profile.md")),
    }


CONFIG: Dict[str, Any] = load_config()

MODEL_ALIASES: Dict[str, str] = {
    "sonnet": "anthropic/claude-sonnet-4",
    "opus": "anthropic/claude-opus-4",
    "haiku": "anthropic/claude-haiku-4",
    "cli": "claude-cli",
}
