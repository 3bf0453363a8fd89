"""Per-agent CLI session ids, persisted to ``session.json``.

File layout::

    {
      "agents": {"research": {"sessionId": "...", "lastActivity": "..."}},
      "sessionId": "...",        # legacy single-session pair, mirrors "general"
      "lastActivity": "..."
    }

Files written before per-agent sessions existed only have the top-level pair;
they are migrated into ``agents["general"]`` on load.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from assistant_relay.logger import log, log_error

DEFAULT_SESSION_KEY = "general"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStore:
    """Holds one active session id per agent slug."""

    def __init__(self, path: str):
        self._path = Path(path)
        self._agents: Dict[str, Dict[str, Optional[str]]] = {}
        self.session_id: Optional[str] = None
        self.last_activity: str = _now_iso()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._load()

    @staticmethod
    def _key(agent_slug: Optional[str]) -> str:
        return agent_slug or DEFAULT_SESSION_KEY

    def lock(self, agent_slug: Optional[str]) -> asyncio.Lock:
        """Lock serializing session read-modify-write for one agent."""
        key = self._key(agent_slug)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def get(self, agent_slug: Optional[str] = None) -> Optional[str]:
        key = self._key(agent_slug)
        entry = self._agents.get(key)
        if entry is not None and entry.get("sessionId"):
            return entry["sessionId"]
        if key == DEFAULT_SESSION_KEY:
            return self.session_id
        return None

    def set(self, agent_slug: Optional[str], session_id: str):
        key = self._key(agent_slug)
        now = _now_iso()
        self._agents[key] = {"sessionId": session_id, "lastActivity": now}
        if key == DEFAULT_SESSION_KEY:
            self.session_id = session_id
            self.last_activity = now
        self.save()

    def _load(self):
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as e:
            log_error("session_load_error", f"Could not read {self._path}", e)
            return
        if not isinstance(data, dict):
            return

        self.session_id = data.get("sessionId")
        self.last_activity = data.get("lastActivity") or self.last_activity
        agents = data.get("agents")
        if isinstance(agents, dict):
            for slug, entry in agents.items():
                if isinstance(entry, dict):
                    self._agents[slug] = {
                        "sessionId": entry.get("sessionId"),
                        "lastActivity": entry.get("lastActivity"),
                    }
        else:
            self._agents[DEFAULT_SESSION_KEY] = {
                "sessionId": self.session_id,
                "lastActivity": self.last_activity,
            }
            log("session_migrated", "Migrated legacy session file to per-agent layout")

    def save(self):
        data = {
            "agents": self._agents,
            "sessionId": self.session_id,
            "lastActivity": self.last_activity,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except Exception as e:
            log_error("session_save_error", f"Could not write {self._path}", e)
