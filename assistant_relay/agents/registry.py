"""Agent registry — personas, system prompts and chat topic bindings.

Prompts come from ``<agents_config_dir>/<slug>.md``. Topic ids can be bound
at runtime or loaded from a JSON ``{slug: topic_id}`` mapping file.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

from assistant_relay.domain.models import AgentConfig
from assistant_relay.logger import log, log_error

GENERAL_SLUG = "general"
AGENT_SLUGS = ("general", "research", "content", "finance", "strategy", "critic")


def default_prompt(slug: str) -> str:
    return f"You are the {slug} agent. Respond from the perspective of a {slug} specialist."


class AgentRegistry:
    def __init__(self, config_dir: str, map_file: str):
        self._config_dir = Path(config_dir)
        self._map_file = Path(map_file)
        self._agents: Dict[str, AgentConfig] = {
            slug: AgentConfig(name=slug.capitalize(), slug=slug, system_prompt=default_prompt(slug))
            for slug in AGENT_SLUGS
        }
        self._topic_to_agent: Dict[int, str] = {}
        self._loaded = False

    def load(self):
        """Read prompt files and the topic mapping. Safe to call more than once."""
        if self._loaded:
            return

        for slug, agent in self._agents.items():
            prompt_file = self._config_dir / f"{slug}.md"
            try:
                agent.system_prompt = prompt_file.read_text(encoding="utf-8")
            except OSError:
                log("agent_prompt_fallback", f"No prompt file for {slug}, using default", level="warn")

        if self._map_file.exists():
            try:
                mapping = json.loads(self._map_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                log_error("agents_mapping_error", f"Could not read {self._map_file}", e)
                mapping = {}
            if isinstance(mapping, dict):
                for slug, topic_id in mapping.items():
                    if slug in self._agents and isinstance(topic_id, int):
                        self.set_topic_id(slug, topic_id)
            log("agents_loaded", f"Loaded topic mappings for {len(self._topic_to_agent)} agents")
        else:
            log("agents_loaded", "No topic mapping file found, topics will be auto-detected")

        self._loaded = True
        log("agents_initialized", f"{len(self._agents)} agents loaded")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, slug: str) -> Optional[AgentConfig]:
        return self._agents.get(slug)

    def get_by_topic_id(self, topic_id: Optional[int]) -> Optional[AgentConfig]:
        if topic_id is None:
            return None
        slug = self._topic_to_agent.get(topic_id)
        return self._agents.get(slug) if slug else None

    @property
    def general(self) -> AgentConfig:
        return self._agents[GENERAL_SLUG]

    def all_agents(self) -> List[AgentConfig]:
        return list(self._agents.values())

    def specialists(self) -> List[AgentConfig]:
        """Every agent except the orchestrator, used for board meetings."""
        return [a for a in self._agents.values() if a.slug != GENERAL_SLUG]

    @staticmethod
    def slugs() -> List[str]:
        return list(AGENT_SLUGS)

    # ------------------------------------------------------------------
    # Topic management
    # ------------------------------------------------------------------
    def set_topic_id(self, slug: str, topic_id: int):
        agent = self._agents.get(slug)
        if not agent:
            return
        if agent.topic_id is not None:
            self._topic_to_agent.pop(agent.topic_id, None)
        agent.topic_id = topic_id
        self._topic_to_agent[topic_id] = slug

    @staticmethod
    def match_topic_name(topic_name: str) -> Optional[str]:
        """Map a thread/topic title such as "Research" or "research notes" to a slug."""
        lower = topic_name.lower().strip()
        for slug in AGENT_SLUGS:
            if lower == slug or lower.startswith(slug):
                return slug
        return None

    def save_topic_mappings(self):
        mapping = {slug: a.topic_id for slug, a in self._agents.items() if a.topic_id is not None}
        try:
            self._map_file.parent.mkdir(parents=True, exist_ok=True)
            self._map_file.write_text(json.dumps(mapping, indent=2), encoding="utf-8")
            log("agents_mapping_saved", f"Saved {len(mapping)} topic mappings")
        except OSError as e:
            log_error("agents_mapping_save_error", "Failed to save topic mappings", e)

    def is_forum_mode(self) -> bool:
        return any(a.topic_id is not None for a in self._agents.values())
