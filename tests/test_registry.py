"""Tests for AgentRegistry — prompt loading and topic bindings."""

import json

from assistant_relay.agents.registry import AgentRegistry, default_prompt


def _make_registry(tmp_path) -> AgentRegistry:
    return AgentRegistry(str(tmp_path / "agents"), str(tmp_path / "agents.json"))


class TestLoading:
    def test_defaults_without_files(self, tmp_path):
        registry = _make_registry(tmp_path)
        registry.load()
        assert registry.get("research").system_prompt == default_prompt("research")
        assert registry.general.slug == "general"
        assert not registry.is_forum_mode()

    def test_prompt_files_override_defaults(self, tmp_path):
        (tmp_path / "agents").mkdir()
        (tmp_path / "agents" / "critic.md").write_text("You poke holes in plans.")
        registry = _make_registry(tmp_path)
        registry.load()
        assert registry.get("critic").system_prompt == "You poke holes in plans."

    def test_mapping_file(self, tmp_path):
        (tmp_path / "agents.json").write_text(json.dumps({"research": 11, "finance": 22, "bogus": 33}))
        registry = _make_registry(tmp_path)
        registry.load()

        assert registry.get_by_topic_id(11).slug == "research"
        assert registry.get_by_topic_id(22).slug == "finance"
        assert registry.get_by_topic_id(33) is None
        assert registry.is_forum_mode()

    def test_specialists_exclude_general(self, tmp_path):
        registry = _make_registry(tmp_path)
        slugs = [a.slug for a in registry.specialists()]
        assert "general" not in slugs
        assert slugs == ["research", "content", "finance", "strategy", "critic"]


class TestTopics:
    def test_match_topic_name(self):
        assert AgentRegistry.match_topic_name("Research") == "research"
        assert AgentRegistry.match_topic_name("  finance talk ") == "finance"
        assert AgentRegistry.match_topic_name("random chat") is None

    def test_rebinding_drops_old_topic(self, tmp_path):
        registry = _make_registry(tmp_path)
        registry.set_topic_id("content", 1)
        registry.set_topic_id("content", 2)
        assert registry.get_by_topic_id(1) is None
        assert registry.get_by_topic_id(2).slug == "content"

    def test_save_round_trip(self, tmp_path):
        registry = _make_registry(tmp_path)
        registry.set_topic_id("strategy", 77)
        registry.save_topic_mappings()

        reloaded = _make_registry(tmp_path)
        reloaded.load()
        assert reloaded.get("strategy").topic_id == 77
