"""Tests for BoardOrchestrator — parallel consult, failure isolation, synthesis."""

import asyncio
import time

import pytest

from assistant_relay.agents.orchestrator import (
    SYNTHESIS_FALLBACK,
    BoardOrchestrator,
    build_agent_prompt,
    build_synthesis_prompt,
)
from assistant_relay.agents.registry import AgentRegistry
from assistant_relay.domain.models import AgentResponse
from assistant_relay.errors import ProviderError


def _make_orchestrator(tmp_path, max_concurrency=0) -> BoardOrchestrator:
    registry = AgentRegistry(str(tmp_path / "agents"), str(tmp_path / "agents.json"))
    registry.load()
    return BoardOrchestrator(registry, max_concurrency=max_concurrency)


def _speaker(prompt: str) -> str:
    """Which specialist (or the synthesis) a prompt is addressed to."""
    if "synthesizing a board meeting" in prompt:
        return "synthesis"
    for slug in ("research", "content", "finance", "strategy", "critic"):
        if f"You are the {slug} agent" in prompt:
            return slug
    return "unknown"


class TestPrompts:
    def test_agent_prompt_contains_question_and_profile(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)
        agent = orchestrator.registry.get("finance")
        prompt = build_agent_prompt(agent, "Should I raise prices?", "Runs a bakery")
        assert prompt.startswith(agent.system_prompt)
        assert "User profile:\nRuns a bakery" in prompt
        assert prompt.endswith("Question: Should I raise prices?")

    def test_synthesis_prompt_lists_every_response(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)
        responses = [
            AgentResponse(agent=orchestrator.registry.get("research"), response="Data says yes", duration_ms=1),
            AgentResponse(agent=orchestrator.registry.get("critic"), response="Risky", duration_ms=1),
        ]
        prompt = build_synthesis_prompt(orchestrator.registry.general, "Q?", responses)
        assert "### Research\nData says yes" in prompt
        assert "### Critic\nRisky" in prompt
        assert "Original question: Q?" in prompt


class TestRunBoardMeeting:
    @pytest.mark.asyncio
    async def test_all_specialists_answer(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)

        async def call_model(prompt):
            return f"{_speaker(prompt)} says hi"

        result = await orchestrator.run_board_meeting("Expand to Europe?", call_model)

        assert [r.agent.slug for r in result.responses] == ["research", "content", "finance", "strategy", "critic"]
        assert all(r.error is None for r in result.responses)
        assert result.responses[0].response == "research says hi"
        assert result.synthesis == "synthesis says hi"
        assert result.question == "Expand to Europe?"

    @pytest.mark.asyncio
    async def test_one_failure_is_isolated(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)
        synthesis_prompts = []

        async def call_model(prompt):
            speaker = _speaker(prompt)
            if speaker == "finance":
                raise ProviderError("error", "All AI providers are currently unavailable")
            if speaker == "synthesis":
                synthesis_prompts.append(prompt)
                return "Consensus: go"
            return f"{speaker} answer"

        result = await orchestrator.run_board_meeting("Q?", call_model)

        finance = next(r for r in result.responses if r.agent.slug == "finance")
        assert finance.response == "[Finance agent was unable to respond]"
        assert finance.error
        assert sum(1 for r in result.responses if r.error is None) == 4
        assert result.synthesis == "Consensus: go"
        assert "### Finance\n[Finance agent was unable to respond]" in synthesis_prompts[0]

    @pytest.mark.asyncio
    async def test_specialists_run_concurrently(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)

        async def call_model(prompt):
            if _speaker(prompt) != "synthesis":
                await asyncio.sleep(0.2)
            return "ok"

        start = time.monotonic()
        await orchestrator.run_board_meeting("Q?", call_model)
        # Five sequential calls would take a full second
        assert time.monotonic() - start < 0.8

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path, max_concurrency=2)
        in_flight = 0
        peak = 0

        async def call_model(prompt):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return "ok"

        await orchestrator.run_board_meeting("Q?", call_model)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_slow_specialist_does_not_block_others(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)
        finished = []

        async def call_model(prompt):
            speaker = _speaker(prompt)
            if speaker == "strategy":
                await asyncio.sleep(0.1)
            finished.append(speaker)
            return f"{speaker} ok"

        result = await orchestrator.run_board_meeting("Q?", call_model)

        assert finished.index("strategy") == 4
        assert finished[-1] == "synthesis"
        assert [r.agent.slug for r in result.responses][3] == "strategy"

    @pytest.mark.asyncio
    async def test_synthesis_failure_uses_fallback(self, tmp_path):
        orchestrator = _make_orchestrator(tmp_path)

        async def call_model(prompt):
            if _speaker(prompt) == "synthesis":
                raise ProviderError("error", "down")
            return "ok"

        result = await orchestrator.run_board_meeting("Q?", call_model)
        assert result.synthesis == SYNTHESIS_FALLBACK
        assert len(result.responses) == 5
