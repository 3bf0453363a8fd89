"""Board meeting — fan a question out to every specialist, then synthesize."""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

from assistant_relay.agents.registry import AgentRegistry
from assistant_relay.domain.models import AgentConfig, AgentResponse, BoardMeetingResult
from assistant_relay.logger import log, log_error

CallModel = Callable[[str], Awaitable[str]]

SYNTHESIS_FALLBACK = "Could not synthesize board meeting responses. See individual agent responses above."


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def build_agent_prompt(agent: AgentConfig, question: str, profile_context: Optional[str] = None) -> str:
    parts = [
        agent.system_prompt,
        f"\nUser profile:\n{profile_context}" if profile_context else "",
        "\nYou are participating in a board meeting. Multiple specialist agents are being consulted "
        "on the same question. Provide your perspective based on your specialty.",
        "\nKeep your response focused and under 300 words.",
        f"\nQuestion: {question}",
    ]
    return "\n".join(parts)


def build_synthesis_prompt(general: AgentConfig, question: str, responses: List[AgentResponse]) -> str:
    summaries = "\n\n".join(f"### {r.agent.name}\n{r.response}" for r in responses)
    return "\n".join([
        general.system_prompt,
        "\nYou are synthesizing a board meeting. Multiple specialist agents have weighed in on "
        "the same question. Your job:",
        "1. Identify points of consensus",
        "2. Highlight key disagreements or different perspectives",
        "3. Provide a clear, actionable recommendation",
        "4. Keep the synthesis concise (under 250 words)",
        f"\nOriginal question: {question}",
        "\n--- Agent Responses ---\n",
        summaries,
        "\n--- End of Responses ---",
        "\nSynthesize the above into a clear summary with recommendation.",
    ])


class BoardOrchestrator:
    """Runs board meetings against the injected model-calling function.

    Specialist calls run concurrently, bounded by ``max_concurrency``
    (defaults to the number of specialists). A failing specialist gets a
    placeholder response; the meeting itself never raises.
    """

    def __init__(self, registry: AgentRegistry, max_concurrency: int = 0):
        self.registry = registry
        self.max_concurrency = max_concurrency

    async def _consult(
        self,
        agent: AgentConfig,
        question: str,
        call_model: CallModel,
        profile_context: Optional[str],
        semaphore: asyncio.Semaphore,
    ) -> AgentResponse:
        start = time.monotonic()
        async with semaphore:
            try:
                response = await call_model(build_agent_prompt(agent, question, profile_context))
            except Exception as e:
                log_error("board_agent_error", f"{agent.name} failed", e)
                return AgentResponse(
                    agent=agent,
                    response=f"[{agent.name} agent was unable to respond]",
                    duration_ms=_elapsed_ms(start),
                    error=str(e) or type(e).__name__,
                )
        duration_ms = _elapsed_ms(start)
        log("board_agent_responded", f"{agent.name}: {len(response)} chars",
            duration_ms=duration_ms, metadata={"agent": agent.slug})
        return AgentResponse(agent=agent, response=response, duration_ms=duration_ms)

    async def run_board_meeting(
        self,
        question: str,
        call_model: CallModel,
        profile_context: Optional[str] = None,
    ) -> BoardMeetingResult:
        start = time.monotonic()
        specialists = self.registry.specialists()
        log("board_meeting_start", f"Question: {question[:80]}", metadata={"agent_count": len(specialists)})

        semaphore = asyncio.Semaphore(self.max_concurrency or max(len(specialists), 1))
        responses = list(await asyncio.gather(*(
            self._consult(agent, question, call_model, profile_context, semaphore)
            for agent in specialists
        )))

        successes = sum(1 for r in responses if not r.error)
        log("board_meeting_responses", f"{successes}/{len(specialists)} agents responded")

        try:
            synthesis = await call_model(build_synthesis_prompt(self.registry.general, question, responses))
        except Exception as e:
            log_error("board_synthesis_error", "Failed to synthesize board meeting", e)
            synthesis = SYNTHESIS_FALLBACK

        total_ms = _elapsed_ms(start)
        log("board_meeting_complete", f"Synthesized in {total_ms}ms", duration_ms=total_ms)
        return BoardMeetingResult(question=question, responses=responses, synthesis=synthesis,
                                  total_duration_ms=total_ms)
