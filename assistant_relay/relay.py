"""Relay core — turns inbound chat messages into model calls and replies.

Transport-agnostic: the chat platform is reached only through the
``ChatTransport`` port, and approve / deny button presses come back in via
``handle_callback``.
"""

import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from assistant_relay.actions import ActionQueue, format_action_description
from assistant_relay.agents.orchestrator import BoardOrchestrator
from assistant_relay.agents.registry import AgentRegistry
from assistant_relay.directives import extract_actions, strip_directives
from assistant_relay.domain.models import AgentConfig, BoardMeetingResult
from assistant_relay.logger import log, log_error
from assistant_relay.memory import MemoryStore
from assistant_relay.ports import ChatTransport, IncomingMessage
from assistant_relay.router import ProviderRouter

CALLBACK_RE = re.compile(r"^action_(approve|deny)_(.+)$")

DIRECTIVE_INSTRUCTIONS = """
MEMORY MANAGEMENT:
When the user mentions something to remember, goals, or completions,
include these tags in your response (they will be processed automatically):
[REMEMBER: fact to store]
[GOAL: goal text | DEADLINE: optional date]
[DONE: search text for completed goal]

ACTION REQUESTS:
When the user asks you to take an external action (send email, create task,
update calendar, etc.), include this tag in your response instead of doing it directly:
[ACTION: action_type | KEY: value | KEY: value]
The user will be shown an Approve/Deny button before execution.
Supported types and fields:
- [ACTION: send_email | TO: recipient | SUBJECT: subject | BODY: message]
- [ACTION: create_task | TITLE: task title | DUE: optional date]
- [ACTION: update_calendar | EVENT: event name | TIME: date/time]
- [ACTION: custom_type | KEY: value] for anything else"""


def split_message(text: str, limit: int) -> List[str]:
    """Split text into chunks no longer than ``limit``, preferring natural breaks."""
    chunks = []
    remaining = text
    while remaining:
        if len(remaining) <= limit:
            chunks.append(remaining)
            break
        split_at = remaining.rfind("\n\n", 0, limit)
        if split_at <= 0:
            split_at = remaining.rfind("\n", 0, limit)
        if split_at <= 0:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at <= 0:
            split_at = limit
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].strip()
    return chunks


class Relay:
    def __init__(
        self,
        config: Dict[str, Any],
        registry: AgentRegistry,
        memory: MemoryStore,
        actions: ActionQueue,
        router: ProviderRouter,
        orchestrator: BoardOrchestrator,
        transport: Optional[ChatTransport] = None,
    ):
        self.config = config
        self.registry = registry
        self.memory = memory
        self.actions = actions
        self.router = router
        self.orchestrator = orchestrator
        self.transport = transport
        self.profile_context = ""
        self._started_at = time.monotonic()

    async def startup(self):
        self.registry.load()
        profile_file = self.config.get("profile_file")
        if profile_file and Path(profile_file).exists():
            self.profile_context = Path(profile_file).read_text(encoding="utf-8")
        stuck = await self.actions.reconcile_stuck_actions()
        log("relay_started", "Relay ready", metadata={
            "forum_mode": self.registry.is_forum_mode(),
            "fallback_enabled": self.router.fallback_enabled,
            "actions_needing_review": len(stuck),
        })

    # ------------------------------------------------------------------
    # Prompt building
    # ------------------------------------------------------------------
    def _now_str(self) -> str:
        try:
            tz = ZoneInfo(self.config.get("user_timezone") or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            tz = ZoneInfo("UTC")
        return datetime.now(tz).strftime("%A, %B %d, %Y %I:%M %p")

    async def build_prompt(self, user_message: str, agent: Optional[AgentConfig] = None) -> str:
        parts = []
        if agent:
            parts.append(agent.system_prompt)
            parts.append("\nYou are responding via chat. Keep responses concise and conversational.")
        else:
            parts.append("You are a personal AI assistant responding via chat. "
                         "Keep responses concise and conversational.")

        if self.config.get("user_name"):
            parts.append(f"You are speaking with {self.config['user_name']}.")
        parts.append(f"Current time: {self._now_str()}")
        if self.profile_context:
            parts.append(f"\nProfile:\n{self.profile_context}")

        memory_context = await self.memory.get_memory_context()
        if memory_context:
            parts.append(f"\n{memory_context}")
        recent = await self.memory.get_recent_messages(10)
        if recent:
            parts.append(f"\nRecent conversation:\n{recent}")

        parts.append(DIRECTIVE_INSTRUCTIONS)
        parts.append(f"\nUser: {user_message}")
        return "\n".join(parts)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------
    def detect_agent(self, msg: IncomingMessage) -> Optional[AgentConfig]:
        """Agent bound to the message's thread; unbound threads are matched by name."""
        if msg.thread_id is None:
            return None
        agent = self.registry.get_by_topic_id(msg.thread_id)
        if agent or not msg.thread_name:
            return agent
        slug = self.registry.match_topic_name(msg.thread_name)
        if not slug:
            return None
        self.registry.set_topic_id(slug, msg.thread_id)
        self.registry.save_topic_mappings()
        log("topic_detected", f"Bound thread {msg.thread_id} to {slug}")
        return self.registry.get(slug)

    async def handle_message(self, msg: IncomingMessage) -> Optional[str]:
        """Answer one chat message. Returns the text delivered to the user."""
        text = msg.content.strip()
        if text == "!board" or text.startswith("!board "):
            question = text[len("!board"):].strip()
            if not question:
                usage = ("Usage: !board <your question>\n\n"
                         "All specialist agents will weigh in and a synthesis will be provided.")
                await self._send(msg.chat_id, usage, msg.thread_id)
                return usage
            result = await self.run_board(msg.chat_id, question, msg.thread_id)
            return result.synthesis

        agent = self.detect_agent(msg)
        slug = agent.slug if agent else None
        meta = {"agent": slug} if slug else None
        log("message_received", text[:80], metadata={"type": "text", "agent": slug or "general"})

        await self.memory.save_message("user", text, meta)
        prompt = await self.build_prompt(text, agent)
        response = await self.router.call_claude(prompt, agent_slug=slug, resume=True)

        cleaned = await self.process_response(msg.chat_id, response, msg.thread_id)
        await self.memory.save_message("assistant", cleaned, meta)
        if cleaned:
            await self._send(msg.chat_id, cleaned, msg.thread_id)
        return cleaned

    async def process_response(self, chat_id: int, response: str, thread_id: Optional[int] = None) -> str:
        """Queue action tags (with approve / deny buttons) and apply memory tags."""
        parsed = extract_actions(response)
        for action in parsed.actions:
            action_id = await self.actions.queue_action(action)
            if not action_id:
                log("action_not_queued", f"Dropped {action.type}: persistence unavailable", level="warn")
                continue
            if self.transport:
                await self.transport.send_buttons(
                    chat_id,
                    f"Action requested:\n{format_action_description(action)}",
                    [[("Approve", f"action_approve_{action_id}"), ("Deny", f"action_deny_{action_id}")]],
                    thread_id=thread_id,
                )
        return await self.memory.process_intents(parsed.cleaned)

    async def handle_callback(self, token: str) -> Optional[str]:
        """Resolve an approve / deny button press into the text to show the user."""
        match = CALLBACK_RE.match(token)
        if not match:
            return None
        decision, action_id = match.group(1), match.group(2)
        log("action_callback", f"{decision} action {action_id}")

        if decision == "approve":
            result = await self.actions.approve_action(action_id)
            prefix = "Approved" if result["success"] else "Could not approve"
        else:
            result = await self.actions.deny_action(action_id)
            prefix = "Denied" if result["success"] else "Could not deny"
        return f"{prefix}: {result['description']}"

    # ------------------------------------------------------------------
    # Board meetings
    # ------------------------------------------------------------------
    async def run_board(self, chat_id: int, question: str, thread_id: Optional[int] = None) -> BoardMeetingResult:
        log("board_meeting_requested", question[:80])
        await self.memory.save_message("user", f"[Board Meeting] {question}")

        result = await self.orchestrator.run_board_meeting(
            question, self.router.ask, self.profile_context or None
        )

        for resp in result.responses:
            if resp.agent.topic_id is not None:
                await self._send(chat_id, f"[{resp.agent.name}]\n\n{resp.response}", resp.agent.topic_id)

        synthesis = strip_directives(result.synthesis)
        summary = (f"Board Meeting Summary\n\n{synthesis}\n\n"
                   f"({len(result.responses)} agents consulted in {result.total_duration_ms / 1000:.1f}s)")
        await self._send(chat_id, summary, thread_id)
        await self.memory.save_message("assistant", f"[Board Meeting Summary] {synthesis}")
        return result

    async def _send(self, chat_id: int, text: str, thread_id: Optional[int] = None):
        if not self.transport:
            return
        try:
            await self.transport.send_text(chat_id, text, thread_id=thread_id)
        except Exception as e:
            log_error("send_error", f"Failed to deliver message to {chat_id}", e)

    def health(self) -> dict:
        return {
            "status": "ok",
            "uptime": int(time.monotonic() - self._started_at),
            "timestamp": datetime.now().astimezone().isoformat(),
            "session_id": self.router.sessions.session_id,
            "last_provider": self.router.last_provider,
            "fallback_enabled": self.router.fallback_enabled,
            "forum_mode": self.registry.is_forum_mode(),
        }
