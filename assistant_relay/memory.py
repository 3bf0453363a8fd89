"""Conversation memory, facts and goals.

Every function degrades to a no-op (or an empty string) when the store is
unavailable, and a failed write is logged rather than raised so it never
blocks the reply to the user.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from assistant_relay.directives import extract_intents
from assistant_relay.logger import log, log_error
from assistant_relay.storage import JsonlStore

MESSAGES_TABLE = "messages"
MEMORY_TABLE = "memory"


class MemoryStore:
    """Persists chat history and the user's facts / goals."""

    def __init__(self, store: Optional[JsonlStore]):
        self.store = store

    # ------------------------------------------------------------------
    # Conversation history
    # ------------------------------------------------------------------
    async def save_message(self, role: str, content: str, metadata: Optional[Dict[str, Any]] = None):
        if not self.store:
            return
        try:
            await self.store.insert(MESSAGES_TABLE, {
                "role": role,
                "content": content,
                "channel": "discord",
                "metadata": metadata or {},
            })
        except Exception as e:
            log_error("memory_save_error", f"Failed to save {role} message", e)

    async def get_recent_messages(self, limit: int = 10) -> str:
        if not self.store:
            return ""
        try:
            rows = await self.store.select(MESSAGES_TABLE, order_by="created_at", descending=True, limit=limit)
        except Exception as e:
            log_error("memory_read_error", "Failed to load recent messages", e)
            return ""
        lines = []
        for row in reversed(rows):
            speaker = "User" if row.get("role") == "user" else "Assistant"
            lines.append(f"{speaker}: {row.get('content', '')}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Facts & goals
    # ------------------------------------------------------------------
    async def save_fact(self, content: str):
        if not self.store:
            return
        await self.store.insert(MEMORY_TABLE, {"type": "fact", "content": content})
        log("memory_fact_saved", content)

    async def save_goal(self, content: str, deadline: Optional[str] = None):
        if not self.store:
            return
        row: Dict[str, Any] = {"type": "goal", "content": content}
        if deadline:
            row["deadline"] = deadline
        await self.store.insert(MEMORY_TABLE, row)
        log("memory_goal_saved", content)

    async def complete_goal(self, search_text: str) -> bool:
        """Mark the most recent open goal containing ``search_text`` as completed."""
        if not self.store:
            return False
        matches = await self.store.select(
            MEMORY_TABLE,
            eq={"type": "goal"},
            ilike={"content": search_text},
            order_by="created_at",
            descending=True,
            limit=1,
        )
        if not matches:
            return False
        updated = await self.store.update(
            MEMORY_TABLE,
            matches[0]["id"],
            {"type": "completed_goal", "completed_at": datetime.now(timezone.utc).isoformat()},
            expect={"type": "goal"},
        )
        if updated:
            log("memory_goal_completed", matches[0]["content"])
        return updated is not None

    async def get_memory_context(self) -> str:
        """Goals, facts and preferences formatted for prompt injection."""
        if not self.store:
            return ""
        parts = []
        try:
            goals = await self.store.select(MEMORY_TABLE, eq={"type": "goal"}, order_by="created_at", descending=True)
            facts = await self.store.select(
                MEMORY_TABLE, eq={"type": "fact"}, order_by="created_at", descending=True, limit=20
            )
            prefs = await self.store.select(
                MEMORY_TABLE, eq={"type": "preference"}, order_by="created_at", descending=True, limit=10
            )
        except Exception as e:
            log_error("memory_read_error", "Failed to load memory context", e)
            return ""

        if goals:
            parts.append("ACTIVE GOALS:")
            for g in goals:
                deadline = f" (by {g['deadline']})" if g.get("deadline") else ""
                parts.append(f"- {g.get('content', '')}{deadline}")
        if facts:
            parts.append("\nPERSISTENT MEMORY:")
            parts.extend(f"- {f.get('content', '')}" for f in facts)
        if prefs:
            parts.append("\nPREFERENCES:")
            parts.extend(f"- {p.get('content', '')}" for p in prefs)
        return "\n".join(parts)

    # ------------------------------------------------------------------
    # Intent processing
    # ------------------------------------------------------------------
    async def process_intents(self, response: str) -> str:
        """Store every REMEMBER / GOAL / DONE tag and return the stripped text.

        Each intent is handled independently; a failure on one is logged and
        the rest are still processed.
        """
        parsed = extract_intents(response)
        for intent in parsed.intents:
            try:
                if intent.kind == "remember":
                    await self.save_fact(intent.content)
                elif intent.kind == "goal":
                    await self.save_goal(intent.content, intent.deadline)
                elif intent.kind == "done":
                    await self.complete_goal(intent.content)
            except Exception as e:
                log_error(f"memory_{intent.kind}_error", f"Failed to process {intent.kind}: {intent.content}", e)
        return parsed.cleaned
