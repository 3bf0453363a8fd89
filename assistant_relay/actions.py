"""Human-in-the-loop action queue.

When the model asks for an external effect (send email, create task, ...)
the action is stored as ``pending`` and the user is shown approve / deny
buttons. Nothing runs without an explicit approval.

States: pending -> approved -> executed | failed
         \\-> denied
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from assistant_relay.domain.models import (
    ACTION_APPROVED,
    ACTION_DENIED,
    ACTION_EXECUTED,
    ACTION_FAILED,
    ACTION_PENDING,
    ParsedAction,
    PendingAction,
)
from assistant_relay.logger import log, log_error
from assistant_relay.storage import JsonlStore

ACTIONS_TABLE = "actions"

ActionHandler = Callable[[Dict[str, Any]], Awaitable[str]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ----------------------------------------------------------------------
# Descriptions
# ----------------------------------------------------------------------
def _describe_email(f: Dict[str, str]) -> str:
    subject = f': "{f["subject"]}"' if f.get("subject") else ""
    return f"Send email to {f.get('to') or '?'}{subject}"


def _describe_task(f: Dict[str, str]) -> str:
    due = f" (due {f['due']})" if f.get("due") else ""
    return f'Create task: "{f.get("title") or "?"}"{due}'


def _describe_calendar(f: Dict[str, str]) -> str:
    when = f" at {f['time']}" if f.get("time") else ""
    return f'Update calendar: "{f.get("event") or "?"}"{when}'


_DESCRIBERS: Dict[str, Callable[[Dict[str, str]], str]] = {
    "send_email": _describe_email,
    "create_task": _describe_task,
    "update_calendar": _describe_calendar,
}


def format_action_description(action: ParsedAction) -> str:
    """Human-readable summary shown next to the approve / deny buttons."""
    describer = _DESCRIBERS.get(action.type)
    if describer:
        return describer(action.fields)
    pairs = ", ".join(f"{k}={v}" for k, v in action.fields.items())
    return f"{action.type}: {pairs}"


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------
@dataclass
class ExecutionOutcome:
    ok: bool
    description: str


async def _log_email(payload: Dict[str, Any]) -> str:
    log("action_execute", f"Would send email to {payload.get('to')}",
        metadata={"type": "send_email", "to": payload.get("to"), "subject": payload.get("subject")})
    return (f'Email action logged: to {payload.get("to")}, subject "{payload.get("subject")}". '
            "(Integration pending: connect Gmail)")


async def _log_task(payload: Dict[str, Any]) -> str:
    log("action_execute", f"Would create task: {payload.get('title')}",
        metadata={"type": "create_task", "title": payload.get("title")})
    return f'Task action logged: "{payload.get("title")}". (Integration pending: connect Notion)'


async def _log_calendar(payload: Dict[str, Any]) -> str:
    log("action_execute", f"Would update calendar: {payload.get('event')}",
        metadata={"type": "update_calendar", "event": payload.get("event")})
    return f'Calendar action logged: "{payload.get("event")}". (Integration pending: connect Google Calendar)'


class ActionExecutor:
    """Dispatches an approved action to the handler registered for its type.

    Handlers are where real integrations plug in. ``execute`` never raises:
    a handler failure becomes a failed ``ExecutionOutcome``.
    """

    def __init__(self, handlers: Optional[Dict[str, ActionHandler]] = None):
        self._handlers: Dict[str, ActionHandler] = {
            "send_email": _log_email,
            "create_task": _log_task,
            "update_calendar": _log_calendar,
        }
        if handlers:
            self._handlers.update(handlers)

    def register(self, action_type: str, handler: ActionHandler):
        self._handlers[action_type] = handler

    async def execute(self, action: PendingAction) -> ExecutionOutcome:
        handler = self._handlers.get(action.type)
        if handler is None:
            log("action_execute", f"Custom action: {action.description}",
                metadata={"type": action.type, "payload": action.payload})
            return ExecutionOutcome(True, f'Action "{action.type}" logged. (No handler configured yet)')
        try:
            return ExecutionOutcome(True, await handler(action.payload))
        except Exception as e:
            log_error("action_execute_error", f"Handler for {action.type} failed", e)
            return ExecutionOutcome(False, f"Action {action.type} failed: {e}")


# ----------------------------------------------------------------------
# Queue
# ----------------------------------------------------------------------
class ActionQueue:
    """Stores pending actions and drives the approval state machine."""

    def __init__(self, store: Optional[JsonlStore], executor: Optional[ActionExecutor] = None):
        self.store = store
        self.executor = executor or ActionExecutor()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, action_id: str) -> asyncio.Lock:
        lock = self._locks.get(action_id)
        if lock is None:
            lock = self._locks[action_id] = asyncio.Lock()
        return lock

    def _release_lock(self, action_id: str, lock: asyncio.Lock):
        # A late caller that finds no entry makes a fresh lock; the status
        # check in the store update still rejects its transition.
        if self._locks.get(action_id) is lock and not lock.locked():
            del self._locks[action_id]

    async def queue_action(self, action: ParsedAction) -> Optional[str]:
        """Store a new pending action. Returns its id, or None if it could not be queued."""
        if not self.store:
            return None

        description = format_action_description(action)
        try:
            row = await self.store.insert(ACTIONS_TABLE, {
                "type": action.type,
                "description": description,
                "payload": dict(action.fields),
                "status": ACTION_PENDING,
                "executed_at": None,
            })
        except Exception as e:
            log_error("action_queue_error", "Failed to queue action", e)
            return None

        log("action_queued", description, metadata={"action_id": row["id"], "type": action.type})
        return row["id"]

    async def get_action(self, action_id: str) -> Optional[PendingAction]:
        if not self.store:
            return None
        row = await self.store.get(ACTIONS_TABLE, action_id)
        return PendingAction.from_row(row) if row else None

    async def list_actions(self, status: str = ACTION_PENDING) -> List[PendingAction]:
        if not self.store:
            return []
        rows = await self.store.select(ACTIONS_TABLE, eq={"status": status}, order_by="created_at")
        return [PendingAction.from_row(r) for r in rows]

    async def _transition(self, action_id: str, new_status: str) -> Dict[str, Any]:
        """Move a pending action to ``new_status``.

        Returns ``{"action": PendingAction}`` on success or a failed result dict.
        """
        if not self.store:
            return {"success": False, "description": "Database unavailable"}
        try:
            action = await self.get_action(action_id)
            if not action:
                return {"success": False, "description": "Action not found"}
            if action.status != ACTION_PENDING:
                return {"success": False, "description": f"Action already {action.status}"}

            updated = await self.store.update(
                ACTIONS_TABLE, action_id, {"status": new_status}, expect={"status": ACTION_PENDING}
            )
            if updated is None:
                current = await self.get_action(action_id)
                status = current.status if current else "removed"
                return {"success": False, "description": f"Action already {status}"}
        except Exception as e:
            verb = "approve" if new_status == ACTION_APPROVED else "deny"
            log_error(f"action_{verb}_error", f"Failed to {verb} action", e)
            return {"success": False, "description": f"Failed to {verb}"}
        return {"action": action}

    async def approve_action(self, action_id: str) -> Dict[str, Any]:
        """Approve and execute an action. Execution happens at most once."""
        lock = self._lock_for(action_id)
        try:
            async with lock:
                return await self._approve(action_id)
        finally:
            self._release_lock(action_id, lock)

    async def _approve(self, action_id: str) -> Dict[str, Any]:
        result = await self._transition(action_id, ACTION_APPROVED)
        if "action" not in result:
            return result
        action: PendingAction = result["action"]

        outcome = await self.executor.execute(action)
        final_status = ACTION_EXECUTED if outcome.ok else ACTION_FAILED
        try:
            await self.store.update(
                ACTIONS_TABLE,
                action_id,
                {"status": final_status, "executed_at": _now_iso()},
                expect={"status": ACTION_APPROVED},
            )
        except Exception as e:
            # Left in "approved"; reconcile_stuck_actions surfaces it on restart
            log_error("action_finalize_error", f"Executed action {action_id} but could not record it", e)

        log(f"action_{final_status}", action.description,
            metadata={"action_id": action_id, "type": action.type})
        return {"success": outcome.ok, "description": outcome.description}

    async def deny_action(self, action_id: str) -> Dict[str, Any]:
        lock = self._lock_for(action_id)
        try:
            async with lock:
                return await self._deny(action_id)
        finally:
            self._release_lock(action_id, lock)

    async def _deny(self, action_id: str) -> Dict[str, Any]:
        result = await self._transition(action_id, ACTION_DENIED)
        if "action" not in result:
            return result
        action: PendingAction = result["action"]
        log("action_denied", action.description, metadata={"action_id": action_id, "type": action.type})
        return {"success": True, "description": action.description}

    async def reconcile_stuck_actions(self) -> List[PendingAction]:
        """Report actions left in ``approved`` by a crash.

        They are logged for manual review and never re-executed automatically.
        """
        try:
            stuck = await self.list_actions(ACTION_APPROVED)
        except Exception as e:
            log_error("action_reconcile_error", "Failed to scan for stuck actions", e)
            return []
        for action in stuck:
            log("action_needs_review",
                f"Action {action.id} was approved but never recorded as executed: {action.description}",
                level="warn", metadata={"action_id": action.id, "type": action.type})
        return stuck
