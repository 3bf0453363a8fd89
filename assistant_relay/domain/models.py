"""Domain data models — pure Python dataclasses."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Action lifecycle: pending -> approved -> executed | failed
#                          \-> denied
ACTION_PENDING = "pending"
ACTION_APPROVED = "approved"
ACTION_DENIED = "denied"
ACTION_EXECUTED = "executed"
ACTION_FAILED = "failed"

PROVIDER_CLAUDE = "claude"
PROVIDER_OPENROUTER = "openrouter"
PROVIDER_OLLAMA = "ollama"
PROVIDER_ERROR = "error"
PROVIDERS = (PROVIDER_CLAUDE, PROVIDER_OPENROUTER, PROVIDER_OLLAMA)


@dataclass
class ParsedAction:
    """Action directive parsed from an LLM response."""

    type: str  # lowercased, e.g. "send_email"
    fields: Dict[str, str] = field(default_factory=dict)


@dataclass
class MemoryIntent:
    """A REMEMBER / GOAL / DONE directive."""

    kind: str  # "remember" | "goal" | "done"
    content: str
    deadline: Optional[str] = None


@dataclass
class PendingAction:
    id: str
    type: str
    description: str
    payload: Dict[str, Any]
    status: str
    created_at: str
    executed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PendingAction":
        return cls(
            id=str(row["id"]),
            type=str(row.get("type", "")),
            description=str(row.get("description", "")),
            payload=dict(row.get("payload") or {}),
            status=str(row.get("status", ACTION_PENDING)),
            created_at=str(row.get("created_at", "")),
            executed_at=row.get("executed_at"),
        )


@dataclass
class AgentConfig:
    name: str
    slug: str
    system_prompt: str
    topic_id: Optional[int] = None


@dataclass
class ModelConfig:
    agent: str
    provider: str  # one of PROVIDERS
    model: str
    enabled: bool = True


@dataclass
class ProviderResult:
    text: str
    provider: str  # one of PROVIDERS or PROVIDER_ERROR
    duration_ms: Optional[int] = None


@dataclass
class AgentResponse:
    agent: AgentConfig
    response: str
    duration_ms: int
    error: Optional[str] = None


@dataclass
class BoardMeetingResult:
    question: str
    responses: List[AgentResponse]
    synthesis: str
    total_duration_ms: int


@dataclass
class TokenUsage:
    provider: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_usd: float
    agent: str = "general"
    duration_ms: Optional[int] = None
    session_id: Optional[str] = None
