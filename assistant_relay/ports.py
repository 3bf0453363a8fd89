"""Transport-facing ports: the relay only speaks these types."""

from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

# One row of inline buttons: (label, callback token)
ButtonRow = List[Tuple[str, str]]


@dataclass
class IncomingMessage:
    """Platform-agnostic inbound chat message."""

    content: str
    chat_id: int
    author_id: int = 0
    author_name: str = ""
    thread_id: Optional[int] = None
    thread_name: Optional[str] = None


class ChatTransport(Protocol):
    async def send_text(self, chat_id: int, text: str, thread_id: Optional[int] = None) -> None:
        ...

    async def send_buttons(
        self, chat_id: int, text: str, buttons: List[ButtonRow], thread_id: Optional[int] = None
    ) -> None:
        ...
