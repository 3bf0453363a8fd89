"""Structured event logger — one JSON object per line on stderr."""

import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def log(
    event: str,
    message: str,
    level: str = "info",
    metadata: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
    duration_ms: Optional[int] = None,
) -> None:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "message": message,
    }
    if metadata:
        entry["metadata"] = metadata
    if session_id:
        entry["session_id"] = session_id
    if duration_ms is not None:
        entry["duration_ms"] = duration_ms

    try:
        print(json.dumps(entry, ensure_ascii=False, default=str), file=sys.stderr)
    except Exception:
        pass


def log_error(event: str, message: str, error: Optional[BaseException] = None) -> None:
    metadata = {"error": f"{type(error).__name__}: {error}"} if error is not None else None
    log(event, message, level="error", metadata=metadata)
