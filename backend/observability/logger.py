"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

High-frequency events (per audio chunk) are logged at "debug" and are
filtered out unless LOG_LEVEL=DEBUG.
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
}

# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_min_level: int = LEVELS["info"]
_json_output: bool = True


def configure(*, level: str = "info", json_output: bool = True) -> None:
    """
    Set the process-wide minimum level and output format.

    Unknown level names fall back to "info".
    """
    global _min_level, _json_output  # pylint: disable=global-statement
    _min_level = LEVELS.get(level.lower(), LEVELS["info"])
    _json_output = json_output


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _format_text(event: Mapping[str, Any]) -> str:
    head = f"{event.get('ts_ms')} {str(event.get('level', 'info')).upper():<7} {event.get('event_type')}"
    rest = " ".join(
        f"{k}={v}" for k, v in event.items()
        if k not in ("ts_ms", "level", "event_type")
    )
    return f"{head} {rest}" if rest else head


def log_event(event: Mapping[str, Any], *, level: str = "info") -> None:
    """
    Write a single log event.

    The caller supplies event_type and any context (session_id,
    connection_state, ...). ts_ms and level are filled in here when
    absent.

    This function:
    - Drops events below the configured level
    - Writes exactly one line
    - Flushes immediately
    - Never raises
    """
    if LEVELS.get(level, LEVELS["info"]) < _min_level:
        return

    record: dict[str, Any] = {"ts_ms": _now_ms(), "level": level, **event}

    if not _json_output:
        _print(_format_text(record))
        return

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the session
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "level": "error",
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
