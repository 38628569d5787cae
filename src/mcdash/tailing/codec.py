"""Server-sent event framing for stream units.

Every unit is one text block terminated by a blank line: log records and
notices become ``data:`` frames, heartbeats become ``: keep-alive``
comment frames. Decoding lives here too so that consumers interpret
payloads the same way the engine produced them.
"""

from __future__ import annotations

import json
import logging

from sse_starlette import ServerSentEvent

from .models import Heartbeat, LogRecord, Severity, StreamUnit

logger = logging.getLogger(__name__)

FRAME_SEPARATOR = "\n"

_CLASSIFIED = {Severity.INFO.value, Severity.WARN.value, Severity.ERROR.value}


def to_event(unit: StreamUnit) -> ServerSentEvent:
    """Convert a stream unit to a server-sent event."""
    if isinstance(unit, Heartbeat):
        return ServerSentEvent(comment=unit.comment, sep=FRAME_SEPARATOR)
    return ServerSentEvent(data=unit.to_payload(), sep=FRAME_SEPARATOR)


def encode_unit(unit: StreamUnit) -> bytes:
    """Encode a stream unit as wire bytes."""
    return to_event(unit).encode()


def decode_payload(payload: str) -> LogRecord:
    """Interpret the data payload of one frame.

    Args:
        payload: Text following ``data:`` (multi-line data already joined).

    Returns:
        A classified record for ``{level, content}`` objects, a SYSTEM
        record for bare notices, and an UNKNOWN record for anything that
        looks like a record but cannot be decoded. Nothing is dropped.
    """
    stripped = payload.strip()
    if not stripped.startswith("{"):
        return LogRecord.system(payload)

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        logger.debug(f"Malformed record payload: {e}")
        return LogRecord(severity=Severity.UNKNOWN, text=payload)

    if not isinstance(data, dict) or not isinstance(data.get("content"), str):
        return LogRecord(severity=Severity.UNKNOWN, text=payload)

    level = data.get("level")
    if level not in _CLASSIFIED:
        return LogRecord(severity=Severity.UNKNOWN, text=data["content"])
    return LogRecord(severity=Severity(level), text=data["content"])
