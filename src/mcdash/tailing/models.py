"""Data models for the log tail streaming engine.

This module defines the units that flow from a tail loop to a subscriber:
classified log records, keep-alive heartbeats, and the subscription itself.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .errors import InvalidLevelFilter


class Severity(str, Enum):
    """Severity attached to every delivered log record.

    Attributes:
        INFO: Line carrying the INFO marker (or no stronger marker).
        WARN: Line carrying the WARN marker.
        ERROR: Line carrying the ERROR marker.
        SYSTEM: Notice generated by the engine itself, not file content.
        UNKNOWN: Payload that could not be classified on the consuming side.
    """

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SYSTEM = "SYSTEM"
    UNKNOWN = "UNKNOWN"


class LevelFilter(str, Enum):
    """Filter requested by a subscriber when the stream is opened."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    ALL = "ALL"

    @classmethod
    def parse(cls, value: str | None) -> LevelFilter:
        """Parse a ``level`` query value.

        Args:
            value: Raw value from the request, or None when absent.

        Returns:
            The matching filter. An absent or blank value means INFO.

        Raises:
            InvalidLevelFilter: If the value is not a recognized filter.
        """
        if value is None or not value.strip():
            return cls.INFO
        try:
            return cls(value.strip().upper())
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise InvalidLevelFilter(
                f"Invalid log level '{value}'. Allowed levels: {allowed}"
            ) from None


@dataclass(frozen=True)
class LogRecord:
    """A single record delivered to a subscriber.

    Attributes:
        severity: Classification of the record.
        text: Line content (already single-line) or notice text.
    """

    severity: Severity
    text: str

    @classmethod
    def system(cls, text: str) -> LogRecord:
        """Build an engine-generated notice."""
        return cls(severity=Severity.SYSTEM, text=text)

    @property
    def is_system(self) -> bool:
        return self.severity is Severity.SYSTEM

    def to_payload(self) -> str:
        """Render the record as the SSE data payload.

        SYSTEM notices travel as bare strings, everything else as a JSON
        object with ``level`` and ``content`` keys.
        """
        if self.is_system:
            return self.text
        return json.dumps({"level": self.severity.value, "content": self.text})


@dataclass(frozen=True)
class Heartbeat:
    """Keep-alive unit. Carries no severity and is not a log record."""

    comment: str = "keep-alive"


StreamUnit = LogRecord | Heartbeat


@dataclass
class Subscription:
    """One open streaming connection.

    The byte offset of a subscription lives in the cursor store and its
    timer handles live in the registry; this object carries identity,
    the fixed filter, and the outbound queue.

    Attributes:
        id: Opaque identifier, unique per open connection.
        level_filter: Filter fixed at creation time.
        identity: Authenticated identity that opened the stream.
        queue: Bounded buffer of units awaiting delivery.
        created_at: ISO 8601 creation timestamp.
    """

    id: str
    level_filter: LevelFilter
    identity: str = "anonymous"
    queue: asyncio.Queue[StreamUnit] = field(default_factory=asyncio.Queue)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
