"""Log tail streaming engine.

This package turns an append-only, externally written, rotation-prone text
file into a live, filtered, per-subscriber event feed.

Key Components:
    - models: Severities, level filters, records, heartbeats, subscriptions
    - cursor_store: Per-subscription delivered offsets
    - chunk_reader: Bounded reads of newly appended bytes
    - classifier: Marker-based severity classification and filtering
    - codec: Server-sent event framing
    - tail_loop: Per-subscription poll and keep-alive timers
    - registry: Process-wide table of active subscriptions
    - endpoint: Opens and closes subscriptions for the transport

Example:
    >>> from mcdash.tailing import LogStreamEndpoint
    >>> endpoint = LogStreamEndpoint("latest.log")
    >>> stream = await endpoint.open(level="WARN", identity="ops@example.com")
    >>> async for frame in stream.frames():
    ...     print(frame.decode())
"""

from __future__ import annotations

from .chunk_reader import Chunk, ChunkReader
from .classifier import LineFilter, accept, classify
from .codec import decode_payload, encode_unit
from .config import TailConfig
from .cursor_store import CursorStore, LogCursor
from .endpoint import LogStream, LogStreamEndpoint
from .errors import (
    InvalidLevelFilter,
    SetupFailure,
    SourceUnavailable,
    TailError,
    TransientReadFailure,
)
from .models import Heartbeat, LevelFilter, LogRecord, Severity, Subscription
from .registry import SubscriptionRegistry
from .tail_loop import TailLoop, TailState

__all__ = [
    "Chunk",
    "ChunkReader",
    "CursorStore",
    "Heartbeat",
    "InvalidLevelFilter",
    "LevelFilter",
    "LineFilter",
    "LogCursor",
    "LogRecord",
    "LogStream",
    "LogStreamEndpoint",
    "SetupFailure",
    "Severity",
    "SourceUnavailable",
    "Subscription",
    "SubscriptionRegistry",
    "TailConfig",
    "TailError",
    "TailLoop",
    "TailState",
    "TransientReadFailure",
    "accept",
    "classify",
    "decode_payload",
    "encode_unit",
]
