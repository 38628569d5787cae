"""Configuration for the log tail streaming engine.

This module defines the dataclass that controls tail loop behavior: how
often the file is polled, how often keep-alives are sent, how much backlog
a new subscriber receives, and how many units may wait in a subscriber's
queue.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_KEEPALIVE_INTERVAL = 25.0
DEFAULT_INITIAL_WINDOW = 50_000
DEFAULT_MAX_QUEUE_SIZE = 1000


@dataclass
class TailConfig:
    """Tunables for every tail loop.

    Attributes:
        poll_interval_seconds: Seconds between file polls (default: 1.0).
        keepalive_interval_seconds: Seconds between heartbeats (default: 25.0).
        initial_window_bytes: Backlog bytes replayed to a new subscriber (default: 50000).
        max_queue_size: Units buffered per subscriber before the oldest are dropped (default: 1000).
    """

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL
    keepalive_interval_seconds: float = DEFAULT_KEEPALIVE_INTERVAL
    initial_window_bytes: int = DEFAULT_INITIAL_WINDOW
    max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.keepalive_interval_seconds <= 0:
            raise ValueError("keepalive_interval_seconds must be positive")
        if self.initial_window_bytes < 0:
            raise ValueError("initial_window_bytes must not be negative")
        if self.max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
