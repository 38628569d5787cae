"""Process-wide registry of active log stream subscriptions.

Registry membership is the authoritative liveness signal for a
subscription: tail loops consult ``is_active`` before every emission, and
``unregister`` cancels every timer handle of the subscription at the moment
it is removed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> object: ...


@dataclass
class RegistryEntry:
    """Registered subscription and the handles it owns.

    Attributes:
        subscription_id: Subscription identifier.
        handles: Poll and keep-alive handles, cancelled on removal.
        registered_at: ISO 8601 registration timestamp.
    """

    subscription_id: str
    handles: tuple[Cancellable, ...]
    registered_at: str = field(default_factory=lambda: datetime.now().isoformat())


class SubscriptionRegistry:
    """Thread-safe table of active subscriptions keyed by id.

    Safe for concurrent ``register``/``unregister``/``is_active`` calls from
    the streaming endpoint and every tail loop.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def register(self, subscription_id: str, handles: Iterable[Cancellable]) -> RegistryEntry:
        """Register a subscription with the timer handles it owns.

        Raises:
            ValueError: If the id is already registered.
        """
        entry = RegistryEntry(subscription_id=subscription_id, handles=tuple(handles))
        with self._lock:
            if subscription_id in self._entries:
                raise ValueError(f"Subscription already registered: {subscription_id}")
            self._entries[subscription_id] = entry
            total = len(self._entries)
        logger.info(f"Registered subscription {subscription_id} (active: {total})")
        return entry

    def is_active(self, subscription_id: str) -> bool:
        with self._lock:
            return subscription_id in self._entries

    def unregister(self, subscription_id: str) -> bool:
        """Remove a subscription and cancel all of its handles.

        Idempotent: removing an unknown or already removed id is a no-op.

        Returns:
            True if the subscription was registered.
        """
        with self._lock:
            entry = self._entries.pop(subscription_id, None)
            if entry is None:
                return False
            for handle in entry.handles:
                handle.cancel()
            total = len(self._entries)
        logger.info(f"Unregistered subscription {subscription_id} (active: {total})")
        return True

    def unregister_all(self) -> int:
        """Remove every subscription, cancelling all handles.

        Returns:
            Number of subscriptions removed.
        """
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            for entry in entries:
                for handle in entry.handles:
                    handle.cancel()
        if entries:
            logger.info(f"Unregistered all {len(entries)} subscriptions")
        return len(entries)

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
