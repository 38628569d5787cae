"""Per-subscription cursor tracking for incremental log delivery.

This module keeps, for every active subscription, the byte offset already
delivered and whether the file has been seen to shrink. Cursors are held in
memory only; nothing is persisted across restarts.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogCursor:
    """Delivery position of one subscription.

    Attributes:
        subscription_id: Owning subscription.
        file_path: Log file the offset refers to.
        offset: Bytes delivered so far.
        observed_size: File size observed when the offset was set.
        rotated: True once the file has been seen to shrink.
        rotation_count: Number of rotations observed.
        last_update_timestamp: ISO 8601 timestamp of the last change.
    """

    subscription_id: str
    file_path: str
    offset: int
    observed_size: int
    rotated: bool = False
    rotation_count: int = 0
    last_update_timestamp: str = ""


class CursorStore:
    """Thread-safe table of cursors keyed by subscription id.

    Only a subscription's own tail loop calls ``advance`` and
    ``mark_rotated`` for that subscription. The store enforces that offsets
    never move backwards except through a rotation reset, and never exceed
    the file size observed when they were set.
    """

    def __init__(self) -> None:
        self._cursors: dict[str, LogCursor] = {}
        self._lock = threading.Lock()

    def create(
        self, subscription_id: str, file_path: str, offset: int, observed_size: int
    ) -> LogCursor:
        """Create the cursor for a new subscription.

        Raises:
            ValueError: If a cursor already exists or the offset is out of range.
        """
        self._check_range(offset, observed_size)
        cursor = LogCursor(
            subscription_id=subscription_id,
            file_path=file_path,
            offset=offset,
            observed_size=observed_size,
            last_update_timestamp=datetime.now().isoformat(),
        )
        with self._lock:
            if subscription_id in self._cursors:
                raise ValueError(f"Cursor already exists for {subscription_id}")
            self._cursors[subscription_id] = cursor
        logger.debug(f"Created cursor for {subscription_id} at offset {offset}")
        return cursor

    def get(self, subscription_id: str) -> LogCursor | None:
        with self._lock:
            return self._cursors.get(subscription_id)

    def advance(self, subscription_id: str, new_offset: int, observed_size: int) -> LogCursor:
        """Move a cursor forward after a successful read.

        Args:
            subscription_id: Subscription whose cursor moves.
            new_offset: Offset just past the bytes delivered.
            observed_size: File size seen by the read.

        Returns:
            The updated cursor.

        Raises:
            KeyError: If the subscription has no cursor.
            ValueError: If the offset would move backwards or past the observed size.
        """
        self._check_range(new_offset, observed_size)
        with self._lock:
            current = self._cursors[subscription_id]
            if new_offset < current.offset:
                raise ValueError(
                    f"Offset for {subscription_id} cannot move backwards "
                    f"({current.offset} -> {new_offset})"
                )
            updated = replace(
                current,
                offset=new_offset,
                observed_size=observed_size,
                last_update_timestamp=datetime.now().isoformat(),
            )
            self._cursors[subscription_id] = updated
        return updated

    def mark_rotated(self, subscription_id: str, observed_size: int) -> LogCursor:
        """Reset a cursor to the start of the file after a size decrease.

        Raises:
            KeyError: If the subscription has no cursor.
        """
        with self._lock:
            current = self._cursors[subscription_id]
            updated = replace(
                current,
                offset=0,
                observed_size=observed_size,
                rotated=True,
                rotation_count=current.rotation_count + 1,
                last_update_timestamp=datetime.now().isoformat(),
            )
            self._cursors[subscription_id] = updated
        logger.warning(
            f"Log file {current.file_path} shrank below offset {current.offset} "
            f"(size {observed_size}), resetting {subscription_id} to 0"
        )
        return updated

    def remove(self, subscription_id: str) -> None:
        with self._lock:
            self._cursors.pop(subscription_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cursors)

    def __contains__(self, subscription_id: object) -> bool:
        with self._lock:
            return subscription_id in self._cursors

    @staticmethod
    def _check_range(offset: int, observed_size: int) -> None:
        if offset < 0:
            raise ValueError(f"Offset must not be negative: {offset}")
        if offset > observed_size:
            raise ValueError(f"Offset {offset} exceeds observed file size {observed_size}")
