"""Per-subscription tail loop.

Each subscription gets its own loop: a poll task that reads newly appended
bytes from the subscription's own offset, and a keep-alive task that emits
heartbeats during idle periods. Both tasks are registered with the
subscription registry and cancelled the moment the subscription is
unregistered.

State machine:
    STARTING -> POLLING <-> SOURCE_MISSING, and any state -> STOPPED.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path

from .chunk_reader import ChunkReader
from .classifier import LineFilter
from .config import TailConfig
from .cursor_store import CursorStore
from .errors import SetupFailure, SourceUnavailable, TailError, TransientReadFailure
from .models import Heartbeat, LogRecord, StreamUnit, Subscription
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

WAITING_NOTICE = "Waiting for new log entries..."
MISSING_NOTICE = "Log file no longer exists. Waiting for it to be created..."
ROTATED_NOTICE = "Log file was rotated or truncated. Starting from beginning."
READ_ERROR_NOTICE = "Error reading log file: {error}"


class TailState(str, Enum):
    """Lifecycle state of a tail loop."""

    STARTING = "starting"
    POLLING = "polling"
    SOURCE_MISSING = "source_missing"
    STOPPED = "stopped"


class TailLoop:
    """Tails one log file on behalf of one subscription.

    The loop is the only writer of its subscription's cursor. Ticks for a
    subscription never overlap: the poll task awaits each tick, including
    the offset advance, before sleeping until the next one.

    Attributes:
        subscription: Subscription being served.
        file_path: Log file being tailed.
        state: Current lifecycle state.
    """

    def __init__(
        self,
        subscription: Subscription,
        file_path: str | Path,
        registry: SubscriptionRegistry,
        cursors: CursorStore,
        reader: ChunkReader | None = None,
        config: TailConfig | None = None,
    ):
        """Initialize tail loop.

        Args:
            subscription: Subscription to serve.
            file_path: Log file to tail.
            registry: Registry that owns the loop's timer handles.
            cursors: Store holding the subscription's offset.
            reader: Chunk reader (default: UTF-8 reader).
            config: Engine tunables (default: TailConfig()).
        """
        self.subscription = subscription
        self.file_path = str(file_path)
        self.registry = registry
        self.cursors = cursors
        self.reader = reader or ChunkReader()
        self.config = config or TailConfig()
        self.state = TailState.STARTING

        self._line_filter = LineFilter(subscription.level_filter)
        self._poll_task: asyncio.Task | None = None
        self._keepalive_task: asyncio.Task | None = None

    @property
    def subscription_id(self) -> str:
        return self.subscription.id

    @property
    def active(self) -> bool:
        return self.registry.is_active(self.subscription_id)

    # ============================================================================
    # Lifecycle
    # ============================================================================

    async def start(self) -> None:
        """Seed the cursor, emit the backlog, and start both timers.

        The cursor starts ``initial_window_bytes`` before the end of the file,
        so a new subscriber sees recent context without a full replay. The
        window is a byte count, so the first backlog line may be cut short.

        Raises:
            SetupFailure: If the file cannot be read or the subscription
                cannot be registered. Nothing is left registered.
            RuntimeError: If the loop was already started.
        """
        if self.state is not TailState.STARTING:
            raise RuntimeError(f"Tail loop for {self.subscription_id} already started")

        try:
            size = await asyncio.to_thread(self.reader.size, self.file_path)
            start_offset = max(0, size - self.config.initial_window_bytes)
            chunk = await asyncio.to_thread(self.reader.read, self.file_path, start_offset)
        except TailError as e:
            self.state = TailState.STOPPED
            raise SetupFailure(f"Error starting log stream: {e}") from e

        if chunk.new_offset <= chunk.size:
            offset, backlog = chunk.new_offset, chunk.lines
        else:
            # File shrank between stat and read, next tick starts from the top
            offset, backlog = 0, []

        try:
            self.cursors.create(self.subscription_id, self.file_path, offset, chunk.size)
        except ValueError as e:
            self.state = TailState.STOPPED
            raise SetupFailure(str(e)) from e

        records = self._line_filter.apply(backlog)
        for unit in records or [LogRecord.system(WAITING_NOTICE)]:
            self._enqueue(unit)

        self._poll_task = asyncio.create_task(
            self._poll_loop(), name=f"tail-poll-{self.subscription_id}"
        )
        self._keepalive_task = asyncio.create_task(
            self._keepalive_loop(), name=f"tail-keepalive-{self.subscription_id}"
        )
        try:
            self.registry.register(self.subscription_id, (self._poll_task, self._keepalive_task))
        except ValueError as e:
            self._poll_task.cancel()
            self._keepalive_task.cancel()
            self.cursors.remove(self.subscription_id)
            self.state = TailState.STOPPED
            raise SetupFailure(str(e)) from e

        self.state = TailState.POLLING
        logger.info(
            f"Tail loop started for {self.subscription_id} "
            f"(filter: {self.subscription.level_filter.value}, offset: {offset}, "
            f"backlog records: {len(records)})"
        )

    def stop(self) -> bool:
        """Stop the loop: unregister, cancel both timers, drop the cursor.

        Idempotent. Stopping a stopped loop is a no-op.

        Returns:
            True if this call removed the subscription from the registry.
        """
        removed = self.registry.unregister(self.subscription_id)
        self.cursors.remove(self.subscription_id)
        if self.state is not TailState.STOPPED:
            self.state = TailState.STOPPED
            logger.info(f"Tail loop stopped for {self.subscription_id}")
        return removed

    # ============================================================================
    # Timers
    # ============================================================================

    async def _poll_loop(self) -> None:
        try:
            while self.active:
                await asyncio.sleep(self.config.poll_interval_seconds)
                if not self.active:
                    break
                try:
                    await self.tick()
                except Exception as e:
                    # A tick must never end the subscription
                    logger.error(f"Unexpected error tailing for {self.subscription_id}: {e}")
                    self._emit(LogRecord.system(READ_ERROR_NOTICE.format(error=e)))
        except asyncio.CancelledError:
            logger.debug(f"Poll task cancelled for {self.subscription_id}")
            raise

    async def _keepalive_loop(self) -> None:
        try:
            while self.active:
                await asyncio.sleep(self.config.keepalive_interval_seconds)
                self._emit(Heartbeat())
        except asyncio.CancelledError:
            logger.debug(f"Keep-alive task cancelled for {self.subscription_id}")
            raise

    # ============================================================================
    # Polling
    # ============================================================================

    async def tick(self) -> int:
        """Run one poll cycle.

        Missing files, rotations and read failures are reported to the
        subscriber as SYSTEM notices; none of them ends the subscription.

        Returns:
            Number of units emitted during this tick.
        """
        cursor = self.cursors.get(self.subscription_id)
        if cursor is None or self.state is TailState.STOPPED:
            return 0

        try:
            size = await asyncio.to_thread(self.reader.size, self.file_path)
        except SourceUnavailable:
            return self._source_missing()
        except TransientReadFailure as e:
            return self._read_failed(e)

        if self.state is TailState.SOURCE_MISSING:
            logger.info(f"Log file {self.file_path} is available again")
            self.state = TailState.POLLING

        if not self.active:
            return 0

        emitted = 0
        offset = cursor.offset
        if size < offset:
            self.cursors.mark_rotated(self.subscription_id, size)
            offset = 0
            emitted += self._emit(LogRecord.system(ROTATED_NOTICE))

        if size <= offset:
            return emitted

        try:
            chunk = await asyncio.to_thread(self.reader.read, self.file_path, offset)
        except SourceUnavailable:
            return emitted + self._source_missing()
        except TransientReadFailure as e:
            return emitted + self._read_failed(e)

        # Removed while the read was in flight
        if not self.active:
            return emitted

        for record in self._line_filter.apply(chunk.lines):
            emitted += self._emit(record)

        # Advance even when every line was filtered out
        if chunk.new_offset > offset:
            self.cursors.advance(self.subscription_id, chunk.new_offset, chunk.size)
        return emitted

    def _source_missing(self) -> int:
        if self.state is not TailState.SOURCE_MISSING:
            logger.warning(f"Log file {self.file_path} is missing, waiting for it to reappear")
            self.state = TailState.SOURCE_MISSING
        return self._emit(LogRecord.system(MISSING_NOTICE))

    def _read_failed(self, error: Exception) -> int:
        logger.error(f"Error reading {self.file_path} for {self.subscription_id}: {error}")
        return self._emit(LogRecord.system(READ_ERROR_NOTICE.format(error=error)))

    # ============================================================================
    # Delivery
    # ============================================================================

    def _emit(self, unit: StreamUnit) -> int:
        """Queue a unit if the subscription is still registered."""
        if not self.active:
            return 0
        self._enqueue(unit)
        return 1

    def _enqueue(self, unit: StreamUnit) -> None:
        queue = self.subscription.queue
        try:
            queue.put_nowait(unit)
        except asyncio.QueueFull:
            # Drop oldest, keep newest
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            queue.put_nowait(unit)
            logger.debug(f"Queue full for {self.subscription_id}, dropped oldest unit")
