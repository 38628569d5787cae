"""Streaming endpoint for live, filtered log subscriptions.

The endpoint is the boundary between the transport and the tail engine: it
validates the requested filter, creates and registers a subscription,
starts its tail loop, and hands the transport a ``LogStream`` that yields
units in emission order and tears the subscription down when closed.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import AsyncIterator
from pathlib import Path

from .chunk_reader import ChunkReader
from .codec import encode_unit
from .config import TailConfig
from .cursor_store import CursorStore
from .errors import SetupFailure, SourceUnavailable
from .models import LevelFilter, StreamUnit, Subscription
from .registry import SubscriptionRegistry
from .tail_loop import TailLoop

logger = logging.getLogger(__name__)


class LogStream:
    """Handle returned to the transport for one open subscription.

    Iterating yields units as the tail loop produces them. Iteration ends
    once the subscription has been unregistered and its queue is drained.
    """

    def __init__(self, subscription: Subscription, tail_loop: TailLoop, endpoint: LogStreamEndpoint):
        self.subscription = subscription
        self.tail_loop = tail_loop
        self._endpoint = endpoint

    @property
    def id(self) -> str:
        return self.subscription.id

    @property
    def active(self) -> bool:
        return self.tail_loop.active

    def __aiter__(self) -> LogStream:
        return self

    async def __anext__(self) -> StreamUnit:
        queue = self.subscription.queue
        # Wake up periodically so an unregistered subscription is noticed
        wait = self.tail_loop.config.poll_interval_seconds
        while True:
            if not queue.empty():
                return queue.get_nowait()
            if not self.active:
                raise StopAsyncIteration
            try:
                return await asyncio.wait_for(queue.get(), timeout=wait)
            except TimeoutError:
                continue

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield wire-encoded frames, closing the subscription on exit.

        Cancellation by the transport (client disconnect) unregisters the
        subscription before the generator returns.
        """
        try:
            async for unit in self:
                yield encode_unit(unit)
        finally:
            self.close()

    def close(self) -> None:
        """Close the subscription. Idempotent."""
        self._endpoint.close(self.id)

    async def __aenter__(self) -> LogStream:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class LogStreamEndpoint:
    """Opens and closes log subscriptions against one log file.

    Attributes:
        file_path: Log file served by this endpoint.
        registry: Registry of active subscriptions.
        cursors: Store of per-subscription offsets.
        config: Engine tunables applied to every tail loop.
    """

    def __init__(
        self,
        file_path: str | Path,
        registry: SubscriptionRegistry | None = None,
        cursors: CursorStore | None = None,
        reader: ChunkReader | None = None,
        config: TailConfig | None = None,
    ):
        """Initialize streaming endpoint.

        Args:
            file_path: Log file to serve.
            registry: Subscription registry (default: a new registry).
            cursors: Cursor store (default: a new store).
            reader: Chunk reader shared by all loops (default: ChunkReader()).
            config: Engine tunables (default: TailConfig()).
        """
        self.file_path = Path(file_path)
        self.registry = registry or SubscriptionRegistry()
        self.cursors = cursors or CursorStore()
        self.reader = reader or ChunkReader()
        self.config = config or TailConfig()

        self._loops: dict[str, TailLoop] = {}
        self._counter = itertools.count(1)

    @property
    def active_count(self) -> int:
        return len(self.registry)

    def new_subscription_id(self, identity: str, level_filter: LevelFilter) -> str:
        """Build an id unique per open connection."""
        return f"{identity}-{level_filter.value}-{time.time_ns()}-{next(self._counter)}"

    async def open(self, level: str | None = None, identity: str = "anonymous") -> LogStream:
        """Open a new subscription.

        Args:
            level: Requested filter. Absent means INFO.
            identity: Authenticated identity opening the stream.

        Returns:
            LogStream for the transport to relay.

        Raises:
            InvalidLevelFilter: If ``level`` is not recognized.
            SourceUnavailable: If the log file does not exist.
            SetupFailure: On any other failure before the first tick.
        """
        level_filter = LevelFilter.parse(level)

        if not self.file_path.exists():
            logger.error(f"Log file not found: {self.file_path}")
            raise SourceUnavailable(str(self.file_path))

        subscription = Subscription(
            id=self.new_subscription_id(identity, level_filter),
            level_filter=level_filter,
            identity=identity,
            queue=asyncio.Queue(maxsize=self.config.max_queue_size),
        )
        tail_loop = TailLoop(
            subscription,
            self.file_path,
            registry=self.registry,
            cursors=self.cursors,
            reader=self.reader,
            config=self.config,
        )

        try:
            await tail_loop.start()
        except SetupFailure:
            raise
        except Exception as e:
            tail_loop.stop()
            raise SetupFailure(f"Error starting log stream: {e}") from e

        self._loops[subscription.id] = tail_loop
        logger.info(f"Client connected: {subscription.id}")
        return LogStream(subscription, tail_loop, self)

    def close(self, subscription_id: str) -> bool:
        """Close a subscription, stopping its timers immediately.

        Returns:
            True if the subscription was open.
        """
        tail_loop = self._loops.pop(subscription_id, None)
        if tail_loop is None:
            return self.registry.unregister(subscription_id)
        removed = tail_loop.stop()
        if removed:
            logger.info(f"Client disconnected: {subscription_id}")
        return removed

    def shutdown(self) -> int:
        """Close every subscription. Used on process shutdown.

        Returns:
            Number of subscriptions that were open.
        """
        closed = 0
        for subscription_id in list(self._loops):
            if self.close(subscription_id):
                closed += 1
        closed += self.registry.unregister_all()
        if closed:
            logger.info(f"Closed {closed} log streams on shutdown")
        return closed
