"""Consumer client for the live log stream.

Connects to ``/api/server/logs`` with httpx, parses server-sent event
frames, and keeps a bounded buffer of the most recent records.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx

from .tailing.codec import decode_payload
from .tailing.models import LogRecord, Severity

logger = logging.getLogger(__name__)

LOGS_PATH = "/api/server/logs"


class SSEParser:
    """Incremental parser for ``text/event-stream`` lines.

    Feed it one line at a time (without the trailing newline). A blank line
    completes the current event and returns its data. Comment lines, such
    as ``: keep-alive``, never produce an event.
    """

    def __init__(self):
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        line = line.rstrip("\r")
        if line == "":
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        # Other fields (event, id, retry) carry nothing for this stream
        return None


class LogStreamClient:
    """Reads the dashboard's log stream.

    Attributes:
        base_url: Dashboard base URL.
        level: Requested level filter.
        records: Most recent classified records, oldest first.
        last_notice: Text of the latest SYSTEM notice, if any.
    """

    def __init__(
        self,
        base_url: str,
        level: str = "INFO",
        headers: dict[str, str] | None = None,
        max_records: int = 1000,
        reconnect_delay: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Dashboard base URL, e.g. ``http://localhost:3000``.
            level: Level filter sent as the ``level`` query parameter.
            headers: Extra request headers (such as the identity header).
            max_records: Size of the record buffer.
            reconnect_delay: Seconds to wait before reconnecting.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url
        self.level = level
        self.headers = headers or {}
        self.reconnect_delay = reconnect_delay
        self.transport = transport

        self.records: deque[LogRecord] = deque(maxlen=max_records)
        self.last_notice: str | None = None

    def ingest(self, record: LogRecord) -> bool:
        """Add a record to the buffer.

        SYSTEM notices are tracked separately and never buffered.

        Returns:
            True if the record was new, False if it was a duplicate.
        """
        if record.severity == Severity.SYSTEM:
            self.last_notice = record.text
            return True
        if record in self.records:
            return False
        self.records.append(record)
        return True

    async def stream(self) -> AsyncIterator[LogRecord]:
        """Open one connection and yield decoded records until it ends.

        Raises:
            httpx.HTTPStatusError: If the dashboard rejects the request.
            httpx.TransportError: If the connection fails.
        """
        parser = SSEParser()
        async with httpx.AsyncClient(
            base_url=self.base_url, headers=self.headers, transport=self.transport, timeout=None
        ) as client:
            async with client.stream("GET", LOGS_PATH, params={"level": self.level}) as response:
                response.raise_for_status()
                logger.info(f"Connected to log stream at {self.base_url} (level={self.level})")
                async for line in response.aiter_lines():
                    payload = parser.feed(line)
                    if payload is None or payload.strip() == "":
                        continue
                    yield decode_payload(payload)

    async def run(
        self,
        on_record: Callable[[LogRecord], Awaitable[None] | None] | None = None,
        max_attempts: int | None = None,
    ) -> None:
        """Stream records, reconnecting after failures.

        Args:
            on_record: Called for every new (non-duplicate) record.
            max_attempts: Stop after this many connections (None: forever).
        """
        attempts = 0
        while max_attempts is None or attempts < max_attempts:
            attempts += 1
            try:
                async for record in self.stream():
                    if not self.ingest(record) or on_record is None:
                        continue
                    result = on_record(record)
                    if asyncio.iscoroutine(result):
                        await result
                logger.info("Log stream ended")
            except httpx.HTTPStatusError as e:
                logger.error(f"Log stream rejected: HTTP {e.response.status_code}")
            except httpx.TransportError as e:
                logger.error(f"Connection to log stream failed: {e}")

            if max_attempts is not None and attempts >= max_attempts:
                break
            logger.info(f"Reconnecting in {self.reconnect_delay}s")
            await asyncio.sleep(self.reconnect_delay)
