"""Game server dashboard HTTP application."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, Query  # type: ignore[import-untyped]
from fastapi.responses import PlainTextResponse, StreamingResponse  # type: ignore[import-untyped]
from starlette.types import Receive, Scope, Send

from .auth import AuthorizationGate
from .config import DashboardConfig
from .logging_manager import LoggingManager
from .restart import RestartExecutor
from .tailing import (
    InvalidLevelFilter,
    LogStream,
    LogStreamEndpoint,
    SourceUnavailable,
    TailError,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Content-Encoding": "identity",
}


class LogStreamResponse(StreamingResponse):
    """Streams a log subscription and closes it however the response ends.

    The body generator never starts if the client disconnects before the
    first frame, so the subscription is closed when ``__call__`` returns.
    """

    def __init__(self, stream: LogStream, on_close: Callable[[LogStream], None] | None = None):
        super().__init__(stream.frames(), headers=SSE_HEADERS)
        self.stream = stream
        self._on_close = on_close
        self._closed = False

    def close(self) -> None:
        """Close the subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.stream.close()
        if self._on_close is not None:
            self._on_close(self.stream)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.close()


class DashboardServer:
    """HTTP server for the game server dashboard."""

    def __init__(self, config: DashboardConfig):
        """Initialize the dashboard server.

        Args:
            config: Configuration for the dashboard
        """
        self.config = config

        self.logging_manager = LoggingManager(log_dir=config.log_dir, log_level=config.log_level)

        self.endpoint = LogStreamEndpoint(config.log_file_path, config=config.tail)
        self.gate = AuthorizationGate(config.authorized_emails, config.identity_header)
        self.restart_executor = RestartExecutor(
            container_name=config.restart_container,
            runtime=config.container_runtime,
            timeout=config.restart_timeout_seconds,
        )

        self.server_start_time = datetime.now().isoformat()

        self.app = FastAPI(
            title="Game Server Dashboard",
            description="Live log streaming and server control",
            version=VERSION,
            lifespan=self._lifespan,
        )
        self._setup_routes()

        if not config.authorized_emails:
            logger.warning("AUTHORIZED_EMAILS is empty; every request will be forbidden")
        logger.info(f"Dashboard server initialized for {config.log_file_path}")

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        closed = self.endpoint.shutdown()
        logger.info(f"Dashboard shutting down, closed {closed} log streams")

    def _setup_routes(self):
        """Setup FastAPI routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint with server info."""
            return {
                "name": "Game Server Dashboard",
                "version": VERSION,
                "log_file": str(self.endpoint.file_path),
                "active_streams": self.endpoint.active_count,
                "server_time": datetime.now().isoformat(),
            }

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "version": VERSION,
                "started_at": self.server_start_time,
                "log_file_exists": self.endpoint.file_path.exists(),
                "active_streams": self.endpoint.active_count,
            }

        @self.app.get("/api/server/logs")
        async def stream_logs(
            level: str | None = Query(None),
            identity: str = Depends(self.gate),
        ):
            """Open a live, filtered log stream as server-sent events."""
            try:
                stream = await self.endpoint.open(level=level, identity=identity)
            except InvalidLevelFilter as e:
                return PlainTextResponse(str(e), status_code=400)
            except SourceUnavailable as e:
                return PlainTextResponse(str(e), status_code=404)
            except TailError as e:
                logger.error(f"Failed to open log stream for {identity}: {e}")
                return PlainTextResponse(f"Error streaming logs: {e}", status_code=500)

            self.logging_manager.log_audit_event(
                "stream_opened",
                identity=identity,
                details={"subscription_id": stream.id, "level": stream.subscription.level_filter.value},
            )
            return LogStreamResponse(stream, on_close=self._stream_closed)

        @self.app.post("/api/server/restart")
        async def restart_server(identity: str = Depends(self.gate)):
            """Restart the game server container."""
            result = await self.restart_executor.restart()
            self.logging_manager.log_audit_event(
                "server_restart",
                identity=identity,
                details={
                    "container": self.config.restart_container,
                    "success": result.success,
                    "message": result.message,
                },
            )
            if not result.success:
                return PlainTextResponse(
                    f"Failed to restart server: {result.message}", status_code=500
                )
            return PlainTextResponse("Server restart triggered")

    def _stream_closed(self, stream: LogStream):
        self.logging_manager.log_audit_event(
            "stream_closed",
            identity=stream.subscription.identity,
            details={"subscription_id": stream.id},
        )

    async def start_server(self):
        """Start the dashboard server."""
        import uvicorn  # type: ignore[import-untyped]

        logger.info(f"Starting dashboard server on {self.config.host}:{self.config.port}")

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()


async def main():
    """Main entry point for the server."""
    config = DashboardConfig.load()

    server = DashboardServer(config)
    await server.start_server()


if __name__ == "__main__":
    asyncio.run(main())
