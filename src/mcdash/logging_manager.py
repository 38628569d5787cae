"""Structured logging manager for the server dashboard.

Provides console and JSON-lines file logging for the ``mcdash`` namespace
and an audit trail of stream and restart events.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "taskName",
    ]
)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    extras = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS:
            continue
        try:
            json.dumps(value)  # Ensure serializable
            extras[key] = value
        except (TypeError, ValueError):
            extras[key] = str(value)
    return extras


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line, including any ``extra`` fields."""

    def format(self, record):
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_obj.update(_extra_fields(record))
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj)


class AuditLineFormatter(logging.Formatter):
    """JSONL audit entries: timestamp, level, event, logger, plus extras."""

    def format(self, record):
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "event": record.getMessage(),
            "logger": record.name,
        }
        log_obj.update(_extra_fields(record))
        return json.dumps(log_obj)


class LoggingManager:
    """Manages structured logging for the dashboard."""

    def __init__(self, log_dir: str | Path = "/tmp/mcdash_logs", log_level: str = "INFO"):
        """Initialize logging manager.

        Args:
            log_dir: Base directory for all logs
            log_level: Console log level
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper())

        # Create directory structure
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.audit_dir = self.log_dir / "audit"
        self.audit_dir.mkdir(exist_ok=True)

        self._setup_dashboard_logger()
        self._setup_audit_logger()

        # Loggers created at import time (mcdash.*) must defer to the parent's handlers
        for name in list(logging.Logger.manager.loggerDict.keys()):
            if name.startswith("mcdash.") and name != "mcdash.audit":
                child_logger = logging.getLogger(name)
                if isinstance(child_logger, logging.Logger):  # Skip PlaceHolders
                    child_logger.setLevel(logging.NOTSET)
                    child_logger.propagate = True
                    child_logger.handlers.clear()

    def _setup_dashboard_logger(self):
        """Setup main dashboard logger with file and console handlers."""
        logger = logging.getLogger("mcdash")
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        # Remove existing handlers
        logger.handlers.clear()

        # Console handler - human readable
        console_handler = logging.StreamHandler()
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(console_handler)

        # File handler - structured JSON
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "dashboard.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)  # Capture everything to file
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

        self.dashboard_logger = logger

    def _setup_audit_logger(self):
        """Setup audit trail logger (JSON Lines format, daily rotation)."""
        logger = logging.getLogger("mcdash.audit")
        logger.setLevel(logging.INFO)
        logger.propagate = False

        logger.handlers.clear()

        audit_file = self.audit_dir / f"audit_{datetime.now().strftime('%Y%m%d')}.jsonl"
        file_handler = logging.handlers.TimedRotatingFileHandler(
            audit_file,
            when="midnight",
            interval=1,
            backupCount=30,  # Keep 30 days
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(AuditLineFormatter())
        logger.addHandler(file_handler)

        self.audit_logger = logger

    def log_audit_event(
        self,
        event_type: str,
        identity: str | None = None,
        details: dict[str, Any] | None = None,
        **kwargs,
    ):
        """Log an audit event.

        Args:
            event_type: Type of event (stream_opened, stream_closed, server_restart)
            identity: Identity that triggered the event
            details: Additional event details
            **kwargs: Additional fields to include
        """
        extra = {
            "event_type": event_type,
            "identity": identity,
            "details": details or {},
        }
        extra.update(kwargs)

        self.audit_logger.info(event_type, extra=extra)

    def get_audit_events(self, limit: int = 100) -> list[dict[str, Any]]:
        """Return the most recent audit events, oldest first.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of audit entries parsed from today's audit file
        """
        audit_file = self.audit_dir / f"audit_{datetime.now().strftime('%Y%m%d')}.jsonl"
        if not audit_file.exists():
            return []

        events = []
        with audit_file.open("r") as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return events[-limit:] if limit else events

    def close(self):
        """Flush and detach all handlers installed by this manager."""
        for logger in (self.dashboard_logger, self.audit_logger):
            for handler in list(logger.handlers):
                handler.flush()
                handler.close()
                logger.removeHandler(handler)
