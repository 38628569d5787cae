"""Exceptions raised by the log tail streaming engine."""


class TailError(Exception):
    """Base class for tail engine errors."""


class SourceUnavailable(TailError):
    """The log file does not exist at the moment it was looked up."""

    def __init__(self, path: str):
        super().__init__(f"Log file not found: {path}")
        self.path = path


class TransientReadFailure(TailError):
    """An I/O error occurred while reading a single chunk."""


class SetupFailure(TailError):
    """A subscription could not be started. It is never registered."""


class InvalidLevelFilter(TailError, ValueError):
    """The requested level filter is not one of INFO, WARN, ERROR, ALL."""
