"""Shared fixtures for tail engine tests."""

from pathlib import Path

import pytest

from mcdash.tailing.config import TailConfig
from mcdash.tailing.cursor_store import CursorStore
from mcdash.tailing.registry import SubscriptionRegistry

INFO_LINE = "[12:00:00] [Server thread/INFO]: Done (3.2s)! For help, type \"help\""
WARN_LINE = "[12:00:01] [Server thread/WARN]: Can't keep up! Is the server overloaded?"
ERROR_LINE = "[12:00:02] [Server thread/ERROR]: Encountered an unexpected exception"
PLAIN_LINE = "    at net.minecraft.server.MinecraftServer.run(MinecraftServer.java:123)"


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    """Create a log file with one line of each severity and one unmarked line."""
    log_file = tmp_path / "latest.log"
    log_file.write_text("\n".join([INFO_LINE, WARN_LINE, ERROR_LINE, PLAIN_LINE]) + "\n")
    return log_file


@pytest.fixture
def empty_log_file(tmp_path: Path) -> Path:
    """Create an empty log file."""
    log_file = tmp_path / "latest.log"
    log_file.write_text("")
    return log_file


@pytest.fixture
def manual_config() -> TailConfig:
    """Config whose timers never fire during a test, so ticks are driven by hand."""
    return TailConfig(poll_interval_seconds=3600, keepalive_interval_seconds=3600)


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


@pytest.fixture
def cursors() -> CursorStore:
    return CursorStore()
