"""Game server dashboard: live log streaming and server control."""

from .auth import AuthorizationGate
from .client import LogStreamClient, SSEParser
from .config import DashboardConfig
from .logging_manager import LoggingManager
from .restart import RestartExecutor, RestartResult
from .server import DashboardServer

__version__ = "1.0.0"

__all__ = [
    "AuthorizationGate",
    "DashboardConfig",
    "DashboardServer",
    "LogStreamClient",
    "LoggingManager",
    "RestartExecutor",
    "RestartResult",
    "SSEParser",
]
