"""Service configuration for the server dashboard.

Defaults come from ``config/dashboard.yaml``; environment variables
override them.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from .tailing.config import TailConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "dashboard.yaml"


@lru_cache(maxsize=4)
def _load_yaml_defaults(config_path: Path) -> dict:
    """Load default settings from a YAML file.

    Returns:
        Settings dict, empty if the file does not exist

    Raises:
        ValueError: If YAML parsing fails or the document is not a mapping
    """
    if not config_path.exists():
        logger.debug(f"No dashboard configuration file at {config_path}, using built-in defaults")
        return {}

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse dashboard configuration YAML: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Dashboard configuration must be a mapping: {config_path}")

    logger.debug(f"Loaded dashboard configuration from {config_path}")
    return data


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _number(env: Mapping[str, str], name: str, default: Any, kind: type) -> Any:
    raw = env.get(name)
    if raw is None or raw == "":
        return kind(default)
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


@dataclass
class DashboardConfig:
    """Configuration for the dashboard service.

    Attributes:
        log_file_path: Game server log file to stream (default: latest.log).
        authorized_emails: Identities allowed to use the dashboard.
        identity_header: Header carrying the signed-in identity.
        host: Bind address for the HTTP server.
        port: Bind port for the HTTP server.
        log_level: Level for the dashboard's own logs.
        log_dir: Directory for the dashboard's own logs.
        restart_container: Container restarted by the restart button.
        container_runtime: Runtime CLI used to restart the container.
        restart_timeout_seconds: Seconds to wait for the restart command.
        tail: Tail engine tunables.
    """

    log_file_path: str = "latest.log"
    authorized_emails: list[str] = field(default_factory=list)
    identity_header: str = "X-Forwarded-Email"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_dir: str = "/tmp/mcdash_logs"
    restart_container: str = "paper-mc"
    container_runtime: str = "docker"
    restart_timeout_seconds: float = 60.0
    tail: TailConfig = field(default_factory=TailConfig)

    @classmethod
    def load(
        cls,
        environ: Mapping[str, str] | None = None,
        config_path: str | Path | None = None,
    ) -> "DashboardConfig":
        """Build configuration from YAML defaults and environment overrides.

        Args:
            environ: Environment mapping (default: os.environ)
            config_path: YAML defaults file (default: config/dashboard.yaml)

        Returns:
            Populated DashboardConfig

        Raises:
            ValueError: If the YAML file is invalid or a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        defaults = _load_yaml_defaults(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)

        server = defaults.get("server", {})
        logging_section = defaults.get("logging", {})
        restart = defaults.get("restart", {})
        tail = defaults.get("tail", {})
        base = cls()
        base_tail = base.tail

        emails = env.get("AUTHORIZED_EMAILS")
        authorized = (
            _split_csv(emails) if emails is not None else list(defaults.get("authorized_emails", []))
        )

        tail_config = TailConfig(
            poll_interval_seconds=_number(
                env,
                "TAIL_POLL_INTERVAL",
                tail.get("poll_interval_seconds", base_tail.poll_interval_seconds),
                float,
            ),
            keepalive_interval_seconds=_number(
                env,
                "TAIL_KEEPALIVE_INTERVAL",
                tail.get("keepalive_interval_seconds", base_tail.keepalive_interval_seconds),
                float,
            ),
            initial_window_bytes=_number(
                env,
                "TAIL_INITIAL_WINDOW",
                tail.get("initial_window_bytes", base_tail.initial_window_bytes),
                int,
            ),
            max_queue_size=_number(
                env, "TAIL_QUEUE_SIZE", tail.get("max_queue_size", base_tail.max_queue_size), int
            ),
        )

        return cls(
            log_file_path=env.get("LOG_FILE_PATH") or defaults.get("log_file_path", base.log_file_path),
            authorized_emails=authorized,
            identity_header=env.get("IDENTITY_HEADER")
            or defaults.get("identity_header", base.identity_header),
            host=env.get("DASHBOARD_HOST") or server.get("host", base.host),
            port=_number(env, "DASHBOARD_PORT", server.get("port", base.port), int),
            log_level=(env.get("LOG_LEVEL") or logging_section.get("level", base.log_level)).upper(),
            log_dir=env.get("DASHBOARD_LOG_DIR") or logging_section.get("dir", base.log_dir),
            restart_container=env.get("RESTART_CONTAINER")
            or restart.get("container", base.restart_container),
            container_runtime=env.get("CONTAINER_RUNTIME")
            or restart.get("runtime", base.container_runtime),
            restart_timeout_seconds=float(
                restart.get("timeout_seconds", base.restart_timeout_seconds)
            ),
            tail=tail_config,
        )
