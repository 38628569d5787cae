"""Restart command executor for the game server container."""

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RestartResult:
    """Outcome of one restart attempt.

    Attributes:
        success: True if the runtime reported success.
        message: Human-readable outcome.
        returncode: Exit code of the runtime command, None if it never ran.
    """

    success: bool
    message: str
    returncode: int | None = None


class RestartExecutor:
    """Restarts the game server by shelling out to the container runtime."""

    def __init__(
        self, container_name: str = "paper-mc", runtime: str = "docker", timeout: float = 60.0
    ):
        self.container_name = container_name
        self.runtime = runtime
        self.timeout = timeout

    def command(self) -> list[str]:
        return [self.runtime, "restart", self.container_name]

    async def restart(self) -> RestartResult:
        """Run ``<runtime> restart <container>`` and report the outcome."""
        cmd = self.command()
        logger.info(f"Restarting container {self.container_name}: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error(f"Container runtime not found: {self.runtime}")
            return RestartResult(False, f"Container runtime not found: {self.runtime}")
        except OSError as e:
            logger.error(f"Failed to launch restart command: {e}")
            return RestartResult(False, str(e))

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"Restart of {self.container_name} timed out after {self.timeout}s")
            return RestartResult(False, f"Timed out after {self.timeout}s")

        if process.returncode != 0:
            error = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            logger.error(f"Restart of {self.container_name} failed: {error}")
            return RestartResult(False, error, process.returncode)

        logger.info(f"Container {self.container_name} restarted")
        return RestartResult(True, "Server restart triggered", process.returncode)
