"""Runner for the operating system commands the engine parses."""

import asyncio
import logging
import shutil
import sys
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Default bound for auxiliary commands (arp, route, ip)
DEFAULT_COMMAND_TIMEOUT = 5.0


class CommandError(Exception):
    """An external command could not be run or did not finish in time."""


def current_platform() -> str:
    """Return ``"windows"``, ``"darwin"`` or ``"linux"``."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


@dataclass
class CommandOutput:
    """Captured output of a finished command."""

    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def lines(self) -> list[str]:
        return self.stdout.splitlines()


class CommandRunner:
    """Run external commands asynchronously with a hard timeout."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def available(self, program: str) -> bool:
        """Check if a program is on PATH."""
        return self.enabled and shutil.which(program) is not None

    async def run(self, cmd: list[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> CommandOutput:
        """Run ``cmd`` and capture its output.

        Raises:
            CommandError: execution is disabled, the program is missing, or
                it did not exit within ``timeout`` seconds (it is killed).
        """
        if not self.enabled:
            raise CommandError(f"Command execution disabled: {cmd[0]}")

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise CommandError(f"{cmd[0]} not found in PATH")
        except OSError as e:
            raise CommandError(f"Could not start {cmd[0]}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            raise CommandError(f"{cmd[0]} timed out after {timeout:.1f}s")

        return CommandOutput(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
