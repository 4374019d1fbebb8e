"""Blocking invocation of external binaries (cloudflared, systemctl)."""

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .exceptions import BinaryNotFoundError, ProcessError
from .logging import get_logger

logger = get_logger(__name__)

COMMON_BINARY_DIRS = (
    "/usr/local/bin",
    "/usr/bin",
    "/opt/homebrew/bin",
    "~/.local/bin",
)


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of a finished command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout followed by stderr, as an operator would see it."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandRunner:
    """Runs one external binary synchronously, with no timeout."""

    def __init__(self, binary: str, binary_path: str | None = None):
        """Initialize CommandRunner.

        Args:
            binary: Executable name, e.g. "cloudflared"
            binary_path: Explicit path; searched for if None

        Raises:
            BinaryNotFoundError: If the binary cannot be located
        """
        self.binary = binary
        self.binary_path = binary_path or self.find_binary(binary)
        self._validate_binary()
        logger.debug("CommandRunner initialized", binary_path=self.binary_path)

    @staticmethod
    def find_binary(binary: str) -> str:
        """Find ``binary`` in PATH or common install locations.

        Raises:
            BinaryNotFoundError: If the binary cannot be found
        """
        found = shutil.which(binary)
        if found:
            return found

        for directory in COMMON_BINARY_DIRS:
            candidate = Path(os.path.expanduser(directory)) / binary
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)

        raise BinaryNotFoundError(
            f"'{binary}' binary not found in PATH or common locations"
        )

    def _validate_binary(self) -> None:
        path = Path(self.binary_path)
        if not path.exists():
            raise BinaryNotFoundError(f"Binary not found: {self.binary_path}")
        if not path.is_file():
            raise BinaryNotFoundError(f"Binary path is not a file: {self.binary_path}")
        if not os.access(self.binary_path, os.X_OK):
            raise BinaryNotFoundError(f"Binary is not executable: {self.binary_path}")

    def command(self, *args: str) -> list[str]:
        return [self.binary_path, *args]

    def run(self, *args: str) -> CommandResult:
        """Run the binary to completion and capture its output.

        Raises:
            ProcessError: If the process cannot be started
        """
        cmd = self.command(*args)
        logger.debug("Running command", command=cmd)
        try:
            completed = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            logger.error("Failed to launch command", command=cmd, error=str(e))
            raise ProcessError(f"Failed to run {self.binary}: {e}") from e

        result = CommandResult(
            args=tuple(cmd),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        logger.debug("Command finished", command=cmd, returncode=result.returncode)
        return result

    def stream(self, *args: str) -> int:
        """Run the binary attached to the current terminal until it exits.

        Returns:
            The child's exit code

        Raises:
            ProcessError: If the process cannot be started
        """
        cmd = self.command(*args)
        logger.debug("Streaming command", command=cmd)
        try:
            return subprocess.run(cmd, check=False).returncode
        except OSError as e:
            logger.error("Failed to launch command", command=cmd, error=str(e))
            raise ProcessError(f"Failed to run {self.binary}: {e}") from e
