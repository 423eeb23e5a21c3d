"""External command execution for spool recovery and host control."""

import logging
import platform
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from printbridge.printing.base import PrintBridgeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    command: str
    exit_code: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandFailure(PrintBridgeError):
    """An external command exited with a non-zero status."""

    def __init__(self, result: CommandResult):
        self.result = result
        super().__init__(
            f"Command failed ({result.exit_code}): {result.command}. Error: {result.stderr or 'none'}"
        )


class CommandExecutor(Protocol):
    """Runs one command and reports how it exited. Never raises for a failed command."""

    def run(self, command: Sequence[str]) -> CommandResult: ...


class SubprocessExecutor:
    """Runs commands with subprocess, blocking until they exit."""

    def run(self, command: Sequence[str]) -> CommandResult:
        display = shlex.join(command)
        logger.debug(f"Running: {display}")
        try:
            proc = subprocess.run(list(command), capture_output=True, text=True)
        except OSError as e:
            return CommandResult(command=display, exit_code=-1, stderr=str(e))
        return CommandResult(command=display, exit_code=proc.returncode, stderr=proc.stderr.strip())


def run_checked(executor: CommandExecutor, command: Sequence[str]) -> CommandResult:
    """Run a command and raise if it did not exit with status 0.

    Raises:
        CommandFailure: If the exit status is non-zero.
    """
    result = executor.run(command)
    if not result.ok:
        raise CommandFailure(result)
    return result


def _powershell(script: str) -> list[str]:
    return ["powershell.exe", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script]


@dataclass(frozen=True)
class RecoveryCommands:
    """Commands making up the spool recovery sequence, plus host restart."""

    stop_service: list[str]
    clear_spool: list[str]
    start_service: list[str]
    restart_host: list[str]

    @property
    def cleanup_sequence(self) -> list[list[str]]:
        """The recovery steps in the order they must run."""
        return [self.stop_service, self.clear_spool, self.start_service]

    @classmethod
    def windows(cls, spool_dir: Path) -> "RecoveryCommands":
        return cls(
            stop_service=_powershell("Stop-Service -Name Spooler -Force"),
            clear_spool=_powershell(f'Remove-Item "{spool_dir}\\*" -Force -Recurse'),
            start_service=_powershell("Start-Service Spooler"),
            restart_host=["shutdown", "/r", "/t", "0"],
        )

    @classmethod
    def cups(cls, spool_dir: Path) -> "RecoveryCommands":
        return cls(
            stop_service=["systemctl", "stop", "cups"],
            clear_spool=["sh", "-c", f"rm -rf -- {shlex.quote(str(spool_dir))}/*"],
            start_service=["systemctl", "start", "cups"],
            restart_host=["systemctl", "reboot"],
        )

    @classmethod
    def for_platform(cls, spool_dir: Path) -> "RecoveryCommands":
        """Get the recovery commands for the current host."""
        if platform.system() == "Windows":
            return cls.windows(spool_dir)
        return cls.cups(spool_dir)
