"""Spool health monitor - detects a stalled print queue and recovers it."""

import logging
import os
import platform
import subprocess
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from printbridge.commands import (
    CommandExecutor,
    CommandFailure,
    CommandResult,
    RecoveryCommands,
    SubprocessExecutor,
    run_checked,
)
from printbridge.printing import cups_printer
from printbridge.settings import DEFAULT_AUTO_CLEAN_TIMEOUT_MINUTES, SettingsProvider

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 60.0


class MonitorState(str, Enum):
    """Spool monitor state."""

    IDLE = "idle"
    SCANNING = "scanning"
    CLEAN = "clean"
    NEEDS_CLEANUP = "needs_cleanup"
    CLEANING_UP = "cleaning_up"


@dataclass(frozen=True)
class SpoolEntry:
    """A file seen in the spool directory."""

    file_name: str
    created_at: datetime


SpoolScanner = Callable[[Path], Iterable[SpoolEntry]]


def _created_at(stat: os.stat_result) -> datetime:
    # Reason: st_birthtime is the real creation time where the OS has one
    return datetime.fromtimestamp(getattr(stat, "st_birthtime", None) or stat.st_ctime)


def iter_spool_entries(spool_dir: Path) -> Iterator[SpoolEntry]:
    """Lazily list the files in the spool directory.

    Used where every file in the directory belongs to a pending job, as in
    the Windows PRINTERS directory. Files removed while the directory is
    being read are skipped.

    Args:
        spool_dir: OS spool directory.

    Yields:
        SpoolEntry: One entry per regular file, in directory order.

    Raises:
        OSError: If the directory cannot be read.
    """
    with os.scandir(spool_dir) as entries:
        for entry in entries:
            try:
                if not entry.is_file():
                    continue
                stat = entry.stat()
            except FileNotFoundError:
                continue
            yield SpoolEntry(file_name=entry.name, created_at=_created_at(stat))


def _connect_pycups():
    if not cups_printer.CUPS_AVAILABLE:
        return None
    try:
        return cups_printer.cups.Connection()
    except RuntimeError as e:
        raise ConnectionError(f"CUPS server unreachable: {e}") from e


def pending_job_ids() -> list[int]:
    """Get the ids of the jobs CUPS has not completed, from ``lpstat -o``.

    Raises:
        OSError: If lpstat is missing, times out or fails.
    """
    try:
        result = subprocess.run(["lpstat", "-o"], capture_output=True, text=True, timeout=10)
    except subprocess.TimeoutExpired as e:
        raise TimeoutError("lpstat -o timed out") from e
    if result.returncode != 0:
        raise ConnectionError(f"lpstat -o failed: {result.stderr.strip()}")

    ids = []
    for line in result.stdout.splitlines():
        fields = line.split()
        if not fields:
            continue
        # Job names look like "<destination>-<id>"
        _, _, job_id = fields[0].rpartition("-")
        if job_id.isdigit():
            ids.append(int(job_id))
    return ids


class CupsJobScanner:
    """Lists the jobs CUPS still has to print as spool entries.

    The CUPS spool directory also holds the control files of completed
    jobs, kept for the job history, so its contents alone do not show a
    stuck queue. Only jobs the scheduler reports as not completed are
    listed: through pycups when it is installed, otherwise through
    ``lpstat -o`` with each job dated by its data files (``d<id>-<n>``).
    """

    def __init__(self, connect: Callable[[], object] = _connect_pycups):
        """Initialize the scanner.

        Args:
            connect: Returns a pycups connection, or None to use lpstat.
        """
        self._connect = connect

    def __call__(self, spool_dir: Path) -> Iterator[SpoolEntry]:
        connection = self._connect()
        if connection is not None:
            yield from self._from_pycups(connection)
        else:
            yield from self._from_lpstat(spool_dir)

    def _from_pycups(self, connection) -> Iterator[SpoolEntry]:
        try:
            jobs = connection.getJobs(
                which_jobs="not-completed", requested_attributes=["job-id", "time-at-creation"]
            )
        except Exception as e:
            raise ConnectionError(f"Could not list CUPS jobs: {e}") from e

        for job_id, attrs in jobs.items():
            created = attrs.get("time-at-creation")
            if created:
                yield SpoolEntry(file_name=f"job {job_id}", created_at=datetime.fromtimestamp(created))

    def _from_lpstat(self, spool_dir: Path) -> Iterator[SpoolEntry]:
        for job_id in pending_job_ids():
            for path in sorted(spool_dir.glob(f"d{job_id:05d}-*")):
                try:
                    stat = path.stat()
                except FileNotFoundError:
                    continue
                yield SpoolEntry(file_name=path.name, created_at=_created_at(stat))


def spool_scanner_for_platform() -> SpoolScanner:
    """Get the spool scanner for this host: the PRINTERS directory on Windows, CUPS jobs elsewhere."""
    if platform.system() == "Windows":
        return iter_spool_entries
    return CupsJobScanner()


def effective_timeout(minutes: int) -> int:
    """Replace a non-positive timeout with the safe default."""
    if minutes <= 0:
        return DEFAULT_AUTO_CLEAN_TIMEOUT_MINUTES
    return minutes


def find_stale_entry(entries: Iterable[SpoolEntry], cutoff: datetime) -> SpoolEntry | None:
    """Get the first entry created before the cutoff, without reading further."""
    for entry in entries:
        if entry.created_at < cutoff:
            return entry
    return None


class SpoolMonitor:
    """Background loop that clears the print spool when jobs get stuck.

    Each tick reads the runtime settings, looks for a spool file older than
    the configured timeout and, if one is found, stops the spooling service,
    deletes the spool files and starts the service again.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        spool_dir: Path,
        executor: CommandExecutor | None = None,
        commands: RecoveryCommands | None = None,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
        scanner: SpoolScanner | None = None,
    ):
        """Initialize the monitor.

        Args:
            settings_provider: Source of the auto-clean settings.
            spool_dir: OS spool directory to watch.
            executor: Runs the recovery commands.
            commands: Recovery commands (default: for this platform).
            interval_seconds: Seconds between ticks.
            clock: Returns the current local time.
            scanner: Lists the pending spool entries (default: for this platform).
        """
        self.settings_provider = settings_provider
        self.spool_dir = spool_dir
        self.executor = executor or SubprocessExecutor()
        self.commands = commands or RecoveryCommands.for_platform(spool_dir)
        self.interval_seconds = interval_seconds
        self._clock = clock
        self.scanner = scanner or spool_scanner_for_platform()

        self.state = MonitorState.IDLE
        self.last_check: datetime | None = None
        self.last_cleanup: datetime | None = None
        self.last_error: str | None = None

        self._cleanup_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def scan(self) -> MonitorState:
        """Check the spool for stuck files.

        Returns:
            MonitorState: NEEDS_CLEANUP if a stale file was found, CLEAN if
            none was, IDLE if auto-clean is off or the spool is unreadable.
        """
        self.state = MonitorState.SCANNING
        settings = self.settings_provider.get_settings()

        if not settings.auto_clean_enabled:
            self.state = MonitorState.IDLE
            return self.state

        timeout = effective_timeout(settings.auto_clean_timeout_minutes)
        now = self._clock()
        cutoff = now - timedelta(minutes=timeout)

        try:
            stale = find_stale_entry(self.scanner(self.spool_dir), cutoff)
        except OSError as e:
            logger.debug(f"Spool {self.spool_dir} not accessible: {e}")
            self.state = MonitorState.IDLE
            return self.state

        self.last_check = now
        if stale is None:
            self.state = MonitorState.CLEAN
        else:
            logger.warning(
                f"Found stuck file {stale.file_name} created at {stale.created_at}. Triggering cleanup."
            )
            self.state = MonitorState.NEEDS_CLEANUP
        return self.state

    def clean_spool(self) -> list[CommandResult]:
        """Run the recovery sequence now.

        Stops at the first command that fails. The sequence is not
        transactional: a failure after the service was stopped leaves it
        stopped until a later cleanup or a manual start.

        Returns:
            list[CommandResult]: Results of the three steps.

        Raises:
            CommandFailure: If a step exits with a non-zero status.
        """
        with self._cleanup_lock:
            self.state = MonitorState.CLEANING_UP
            logger.info("Performing forced spooler cleanup...")
            results = []
            try:
                for command in self.commands.cleanup_sequence:
                    results.append(run_checked(self.executor, command))
            except CommandFailure as e:
                self.last_error = str(e)
                logger.error(
                    f"Spooler cleanup failed at step {len(results) + 1}: "
                    f"{e.result.command}: {e.result.stderr}"
                )
                if results:
                    logger.warning("Spooling service may have been left stopped")
                raise
            finally:
                self.state = MonitorState.IDLE

            self.last_cleanup = self._clock()
            self.last_error = None
            logger.info("Spooler cleanup completed successfully.")
            return results

    def run_once(self) -> MonitorState:
        """Run a single monitoring cycle. Never raises.

        Returns:
            MonitorState: Outcome of the scan.
        """
        outcome = MonitorState.IDLE
        try:
            outcome = self.scan()
            if outcome is MonitorState.NEEDS_CLEANUP:
                self.clean_spool()
        except CommandFailure:
            logger.info("Cleanup will be retried on the next cycle")
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Error in spool monitor cycle: {e}")
        finally:
            self.state = MonitorState.IDLE
        return outcome

    def run(self) -> None:
        """Run cycles until stop() is called.

        The stop request is seen at the next sleep; a running cleanup is
        allowed to finish.
        """
        logger.info(
            f"Spool monitor starting (dir: {self.spool_dir}, every {self.interval_seconds}s)"
        )
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval_seconds)
        logger.info("Spool monitor stopped")

    def start(self) -> None:
        """Start the monitor in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="spool-monitor")
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Ask the background thread to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def status(self) -> dict:
        """Get a summary of the monitor for display.

        Returns:
            dict: State, timestamps and last error.
        """
        return {
            "state": self.state.value,
            "running": self.is_running,
            "spool_dir": str(self.spool_dir),
            "interval_seconds": self.interval_seconds,
            "last_check": self.last_check,
            "last_cleanup": self.last_cleanup,
            "last_error": self.last_error,
        }
