"""Tests for the spool health monitor."""

import contextlib
import os
import threading
import time
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from printbridge.commands import CommandFailure, CommandResult
from printbridge.settings import RuntimeSettings
from printbridge.spool import (
    CupsJobScanner,
    MonitorState,
    SpoolEntry,
    SpoolMonitor,
    effective_timeout,
    find_stale_entry,
    iter_spool_entries,
)


def _monitor_at(monitor: SpoolMonitor, offset_minutes: float) -> SpoolMonitor:
    """Make the monitor see the clock shifted by the given number of minutes."""
    monitor._clock = lambda: datetime.now() + timedelta(minutes=offset_minutes)
    return monitor


class _GatedExecutor:
    """Executor that holds its first command until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls: list[list[str]] = []

    def run(self, command) -> CommandResult:
        self.calls.append(list(command))
        if len(self.calls) == 1:
            self.entered.set()
            self.release.wait(5)
        return CommandResult(command=" ".join(command), exit_code=0)


class TestStaleness:
    """Tests for stale entry detection."""

    def test_entry_older_than_cutoff_is_stale(self):
        now = datetime(2024, 1, 1, 12, 0)
        cutoff = now - timedelta(minutes=20)
        entries = [
            SpoolEntry("fresh.SPL", now),
            SpoolEntry("stuck.SPL", now - timedelta(minutes=21)),
        ]

        assert find_stale_entry(entries, cutoff).file_name == "stuck.SPL"

    def test_entry_at_cutoff_is_not_stale(self):
        now = datetime(2024, 1, 1, 12, 0)
        cutoff = now - timedelta(minutes=20)

        assert find_stale_entry([SpoolEntry("edge.SPL", cutoff)], cutoff) is None

    def test_stops_at_first_stale_entry(self):
        """Should not read past the first stale entry."""
        cutoff = datetime(2024, 1, 1, 12, 0)
        seen = []

        def entries():
            for name in ("a", "b", "c"):
                seen.append(name)
                yield SpoolEntry(name, cutoff - timedelta(minutes=1))

        assert find_stale_entry(entries(), cutoff).file_name == "a"
        assert seen == ["a"]

    @pytest.mark.parametrize("minutes,expected", [(0, 20), (-5, 20), (1, 1), (45, 45)])
    def test_effective_timeout(self, minutes, expected):
        assert effective_timeout(minutes) == expected

    def test_iter_spool_entries_lists_files_only(self, spool_dir):
        (spool_dir / "00001.SPL").write_bytes(b"job")
        (spool_dir / "00001.SHD").write_bytes(b"shadow")
        (spool_dir / "subdir").mkdir()

        names = sorted(e.file_name for e in iter_spool_entries(spool_dir))

        assert names == ["00001.SHD", "00001.SPL"]

    def test_iter_spool_entries_skips_vanished_files(self, spool_dir, monkeypatch):
        """Should skip a file deleted between listing and stat."""
        (spool_dir / "00002.SPL").write_bytes(b"job")
        with os.scandir(spool_dir) as it:
            real_entries = list(it)

        class _VanishedEntry:
            name = "00001.SPL"

            def is_file(self):
                return True

            def stat(self):
                raise FileNotFoundError(self.name)

        monkeypatch.setattr(
            "printbridge.spool.os.scandir",
            lambda path: contextlib.nullcontext([_VanishedEntry(), *real_entries]),
        )

        assert [e.file_name for e in iter_spool_entries(spool_dir)] == ["00002.SPL"]


class TestCupsJobScanner:
    """Tests for listing pending CUPS jobs."""

    @staticmethod
    def _lpstat(stdout: str, returncode: int = 0):
        return MagicMock(returncode=returncode, stdout=stdout, stderr="lpstat: bad")

    def test_job_history_files_are_ignored(self, spool_dir):
        """Should not report control files left behind by completed jobs."""
        (spool_dir / "c00042").write_bytes(b"history")
        (spool_dir / "tmp").mkdir()
        scanner = CupsJobScanner(connect=lambda: None)

        with patch("printbridge.spool.subprocess.run", return_value=self._lpstat("")):
            assert list(scanner(spool_dir)) == []

    def test_pending_jobs_dated_by_data_files(self, spool_dir):
        (spool_dir / "c00042").write_bytes(b"history")
        (spool_dir / "d00042-001").write_bytes(b"done")
        (spool_dir / "c00043").write_bytes(b"control")
        (spool_dir / "d00043-001").write_bytes(b"data")
        (spool_dir / "d00043-002").write_bytes(b"data")
        stdout = "Office-43               root              1024   Mon 01 Jan 2024 12:00:00\n"
        scanner = CupsJobScanner(connect=lambda: None)

        with patch("printbridge.spool.subprocess.run", return_value=self._lpstat(stdout)) as run:
            names = [e.file_name for e in scanner(spool_dir)]

        assert run.call_args[0][0] == ["lpstat", "-o"]
        assert names == ["d00043-001", "d00043-002"]

    def test_lpstat_failure_is_an_os_error(self, spool_dir):
        scanner = CupsJobScanner(connect=lambda: None)

        with patch("printbridge.spool.subprocess.run", return_value=self._lpstat("", returncode=1)):
            with pytest.raises(OSError, match="lpstat: bad"):
                list(scanner(spool_dir))

    def test_pycups_lists_not_completed_jobs(self, spool_dir):
        created = datetime(2024, 1, 1, 12, 0)
        connection = MagicMock()
        connection.getJobs.return_value = {7: {"job-id": 7, "time-at-creation": created.timestamp()}}
        scanner = CupsJobScanner(connect=lambda: connection)

        entries = list(scanner(spool_dir))

        assert entries == [SpoolEntry("job 7", created)]
        assert connection.getJobs.call_args.kwargs["which_jobs"] == "not-completed"

    def test_pycups_error_is_an_os_error(self, spool_dir):
        connection = MagicMock()
        connection.getJobs.side_effect = RuntimeError("server-error-internal-error")
        scanner = CupsJobScanner(connect=lambda: connection)

        with pytest.raises(OSError, match="Could not list CUPS jobs"):
            list(scanner(spool_dir))


class TestScan:
    """Tests for SpoolMonitor.scan."""

    def test_disabled_does_nothing(self, monitor, spool_dir, fake_executor):
        """Should stay idle when auto-clean is off, even with stuck files."""
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 120)

        assert monitor.scan() is MonitorState.IDLE
        assert monitor.run_once() is MonitorState.IDLE
        assert fake_executor.calls == []

    def test_fresh_files_are_clean(self, monitor, spool_dir, fake_executor, enable_auto_clean):
        (spool_dir / "new.SPL").write_bytes(b"job")
        _monitor_at(monitor, 0)

        assert monitor.run_once() is MonitorState.CLEAN
        assert fake_executor.calls == []
        assert monitor.state is MonitorState.IDLE
        assert monitor.last_check is not None

    def test_empty_spool_is_clean(self, monitor, enable_auto_clean):
        assert monitor.scan() is MonitorState.CLEAN

    def test_file_past_timeout_needs_cleanup(self, monitor, spool_dir, enable_auto_clean):
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 21)

        assert monitor.scan() is MonitorState.NEEDS_CLEANUP

    @pytest.mark.parametrize("offset,expected", [(19, MonitorState.CLEAN), (21, MonitorState.NEEDS_CLEANUP)])
    def test_zero_timeout_uses_default(self, monitor, spool_dir, settings_provider, offset, expected):
        """Should treat a non-positive timeout as 20 minutes."""
        settings_provider.save_settings(
            RuntimeSettings(auto_clean_enabled=True, auto_clean_timeout_minutes=0)
        )
        (spool_dir / "job.SPL").write_bytes(b"job")
        _monitor_at(monitor, offset)

        assert monitor.scan() is expected

    def test_missing_spool_dir_is_skipped(self, monitor, fake_executor, enable_auto_clean):
        """Should skip the tick when the spool directory cannot be read."""
        monitor.spool_dir = monitor.spool_dir / "missing"

        assert monitor.run_once() is MonitorState.IDLE
        assert fake_executor.calls == []

    def test_settings_read_every_tick(self, monitor, spool_dir, settings_provider, fake_executor):
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 30)

        assert monitor.run_once() is MonitorState.IDLE

        settings_provider.update_settings(auto_clean_enabled=True)
        assert monitor.run_once() is MonitorState.NEEDS_CLEANUP
        assert len(fake_executor.calls) == 3

    def test_cups_job_history_does_not_trigger_cleanup(
        self, monitor, spool_dir, fake_executor, enable_auto_clean
    ):
        """Should leave CUPS alone when only completed jobs remain in the spool."""
        (spool_dir / "c00042").write_bytes(b"history")
        (spool_dir / "tmp").mkdir()
        monitor.scanner = CupsJobScanner(connect=lambda: None)
        _monitor_at(monitor, 21)
        no_jobs = MagicMock(returncode=0, stdout="", stderr="")

        with patch("printbridge.spool.subprocess.run", return_value=no_jobs):
            assert monitor.run_once() is MonitorState.CLEAN

        assert fake_executor.calls == []

    def test_stuck_cups_job_triggers_cleanup(self, monitor, spool_dir, fake_executor, enable_auto_clean):
        (spool_dir / "c00042").write_bytes(b"control")
        (spool_dir / "d00042-001").write_bytes(b"data")
        monitor.scanner = CupsJobScanner(connect=lambda: None)
        _monitor_at(monitor, 21)
        pending = MagicMock(returncode=0, stdout="Office-42 root 1024 Mon\n", stderr="")

        with patch("printbridge.spool.subprocess.run", return_value=pending):
            assert monitor.run_once() is MonitorState.NEEDS_CLEANUP

        assert len(fake_executor.calls) == 3


class TestCleanup:
    """Tests for the recovery sequence."""

    def test_runs_steps_in_order(self, monitor, fake_executor):
        results = monitor.clean_spool()

        assert fake_executor.calls == [["stop-spooler"], ["clear-spool"], ["start-spooler"]]
        assert [r.command for r in results] == ["stop-spooler", "clear-spool", "start-spooler"]
        assert monitor.last_cleanup is not None
        assert monitor.state is MonitorState.IDLE

    def test_stuck_file_triggers_cleanup(self, monitor, spool_dir, fake_executor, enable_auto_clean):
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 21)

        assert monitor.run_once() is MonitorState.NEEDS_CLEANUP
        assert fake_executor.calls == [["stop-spooler"], ["clear-spool"], ["start-spooler"]]

    def test_first_step_failure_stops_sequence(self, monitor, fake_executor):
        """Should not clear the spool if the service could not be stopped."""
        fake_executor.exit_codes = [1]

        with pytest.raises(CommandFailure) as exc_info:
            monitor.clean_spool()

        assert fake_executor.calls == [["stop-spooler"]]
        assert exc_info.value.result.stderr == "Access is denied."
        assert "stop-spooler" in monitor.last_error
        assert monitor.state is MonitorState.IDLE

    def test_second_step_failure_leaves_service_stopped(self, monitor, fake_executor, caplog):
        fake_executor.exit_codes = [0, 5]

        with pytest.raises(CommandFailure):
            monitor.clean_spool()

        assert fake_executor.calls == [["stop-spooler"], ["clear-spool"]]
        assert "left stopped" in caplog.text

    def test_run_once_never_raises(self, monitor, spool_dir, fake_executor, enable_auto_clean):
        """Should swallow a failed cleanup so the loop keeps going."""
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 21)
        fake_executor.exit_codes = [1]

        assert monitor.run_once() is MonitorState.NEEDS_CLEANUP
        assert monitor.state is MonitorState.IDLE
        assert monitor.last_error

    def test_run_once_survives_unexpected_errors(self, monitor, settings_provider):
        def broken():
            raise RuntimeError("settings unavailable")

        settings_provider.get_settings = broken

        assert monitor.run_once() is MonitorState.IDLE
        assert "settings unavailable" in monitor.last_error


class TestLoop:
    """Tests for the background loop."""

    def test_start_and_stop(self, monitor, spool_dir, fake_executor, enable_auto_clean):
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 21)

        monitor.start()
        try:
            deadline = time.monotonic() + 5
            while not fake_executor.calls and time.monotonic() < deadline:
                time.sleep(0.01)
            assert monitor.is_running
        finally:
            monitor.stop(timeout=5)

        assert not monitor.is_running
        assert fake_executor.calls[:3] == [["stop-spooler"], ["clear-spool"], ["start-spooler"]]

    def test_start_twice_keeps_one_thread(self, monitor):
        monitor.start()
        try:
            thread = monitor._thread
            monitor.start()
            assert monitor._thread is thread
        finally:
            monitor.stop(timeout=5)

    def test_status(self, monitor, spool_dir):
        status = monitor.status()

        assert status["state"] == "idle"
        assert status["running"] is False
        assert status["spool_dir"] == str(spool_dir)
        assert status["last_error"] is None

    def test_stop_lets_running_cleanup_finish(self, monitor, spool_dir, enable_auto_clean):
        """Should finish the recovery sequence in progress, then exit without another cycle."""
        (spool_dir / "stuck.SPL").write_bytes(b"job")
        _monitor_at(monitor, 21)
        executor = _GatedExecutor()
        monitor.executor = executor

        monitor.start()
        thread = monitor._thread
        assert executor.entered.wait(5)

        stopper = threading.Thread(target=monitor.stop, kwargs={"timeout": 5})
        stopper.start()
        time.sleep(0.05)
        assert stopper.is_alive()
        assert thread.is_alive()

        executor.release.set()
        stopper.join(5)

        assert not stopper.is_alive()
        assert not thread.is_alive()
        assert executor.calls == [["stop-spooler"], ["clear-spool"], ["start-spooler"]]
        assert monitor.last_cleanup is not None
