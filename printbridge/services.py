"""Wiring of the bridge's long-lived services."""

from dataclasses import dataclass

from printbridge.commands import CommandExecutor, RecoveryCommands, SubprocessExecutor
from printbridge.config import BridgeConfig, get_config
from printbridge.dispatcher import PrintDispatcher
from printbridge.printing import get_printer
from printbridge.settings import RuntimeSettings, SettingsProvider
from printbridge.spool import SpoolMonitor, spool_scanner_for_platform
from printbridge.storage import FileStore


@dataclass
class BridgeServices:
    """Everything the HTTP layer and the CLI need, built once per process."""

    config: BridgeConfig
    settings: SettingsProvider
    dispatcher: PrintDispatcher
    monitor: SpoolMonitor
    files: FileStore
    executor: CommandExecutor


def build_services(config: BridgeConfig | None = None) -> BridgeServices:
    """Create the services for this host.

    Args:
        config: Process configuration (default: from the environment).

    Returns:
        BridgeServices: Wired services; the monitor is not started.
    """
    config = config or get_config()
    settings = SettingsProvider(
        config.settings_file,
        defaults=RuntimeSettings(printer_name=config.default_printer_name),
    )
    executor = SubprocessExecutor()
    dispatcher = PrintDispatcher(
        settings,
        printer=get_printer(margin_inches=config.page_margin_inches),
    )
    monitor = SpoolMonitor(
        settings,
        config.spool_dir,
        executor=executor,
        commands=RecoveryCommands.for_platform(config.spool_dir),
        interval_seconds=config.spool_poll_interval_seconds,
        scanner=spool_scanner_for_platform(),
    )
    return BridgeServices(
        config=config,
        settings=settings,
        dispatcher=dispatcher,
        monitor=monitor,
        files=FileStore(config.upload_dir),
        executor=executor,
    )
