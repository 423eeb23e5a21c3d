"""Application configuration using pydantic-settings."""

import platform
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

WINDOWS_SPOOL_DIR = Path(r"C:\Windows\System32\spool\PRINTERS")
CUPS_SPOOL_DIR = Path("/var/spool/cups")


def default_spool_dir() -> Path:
    """Get the OS print spool directory for this host."""
    if platform.system() == "Windows":
        return WINDOWS_SPOOL_DIR
    return CUPS_SPOOL_DIR


class BridgeConfig(BaseSettings):
    """Process settings loaded from environment variables.

    These are fixed for the life of the process. User-editable settings
    (printer, auto-clean, preview) live in :mod:`printbridge.settings`.

    Attributes:
        app_name: Name of the application.
        host: Interface the HTTP server binds to.
        port: HTTP port.
        debug: Enable debug mode.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        upload_dir: Where uploaded documents are stored.
        settings_file: JSON file holding the runtime settings.
        default_printer_name: Printer used when no settings file exists yet.
        spool_dir: OS spool directory watched by the monitor.
        spool_poll_interval_seconds: Seconds between spool checks.
        spool_monitor_enabled: Start the spool monitor with the server.
        page_margin_inches: Margin applied to rasterized pages.
        admin_key: Shared secret for admin endpoints (empty = admin disabled).
    """

    model_config = SettingsConfigDict(
        env_prefix="PRINTBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "PrintBridge"
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    log_level: str = "INFO"

    # Storage
    upload_dir: Path = Path("uploads")
    settings_file: Path = Path("runtime_settings.json")
    default_printer_name: str = ""

    # Spool monitor
    spool_dir: Path = default_spool_dir()
    spool_poll_interval_seconds: float = 60.0
    spool_monitor_enabled: bool = True

    # Printing
    page_margin_inches: float = 1.0

    # Security
    admin_key: str = ""

    cors_origins: list[str] = ["*"]


@lru_cache
def get_config() -> BridgeConfig:
    """Get cached configuration instance.

    Returns:
        BridgeConfig: Process configuration.
    """
    return BridgeConfig()
