"""Runtime settings and their JSON-backed provider."""

import json
import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_AUTO_CLEAN_TIMEOUT_MINUTES = 20

# Field name -> key in the persisted JSON record
_JSON_KEYS = {
    "printer_name": "printerName",
    "auto_clean_enabled": "autoCleanEnabled",
    "auto_clean_timeout_minutes": "autoCleanTimeoutMinutes",
    "preview_enabled": "previewEnabled",
}


def _to_str(value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"expected a boolean, got {value!r}")


def _to_int(value) -> int:
    # bool is an int subclass but never a valid timeout
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise TypeError(f"expected an integer, got {type(value).__name__}")
    return int(value)


_CONVERTERS = {
    "printer_name": _to_str,
    "auto_clean_enabled": _to_bool,
    "auto_clean_timeout_minutes": _to_int,
    "preview_enabled": _to_bool,
}


@dataclass(frozen=True)
class RuntimeSettings:
    """User-editable settings shared by the dispatcher and the spool monitor.

    Attributes:
        printer_name: Target printer (empty = system default).
        auto_clean_enabled: Whether the spool monitor may clean up.
        auto_clean_timeout_minutes: Age after which a spool file counts as stuck.
        preview_enabled: Whether document previews are served.
    """

    printer_name: str = ""
    auto_clean_enabled: bool = False
    auto_clean_timeout_minutes: int = DEFAULT_AUTO_CLEAN_TIMEOUT_MINUTES
    preview_enabled: bool = True

    def to_dict(self) -> dict:
        """Serialize to the persisted JSON layout."""
        return {key: getattr(self, field) for field, key in _JSON_KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict, defaults: "RuntimeSettings | None" = None) -> "RuntimeSettings":
        """Build settings from the persisted JSON layout.

        Missing keys, and values of the wrong type, take their value from
        ``defaults``. Numeric strings are accepted for the timeout and
        "true"/"false" strings for the switches.
        """
        base = defaults or cls()
        values = {}
        for field, key in _JSON_KEYS.items():
            if key not in data:
                continue
            try:
                values[field] = _CONVERTERS[field](data[key])
            except (TypeError, ValueError):
                logger.warning(
                    f"Invalid value {data[key]!r} for {key}, using {getattr(base, field)!r}"
                )
        return replace(base, **values)


class SettingsProvider:
    """Single owner of the current RuntimeSettings.

    Reads return the current immutable snapshot; writes replace it and the
    JSON file under one lock.
    """

    def __init__(self, path: Path, defaults: RuntimeSettings | None = None):
        """Initialize the provider and load the settings file.

        Args:
            path: JSON file to load from and save to.
            defaults: Settings used when the file is missing or unreadable.
        """
        self.path = path
        self._defaults = defaults or RuntimeSettings()
        self._lock = threading.Lock()
        self._current = self._load()

    def _load(self) -> RuntimeSettings:
        if not self.path.exists():
            return self._defaults

        try:
            with open(self.path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return RuntimeSettings.from_dict(data, self._defaults)
        except (OSError, json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Error loading settings from {self.path}, using defaults: {e}")
            return self._defaults

    def _write(self, settings: RuntimeSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(settings.to_dict(), f, indent=2)
        self._current = settings

    def get_settings(self) -> RuntimeSettings:
        """Get the current settings snapshot."""
        with self._lock:
            return self._current

    def save_settings(self, settings: RuntimeSettings) -> None:
        """Replace the current settings and persist them.

        Args:
            settings: New settings.
        """
        with self._lock:
            self._write(settings)
        logger.info(f"Runtime settings saved to {self.path}")

    def update_settings(self, **changes) -> RuntimeSettings:
        """Change some fields of the current settings and persist the result.

        Args:
            **changes: RuntimeSettings field values.

        Returns:
            RuntimeSettings: The new settings.
        """
        with self._lock:
            updated = replace(self._current, **changes)
            self._write(updated)
        logger.info(f"Runtime settings updated: {', '.join(sorted(changes))}")
        return updated
