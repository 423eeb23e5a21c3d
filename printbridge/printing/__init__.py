"""Cross-platform printing abstraction.

Provides a unified printer interface across Linux/macOS (CUPS) and Windows (win32print).
Use get_printer() factory to get the appropriate backend for the current platform.
"""

import logging
import platform

from printbridge.printing.base import (
    DeviceFailure,
    InvalidOperation,
    LoadError,
    PageSink,
    PlatformUnsupported,
    PrintBridgeError,
    PrinterBackend,
    RenderFailure,
    UnsupportedFileKind,
)

logger = logging.getLogger(__name__)


def get_printer(printer_name: str | None = None, margin_inches: float = 1.0) -> PrinterBackend:
    """Factory function that returns the appropriate printer backend.

    Args:
        printer_name: Optional printer name.
        margin_inches: Page margin used for raster printing.

    Returns:
        PrinterBackend: Platform-specific printer instance.
    """
    system = platform.system()

    if system == "Windows":
        from printbridge.printing.win32_printer import Win32Printer

        return Win32Printer(printer_name, margin_inches=margin_inches)

    # Linux and macOS both use CUPS
    from printbridge.printing.cups_printer import CupsPrinter

    return CupsPrinter(printer_name, margin_inches=margin_inches)


__all__ = [
    "DeviceFailure",
    "InvalidOperation",
    "LoadError",
    "PageSink",
    "PlatformUnsupported",
    "PrintBridgeError",
    "PrinterBackend",
    "RenderFailure",
    "UnsupportedFileKind",
    "get_printer",
]
