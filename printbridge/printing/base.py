"""Printer backend interface and the error taxonomy shared by the print path."""

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol, runtime_checkable

from PIL import Image

from printbridge.printing.compositor import Placement, PrintableArea


class PrintBridgeError(Exception):
    """Base class for every error surfaced by the print bridge."""

    pass


class PlatformUnsupported(PrintBridgeError):
    """The host has no native printing capability."""

    pass


class UnsupportedFileKind(PrintBridgeError):
    """The file extension is neither a PDF nor a supported image."""

    pass


class LoadError(PrintBridgeError):
    """A document could not be opened or parsed."""

    pass


class RenderFailure(PrintBridgeError):
    """Rasterizing a page failed."""

    pass


class DeviceFailure(PrintBridgeError):
    """The printing subsystem rejected the job."""

    pass


class InvalidOperation(PrintBridgeError):
    """The request is well formed but cannot be applied to this file."""

    pass


@runtime_checkable
class PageSink(Protocol):
    """One open print document accepting composed pages.

    Obtained from :meth:`PrinterBackend.open_document`; the document is
    submitted to the spooler when the context exits without error.
    """

    def set_landscape(self, landscape: bool) -> bool:
        """Request page orientation for the next page.

        Returns:
            bool: False if the sink could not honour the request.
        """
        ...

    def printable_area(self) -> PrintableArea:
        """Get the printable area of the page about to be printed."""
        ...

    def print_page(self, bitmap: Image.Image, placement: Placement) -> None:
        """Draw one bitmap at the given placement and finish the page.

        Raises:
            DeviceFailure: If the device rejects the page.
        """
        ...


@runtime_checkable
class PrinterBackend(Protocol):
    """Protocol defining the printer backend interface.

    All platform-specific printer implementations must satisfy this protocol.
    """

    @property
    def is_available(self) -> bool:
        """Check if the printing system is available.

        Returns:
            bool: True if printing is available.
        """
        ...

    def get_printers(self) -> list[dict]:
        """Get list of available printers.

        Returns:
            list[dict]: List of printer info dicts with 'name', 'state_message'
                        and 'is_default' keys.
        """
        ...

    def get_default_printer(self) -> str | None:
        """Get the default printer name.

        Returns:
            str | None: Default printer name or None.
        """
        ...

    def print_pdf(
        self,
        pdf_path: Path,
        copies: int = 1,
        printer_name: str | None = None,
    ) -> None:
        """Print a whole PDF using the platform's native document printing.

        Args:
            pdf_path: PDF file on disk.
            copies: Number of copies.
            printer_name: Override printer name.

        Raises:
            DeviceFailure: If printing fails.
        """
        ...

    def open_document(
        self,
        title: str,
        copies: int = 1,
        printer_name: str | None = None,
    ) -> AbstractContextManager[PageSink]:
        """Open a page-by-page print document.

        Args:
            title: Print job title.
            copies: Number of copies.
            printer_name: Override printer name.

        Returns:
            Context manager yielding a PageSink.
        """
        ...
