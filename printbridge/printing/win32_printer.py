"""Windows printing backend using win32print, ShellExecute and GDI."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from PIL import Image

from printbridge.printing.base import DeviceFailure, PageSink
from printbridge.printing.compositor import Placement, PrintableArea

logger = logging.getLogger(__name__)

# Try to import win32 modules
try:
    import win32api
    import win32con
    import win32gui
    import win32print
    import win32ui
    from PIL import ImageWin

    WIN32_AVAILABLE = True
except ImportError:
    WIN32_AVAILABLE = False
    logger.debug("pywin32 not available - Windows printing disabled")

# DEVMODE orientation values
DMORIENT_PORTRAIT = 1
DMORIENT_LANDSCAPE = 2


class Win32PageSink:
    """GDI print document fed one composed page at a time.

    The printer DC is created lazily on the first call that needs it, with a
    DEVMODE carrying the requested copies and orientation. Once the DC exists
    the orientation is fixed for the rest of the document.
    """

    def __init__(self, printer_name: str, title: str, copies: int, margin_inches: float):
        self.printer_name = printer_name
        self.title = title
        self.copies = copies
        self.margin_inches = margin_inches
        self.landscape = False
        self.pages_printed = 0
        self._dc = None

    def set_landscape(self, landscape: bool) -> bool:
        if self._dc is not None:
            if landscape != self.landscape:
                logger.warning(
                    f"Orientation change ignored for {self.printer_name}: document already started"
                )
                return False
            return True
        self.landscape = landscape
        return True

    def _ensure_dc(self):
        if self._dc is not None:
            return self._dc

        try:
            handle = win32print.OpenPrinter(self.printer_name)
            try:
                devmode = win32print.GetPrinter(handle, 2)["pDevMode"]
            finally:
                win32print.ClosePrinter(handle)

            devmode.Copies = self.copies
            devmode.Orientation = DMORIENT_LANDSCAPE if self.landscape else DMORIENT_PORTRAIT

            hdc = win32gui.CreateDC("WINSPOOL", self.printer_name, devmode)
            self._dc = win32ui.CreateDCFromHandle(hdc)
            self._dc.StartDoc(self.title)
        except Exception as e:
            raise DeviceFailure(f"Could not open printer {self.printer_name}: {e}") from e
        return self._dc

    def printable_area(self) -> PrintableArea:
        dc = self._ensure_dc()

        # Reason: GDI origin is the top-left of the printable region, so the
        # physical offset has to be taken off the requested margin.
        page_width = dc.GetDeviceCaps(win32con.PHYSICALWIDTH)
        page_height = dc.GetDeviceCaps(win32con.PHYSICALHEIGHT)
        offset_x = dc.GetDeviceCaps(win32con.PHYSICALOFFSETX)
        offset_y = dc.GetDeviceCaps(win32con.PHYSICALOFFSETY)
        margin_x = dc.GetDeviceCaps(win32con.LOGPIXELSX) * self.margin_inches
        margin_y = dc.GetDeviceCaps(win32con.LOGPIXELSY) * self.margin_inches

        left = max(0.0, margin_x - offset_x)
        top = max(0.0, margin_y - offset_y)
        return PrintableArea(
            left=left,
            top=top,
            width=max(1.0, page_width - 2 * margin_x),
            height=max(1.0, page_height - 2 * margin_y),
            page_width=page_width,
            page_height=page_height,
            landscape=page_width > page_height,
        )

    def print_page(self, bitmap: Image.Image, placement: Placement) -> None:
        dc = self._ensure_dc()
        try:
            dc.StartPage()
            ImageWin.Dib(bitmap).draw(dc.GetHandleOutput(), placement.as_box())
            dc.EndPage()
        except Exception as e:
            raise DeviceFailure(f"GDI page {self.pages_printed + 1} failed: {e}") from e
        self.pages_printed += 1

    def finish(self) -> None:
        if self._dc is None:
            return
        try:
            self._dc.EndDoc()
        finally:
            self._dc.DeleteDC()
            self._dc = None

    def abort(self) -> None:
        if self._dc is None:
            return
        try:
            self._dc.AbortDoc()
        except Exception as e:
            logger.error(f"AbortDoc failed for {self.printer_name}: {e}")
        finally:
            self._dc.DeleteDC()
            self._dc = None


class Win32Printer:
    """Windows printing backend using win32print API."""

    def __init__(self, printer_name: str | None = None, margin_inches: float = 1.0):
        """Initialize Windows printer.

        Args:
            printer_name: Printer name (None = default printer).
            margin_inches: Page margin used for raster printing.
        """
        self.printer_name = printer_name
        self.margin_inches = margin_inches

    @property
    def is_available(self) -> bool:
        """Check if Windows printing is available.

        Returns:
            bool: True if pywin32 is importable.
        """
        return WIN32_AVAILABLE

    def get_printers(self) -> list[dict]:
        """Get list of available printers.

        Returns:
            list[dict]: List of printer info dicts.
        """
        if not WIN32_AVAILABLE:
            return []

        try:
            default = self.get_default_printer()
            printers = win32print.EnumPrinters(
                win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
            )
            return [
                {
                    "name": name,
                    "state_message": comment or "",
                    "is_default": name == default,
                }
                for _flags, _description, name, comment in printers
            ]
        except Exception as e:
            logger.error(f"Error enumerating printers: {e}")
            return []

    def get_default_printer(self) -> str | None:
        """Get the default printer name.

        Returns:
            str | None: Default printer name or None.
        """
        if not WIN32_AVAILABLE:
            return None

        try:
            return win32print.GetDefaultPrinter()
        except Exception as e:
            logger.error(f"Error getting default printer: {e}")
            return None

    def _resolve_name(self, printer_name: str | None) -> str | None:
        return printer_name or self.printer_name or self.get_default_printer()

    def print_pdf(
        self,
        pdf_path: Path,
        copies: int = 1,
        printer_name: str | None = None,
    ) -> None:
        """Print a PDF document using ShellExecute.

        Delegates to the system's PDF handler for rendering, once per copy.

        Args:
            pdf_path: PDF file on disk.
            copies: Number of copies.
            printer_name: Override printer name.

        Raises:
            DeviceFailure: If printing fails.
        """
        if not WIN32_AVAILABLE:
            raise DeviceFailure("pywin32 is not installed")

        name = self._resolve_name(printer_name)
        try:
            for _ in range(copies):
                if name:
                    win32api.ShellExecute(0, "printto", str(pdf_path), f'"{name}"', ".", 0)
                else:
                    win32api.ShellExecute(0, "print", str(pdf_path), None, ".", 0)
        except Exception as e:
            raise DeviceFailure(f"Windows print of {pdf_path} failed: {e}") from e

        # Reason: Give the PDF handler time to spool before the caller moves on
        time.sleep(2)
        logger.info(f"PDF {pdf_path.name} submitted to {name or 'default'} ({copies} copies)")

    @contextmanager
    def open_document(
        self,
        title: str,
        copies: int = 1,
        printer_name: str | None = None,
    ) -> Iterator[PageSink]:
        """Open a GDI print document.

        Args:
            title: Print job title.
            copies: Number of copies.
            printer_name: Override printer name.

        Yields:
            Win32PageSink: Sink accepting composed pages.

        Raises:
            DeviceFailure: If the printer cannot be opened or the job fails.
        """
        if not WIN32_AVAILABLE:
            raise DeviceFailure("pywin32 is not installed")

        name = self._resolve_name(printer_name)
        if not name:
            raise DeviceFailure("No printer configured and no default printer")

        sink = Win32PageSink(name, title, copies, self.margin_inches)
        try:
            yield sink
        except BaseException:
            sink.abort()
            raise

        try:
            sink.finish()
        except Exception as e:
            raise DeviceFailure(f"Could not finish print document on {name}: {e}") from e
        logger.info(f"{sink.pages_printed} page(s) sent to {name} ({copies} copies)")
