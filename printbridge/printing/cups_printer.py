"""CUPS printing backend for Linux and macOS."""

import io
import logging
import shutil
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image

from printbridge.printing.base import DeviceFailure, PageSink
from printbridge.printing.compositor import Placement, PrintableArea
from printbridge.printing.rendering import POINTS_PER_INCH

logger = logging.getLogger(__name__)

# Try to import cups, but make it optional
try:
    import cups

    CUPS_AVAILABLE = True
except ImportError:
    CUPS_AVAILABLE = False
    logger.debug("pycups not available - using lp command fallback")

# A4 portrait in inches
A4_INCHES = (8.27, 11.69)


class CupsPageSink:
    """Writes composed pages into a PDF for a single CUPS submission.

    Each page is added to the document as soon as it is printed, so only
    the bitmap being placed is held in memory. Orientation can change from
    page to page.
    """

    def __init__(self, dpi: int = 300, margin_inches: float = 1.0, page_inches=A4_INCHES):
        self.dpi = dpi
        self.margin_inches = margin_inches
        self.page_inches = page_inches
        self.landscape = False
        self._document = fitz.open()

    @property
    def page_count(self) -> int:
        return self._document.page_count

    def set_landscape(self, landscape: bool) -> bool:
        self.landscape = landscape
        return True

    def _page_size(self) -> tuple[int, int]:
        width, height = (round(side * self.dpi) for side in self.page_inches)
        if self.landscape:
            return height, width
        return width, height

    def printable_area(self) -> PrintableArea:
        page_width, page_height = self._page_size()
        margin = self.margin_inches * self.dpi
        return PrintableArea(
            left=margin,
            top=margin,
            width=max(1.0, page_width - 2 * margin),
            height=max(1.0, page_height - 2 * margin),
            page_width=page_width,
            page_height=page_height,
            landscape=self.landscape,
        )

    def print_page(self, bitmap: Image.Image, placement: Placement) -> None:
        def points(pixels: int) -> float:
            return pixels * POINTS_PER_INCH / self.dpi

        page_width, page_height = self._page_size()
        left, top, right, bottom = placement.as_box()

        buffer = io.BytesIO()
        bitmap.convert("RGB").save(buffer, format="PNG")

        # Page coordinates are in points; the PDF page background is white
        page = self._document.new_page(width=points(page_width), height=points(page_height))
        page.insert_image(
            fitz.Rect(points(left), points(top), points(right), points(bottom)),
            stream=buffer.getvalue(),
            keep_proportion=False,
        )

    def write_pdf(self, path: Path) -> None:
        self._document.save(str(path), deflate=True)

    def close(self) -> None:
        if not self._document.is_closed:
            self._document.close()


class CupsPrinter:
    """CUPS backend: pycups when it can connect, the lp/lpstat tools otherwise."""

    def __init__(self, printer_name: str | None = None, margin_inches: float = 1.0):
        """Set up the backend.

        Args:
            printer_name: Destination (None = CUPS default destination).
            margin_inches: Page margin used for raster printing.
        """
        self.printer_name = printer_name
        self.margin_inches = margin_inches
        self._connection = None

        if CUPS_AVAILABLE:
            try:
                self._connection = cups.Connection()
            except RuntimeError as e:
                logger.error(f"CUPS server unreachable, falling back to lp: {e}")

    @property
    def is_available(self) -> bool:
        """True if jobs can be submitted through pycups or lp."""
        return self._connection is not None or shutil.which("lp") is not None

    def _lpstat(self, *args: str) -> str:
        try:
            result = subprocess.run(["lpstat", *args], capture_output=True, text=True, timeout=10)
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"lpstat {' '.join(args)} unavailable: {e}")
            return ""
        return result.stdout

    def get_printers(self) -> list[dict]:
        """List CUPS destinations.

        Returns:
            list[dict]: Printer info dicts (name, state_message, is_default).
        """
        if self._connection:
            try:
                destinations = self._connection.getPrinters()
            except Exception as e:
                logger.error(f"Could not list CUPS destinations: {e}")
                return []
            return [
                {
                    "name": name,
                    "state_message": attrs.get("printer-state-message", ""),
                    "is_default": bool(attrs.get("printer-is-default", False)),
                }
                for name, attrs in destinations.items()
            ]

        default = self.get_default_printer()
        names = [
            line.split()[1]
            for line in self._lpstat("-p").splitlines()
            if line.startswith("printer ") and len(line.split()) > 1
        ]
        return [{"name": n, "state_message": "", "is_default": n == default} for n in names]

    def get_default_printer(self) -> str | None:
        """Get the CUPS default destination, if one is set."""
        if self._connection:
            try:
                return self._connection.getDefault()
            except Exception as e:
                logger.error(f"Could not read the CUPS default destination: {e}")
                return None

        _, sep, name = self._lpstat("-d").partition("system default destination:")
        return (name.strip() or None) if sep else None

    def _submit(self, path: Path, title: str, copies: int, printer_name: str | None) -> None:
        name = printer_name or self.printer_name

        try:
            if self._connection:
                name = name or self.get_default_printer()
                if not name:
                    raise DeviceFailure("No printer configured and no default printer")
                job_id = self._connection.printFile(name, str(path), title, {"copies": str(copies)})
                logger.info(f"CUPS job {job_id} for {title} queued on {name} ({copies} copies)")
                return

            cmd = ["lp", "-t", title, "-n", str(copies)]
            if name:
                cmd.extend(["-d", name])
            cmd.append(str(path))

            result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
            if result.returncode != 0:
                raise DeviceFailure(f"lp command failed: {result.stderr.strip()}")
            logger.info(f"lp accepted {title}: {result.stdout.strip()}")

        except subprocess.TimeoutExpired as err:
            raise DeviceFailure("Print command timed out") from err
        except FileNotFoundError as err:
            raise DeviceFailure("lp command not found - is CUPS installed?") from err
        except DeviceFailure:
            raise
        except Exception as err:
            raise DeviceFailure(f"CUPS rejected {path.name}: {err}") from err

    def print_pdf(
        self,
        pdf_path: Path,
        copies: int = 1,
        printer_name: str | None = None,
    ) -> None:
        """Print a PDF document through CUPS.

        Args:
            pdf_path: PDF file on disk.
            copies: Number of copies.
            printer_name: Override printer name.

        Raises:
            DeviceFailure: If printing fails.
        """
        self._submit(pdf_path, pdf_path.name, copies, printer_name)

    @contextmanager
    def open_document(
        self,
        title: str,
        copies: int = 1,
        printer_name: str | None = None,
    ) -> Iterator[PageSink]:
        """Open a page-by-page print document.

        Pages are written to a PDF as they are printed and submitted as one
        job when the context exits; nothing is submitted if no page was printed.

        Args:
            title: Print job title.
            copies: Number of copies.
            printer_name: Override printer name.

        Yields:
            CupsPageSink: Sink accepting composed pages.
        """
        sink = CupsPageSink(margin_inches=self.margin_inches)
        try:
            yield sink
            if not sink.page_count:
                return

            with tempfile.TemporaryDirectory() as tmp:
                pdf_path = Path(tmp) / "composed.pdf"
                sink.write_pdf(pdf_path)
                self._submit(pdf_path, title, copies, printer_name)
        finally:
            sink.close()
