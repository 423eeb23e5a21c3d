"""Print dispatch: choose a rendering strategy and drive it to the printer."""

import io
import logging
import uuid
from collections.abc import Iterator
from contextlib import closing
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from PIL import Image

from printbridge.printing import get_printer
from printbridge.printing.base import (
    InvalidOperation,
    PlatformUnsupported,
    PrintBridgeError,
    PrinterBackend,
    UnsupportedFileKind,
)
from printbridge.printing.compositor import fit, normalize_rotation, rotate, wants_landscape
from printbridge.printing.rendering import DocumentRenderer
from printbridge.settings import SettingsProvider

logger = logging.getLogger(__name__)

RASTER_DPI = 300
PREVIEW_DPI = 96

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".bmp"})


class FileKind(str, Enum):
    """Kind of document accepted for printing."""

    PDF = "pdf"
    IMAGE = "image"

    @classmethod
    def from_path(cls, path: Path | str) -> "FileKind":
        """Classify a file by its extension.

        Raises:
            UnsupportedFileKind: If the extension is not a PDF or a supported image.
        """
        extension = Path(path).suffix.lower()
        if extension == ".pdf":
            return cls.PDF
        if extension in IMAGE_EXTENSIONS:
            return cls.IMAGE
        raise UnsupportedFileKind(f"File type {extension or '(none)'} is not supported.")


class PrintStrategy(str, Enum):
    """How a job reaches the printer."""

    DIRECT = "direct"
    RASTER = "raster"


@dataclass(frozen=True)
class PrintJob:
    """One print request. Immutable, consumed once by the dispatcher."""

    source_path: Path
    file_kind: FileKind
    copies: int = 1
    rotation: int = 0
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def __post_init__(self):
        if self.copies < 1:
            raise ValueError(f"copies must be at least 1, got {self.copies}")

    @classmethod
    def for_file(cls, path: Path | str, copies: int = 1, rotation: int = 0) -> "PrintJob":
        """Create a job, classifying the file by its extension.

        Raises:
            UnsupportedFileKind: If the file type is not printable.
        """
        path = Path(path)
        return cls(source_path=path, file_kind=FileKind.from_path(path), copies=copies, rotation=rotation)


@dataclass(frozen=True)
class DispatchResult:
    """What happened to a dispatched job."""

    job_id: str
    strategy: PrintStrategy
    pages: int | None = None


def _rotated(bitmap: Image.Image, rotation: int) -> Image.Image:
    rotated = rotate(bitmap, rotation)
    if rotated is not bitmap:
        bitmap.close()
    return rotated


def select_strategy(job: PrintJob) -> PrintStrategy:
    """Pick the rendering strategy for a job.

    PDFs without rotation go straight to the device; images and rotated
    PDFs are rasterized so that the rotation is visible on paper.
    """
    if job.file_kind is FileKind.PDF and normalize_rotation(job.rotation) == 0:
        return PrintStrategy.DIRECT
    return PrintStrategy.RASTER


class PrintDispatcher:
    """Routes print jobs to the direct or raster path."""

    def __init__(
        self,
        settings_provider: SettingsProvider,
        printer: PrinterBackend | None = None,
        renderer: DocumentRenderer | None = None,
    ):
        """Initialize the dispatcher.

        Args:
            settings_provider: Source of the target printer name.
            printer: Printing backend (default: for this platform).
            renderer: Document renderer.
        """
        self.settings_provider = settings_provider
        self.printer = printer or get_printer()
        self.renderer = renderer or DocumentRenderer()

    def dispatch(self, job: PrintJob) -> DispatchResult:
        """Print a job.

        Args:
            job: The job to print.

        Returns:
            DispatchResult: Strategy used and pages composed.

        Raises:
            PlatformUnsupported: If this host cannot print.
            LoadError: If the document cannot be opened.
            RenderFailure: If a page cannot be rasterized.
            DeviceFailure: If the printer rejects the job.
        """
        if not self.printer.is_available:
            logger.error(f"Job {job.job_id}: printing is not supported on this host")
            raise PlatformUnsupported("Printing is not supported on this host.")

        strategy = select_strategy(job)
        printer_name = self.settings_provider.get_settings().printer_name or None
        logger.info(
            f"Job {job.job_id}: {job.source_path.name} via {strategy.value} path "
            f"(copies: {job.copies}, rotation: {job.rotation})"
        )

        try:
            if strategy is PrintStrategy.DIRECT:
                self.printer.print_pdf(job.source_path, copies=job.copies, printer_name=printer_name)
                pages = None
            elif job.file_kind is FileKind.IMAGE:
                bitmap = _rotated(self.renderer.load_image(job.source_path), job.rotation)
                pages = self._print_raster(job, iter([bitmap]), printer_name)
            else:
                with closing(self.renderer.open(job.source_path)) as document:
                    pages = self._print_raster(
                        job, self.iter_pages(document, job.rotation), printer_name
                    )
        except PrintBridgeError as e:
            logger.error(f"Job {job.job_id}: error printing {job.source_path}: {e}")
            raise
        except Exception:
            logger.exception(f"Job {job.job_id}: unexpected error printing {job.source_path}")
            raise

        logger.info(f"Job {job.job_id}: done")
        return DispatchResult(job_id=job.job_id, strategy=strategy, pages=pages)

    def iter_pages(self, document, rotation: int, dpi: int = RASTER_DPI) -> Iterator[Image.Image]:
        """Render and rotate each page of an open document, one at a time.

        Yields exactly ``page_count`` bitmaps.
        """
        for index in range(self.renderer.page_count(document)):
            yield _rotated(self.renderer.render_page(document, index, dpi, dpi), rotation)

    def _print_raster(self, job: PrintJob, pages: Iterator[Image.Image], printer_name: str | None) -> int:
        count = 0
        title = f"PrintBridge {job.source_path.name}"
        with self.printer.open_document(title, copies=job.copies, printer_name=printer_name) as sink:
            for bitmap in pages:
                try:
                    if job.file_kind is FileKind.IMAGE and wants_landscape(bitmap):
                        if not sink.set_landscape(True):
                            logger.warning(f"Job {job.job_id}: landscape request ignored by printer")
                    area = sink.printable_area()
                    sink.print_page(bitmap, fit(bitmap, area))
                finally:
                    bitmap.close()
                count += 1
        return count

    def render_preview(self, path: Path | str, page_index: int = 0) -> bytes:
        """Render one PDF page for on-screen preview.

        Args:
            path: PDF file path.
            page_index: Zero-based page index.

        Returns:
            bytes: PNG image data.

        Raises:
            FileNotFoundError: If the file does not exist.
            InvalidOperation: If the file is not a PDF or the page does not exist.
            LoadError: If the PDF cannot be opened.
            RenderFailure: If the page cannot be rendered.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        if path.suffix.lower() != ".pdf":
            raise InvalidOperation("Not a PDF file")

        with closing(self.renderer.open(path)) as document:
            page_count = self.renderer.page_count(document)
            if not 0 <= page_index < page_count:
                raise InvalidOperation(f"Page {page_index} out of range (document has {page_count})")
            bitmap = self.renderer.render_page(document, page_index, PREVIEW_DPI, PREVIEW_DPI)

        buffer = io.BytesIO()
        with bitmap:
            bitmap.save(buffer, format="PNG")
        return buffer.getvalue()
