"""Document rendering backed by PyMuPDF and Pillow."""

import logging
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image

from printbridge.printing.base import LoadError, RenderFailure

logger = logging.getLogger(__name__)

# PDF user space unit
POINTS_PER_INCH = 72


class DocumentRenderer:
    """Opens documents and rasterizes their pages to Pillow images."""

    def open(self, path: Path | str) -> fitz.Document:
        """Open a PDF document.

        Args:
            path: PDF file path.

        Returns:
            fitz.Document: Open document; the caller closes it.

        Raises:
            LoadError: If the file cannot be opened or is not a PDF.
        """
        try:
            document = fitz.open(str(path))
        except Exception as e:
            raise LoadError(f"Could not open {path}: {e}") from e

        if not document.is_pdf:
            document.close()
            raise LoadError(f"{path} is not a PDF document")
        return document

    def page_count(self, document: fitz.Document) -> int:
        """Get the number of pages in an open document."""
        return document.page_count

    def render_page(
        self,
        document: fitz.Document,
        index: int,
        dpi_x: int,
        dpi_y: int,
    ) -> Image.Image:
        """Rasterize one page.

        Args:
            document: Open document.
            index: Zero-based page index.
            dpi_x: Horizontal resolution.
            dpi_y: Vertical resolution.

        Returns:
            Image.Image: RGB bitmap of the page.

        Raises:
            RenderFailure: If the page cannot be rendered.
        """
        try:
            page = document.load_page(index)
            matrix = fitz.Matrix(dpi_x / POINTS_PER_INCH, dpi_y / POINTS_PER_INCH)
            pixmap = page.get_pixmap(matrix=matrix, alpha=False)
            return Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
        except Exception as e:
            raise RenderFailure(f"Could not render page {index} of {document.name}: {e}") from e

    def load_image(self, path: Path | str) -> Image.Image:
        """Load a raster image file fully into memory.

        Args:
            path: Image file path.

        Returns:
            Image.Image: RGB bitmap.

        Raises:
            LoadError: If the image cannot be decoded.
        """
        try:
            with Image.open(path) as image:
                return image.convert("RGB")
        except (OSError, ValueError) as e:
            raise LoadError(f"Could not open image {path}: {e}") from e
