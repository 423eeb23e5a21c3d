"""Page geometry: fit-to-page, rotation and orientation.

Nothing here talks to a device. Coordinates are in whatever unit the
printable area uses (device pixels for GDI, canvas pixels for CUPS).
"""

import logging
from dataclasses import dataclass

from PIL import Image

logger = logging.getLogger(__name__)

# Clockwise rotation in degrees -> Pillow transpose
_ROTATIONS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


@dataclass(frozen=True)
class PrintableArea:
    """Margin-bounded drawable region of a physical page.

    Attributes:
        left: Left edge of the drawable region.
        top: Top edge of the drawable region.
        width: Drawable width.
        height: Drawable height.
        page_width: Full page width.
        page_height: Full page height.
        landscape: Whether the page is in landscape orientation.
    """

    left: float
    top: float
    width: float
    height: float
    page_width: float
    page_height: float
    landscape: bool = False


@dataclass(frozen=True)
class Placement:
    """Output rectangle for a bitmap inside a printable area."""

    x: float
    y: float
    width: float
    height: float

    def as_box(self) -> tuple[int, int, int, int]:
        """Get the placement as an integer (left, top, right, bottom) box."""
        left = round(self.x)
        top = round(self.y)
        return left, top, left + round(self.width), top + round(self.height)


def fit(bitmap: Image.Image, area: PrintableArea) -> Placement:
    """Scale and center a bitmap inside a printable area.

    The result keeps the bitmap's aspect ratio and touches the area on two
    opposite sides.

    Args:
        bitmap: Rendered page.
        area: Target printable area.

    Returns:
        Placement: Centered output rectangle.

    Raises:
        ValueError: If the bitmap or the area has a non-positive dimension.
    """
    image_width, image_height = bitmap.size
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Cannot fit an empty bitmap ({image_width}x{image_height})")
    if area.width <= 0 or area.height <= 0:
        raise ValueError(f"Printable area is empty ({area.width}x{area.height})")

    image_ratio = image_width / image_height
    area_ratio = area.width / area.height

    if image_ratio >= area_ratio:
        width = area.width
        height = width / image_ratio
    else:
        height = area.height
        width = height * image_ratio

    x = area.left + (area.width - width) / 2
    y = area.top + (area.height - height) / 2
    return Placement(x=x, y=y, width=width, height=height)


def normalize_rotation(degrees: int) -> int:
    """Reduce a rotation to the range [0, 360)."""
    return degrees % 360


def rotate(bitmap: Image.Image, degrees: int) -> Image.Image:
    """Rotate a bitmap clockwise by a multiple of 90 degrees.

    Values other than 90, 180 and 270 (after reduction mod 360) leave the
    bitmap untouched.

    Args:
        bitmap: Source bitmap.
        degrees: Clockwise rotation.

    Returns:
        Image.Image: Rotated bitmap, or the same object for a no-op.
    """
    normalized = normalize_rotation(degrees)
    transpose = _ROTATIONS.get(normalized)
    if transpose is None:
        if normalized:
            logger.debug(f"Rotation {degrees} is not a right angle, printing unrotated")
        return bitmap
    return bitmap.transpose(transpose)


def wants_landscape(bitmap: Image.Image) -> bool:
    """Check whether a bitmap would rather be printed on a landscape page."""
    width, height = bitmap.size
    return width > height
