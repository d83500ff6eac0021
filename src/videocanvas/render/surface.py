"""
Raster Surface
==============

RGBA drawing target with the subset of 2D-canvas semantics the frame
pipeline needs: scaled image draws, pixel readback/writeback, and the
"source-over" / "source-in" compositing operations.

Pixels are stored straight (non-premultiplied) as np.ndarray (H, W, 4),
dtype=uint8.
"""

import logging
from typing import Optional

import cv2
import numpy as np


logger = logging.getLogger(__name__)


SOURCE_OVER = "source-over"
SOURCE_IN = "source-in"
COMPOSITE_OPERATIONS = (SOURCE_OVER, SOURCE_IN)


class Surface:
    """
    RGBA raster surface.

    Attributes:
        width: Surface width in pixels
        height: Surface height in pixels
        alpha: Whether the surface keeps an alpha channel. Opaque surfaces
            force alpha to 255 after every draw.
        image_smoothing: Bilinear scaling when True, nearest otherwise
        composite_operation: Operation applied by draw_image()
    """

    def __init__(
        self,
        width: int,
        height: int,
        alpha: bool = True,
        image_smoothing: bool = True,
    ) -> None:
        if width < 1 or height < 1:
            raise ValueError(f"Invalid surface size {width}x{height}")

        self.width = width
        self.height = height
        self.alpha = alpha
        self.image_smoothing = image_smoothing
        self._composite_operation = SOURCE_OVER
        self._pixels = np.zeros((height, width, 4), dtype=np.uint8)
        if not alpha:
            self._pixels[..., 3] = 255

    @property
    def composite_operation(self) -> str:
        return self._composite_operation

    @composite_operation.setter
    def composite_operation(self, operation: str) -> None:
        if operation not in COMPOSITE_OPERATIONS:
            raise ValueError(f"Unsupported composite operation: {operation}")
        self._composite_operation = operation

    @property
    def pixels(self) -> np.ndarray:
        """Live view of the surface pixels."""
        return self._pixels

    def clear_rect(
        self,
        x: int = 0,
        y: int = 0,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        """Clear a rectangle to transparent black."""
        width = self.width if width is None else width
        height = self.height if height is None else height
        region = self._pixels[y:y + height, x:x + width]
        region[...] = 0
        if not self.alpha:
            region[..., 3] = 255

    def draw_image(self, image: np.ndarray) -> None:
        """
        Draw `image` scaled to cover the whole surface.

        Args:
            image: RGB (H, W, 3) or RGBA (H, W, 4) uint8 array
        """
        source = self._to_rgba(self._scale(image))

        if self._composite_operation == SOURCE_IN:
            # Colour from source, alpha = source alpha x destination alpha
            dest_alpha = self._pixels[..., 3].astype(np.uint16)
            out_alpha = (source[..., 3].astype(np.uint16) * dest_alpha + 127) // 255
            self._pixels[..., :3] = source[..., :3]
            self._pixels[..., 3] = out_alpha.astype(np.uint8)
        else:
            self._source_over(source)

        if not self.alpha:
            self._pixels[..., 3] = 255

    def get_image_data(self) -> np.ndarray:
        """Read back a copy of the surface pixels."""
        return self._pixels.copy()

    def put_image_data(self, data: np.ndarray) -> None:
        """Write back pixel data of the surface's own shape."""
        if data.shape != self._pixels.shape:
            raise ValueError(
                f"Image data shape {data.shape} does not match surface "
                f"{self._pixels.shape}"
            )
        self._pixels[...] = data

    def _scale(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        if (width, height) == (self.width, self.height):
            return image
        interpolation = cv2.INTER_LINEAR if self.image_smoothing else cv2.INTER_NEAREST
        return cv2.resize(image, (self.width, self.height), interpolation=interpolation)

    @staticmethod
    def _to_rgba(image: np.ndarray) -> np.ndarray:
        if image.ndim != 3 or image.shape[2] not in (3, 4):
            raise ValueError(f"Invalid image shape: {image.shape}")
        if image.shape[2] == 4:
            return image
        return cv2.cvtColor(image, cv2.COLOR_RGB2RGBA)

    def _source_over(self, source: np.ndarray) -> None:
        source_alpha = source[..., 3:4].astype(np.float32) / 255.0
        if np.all(source_alpha == 1.0):
            self._pixels[...] = source
            return

        dest_alpha = self._pixels[..., 3:4].astype(np.float32) / 255.0
        out_alpha = source_alpha + dest_alpha * (1.0 - source_alpha)
        color = (
            source[..., :3].astype(np.float32) * source_alpha
            + self._pixels[..., :3].astype(np.float32) * dest_alpha * (1.0 - source_alpha)
        )
        np.divide(color, out_alpha, out=color, where=out_alpha > 0)
        self._pixels[..., :3] = np.clip(np.rint(color), 0, 255).astype(np.uint8)
        self._pixels[..., 3] = np.clip(np.rint(out_alpha[..., 0] * 255.0), 0, 255).astype(np.uint8)
