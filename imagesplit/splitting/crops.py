"""
Crop rendering for split results.

Crops are always cut from the same source bytes the rects were computed on,
in source pixel space.
"""

import io
import logging
from typing import Iterable

import numpy as np
from PIL import Image

from .base import SplitRect
from .sampler import ImageSource, load_image

logger = logging.getLogger(__name__)


class CropRenderer:
    """Encodes the pixels under each crop window as an image file."""

    def __init__(self, image_format: str = "PNG"):
        """
        Initialize the renderer.

        Args:
            image_format: PIL format name for encoded crops.
        """
        self.image_format = image_format

    @property
    def content_type(self) -> str:
        return f"image/{self.image_format.lower()}"

    def render(self, source: ImageSource, rect: SplitRect) -> bytes:
        """Decode the source and encode a single crop."""
        return self.render_from_array(load_image(source), rect)

    def render_all(self, source: ImageSource, rects: Iterable[SplitRect]) -> list[bytes]:
        """Decode the source once and encode every crop in order."""
        image = load_image(source)
        return [self.render_from_array(image, rect) for rect in rects]

    def render_from_array(self, image: np.ndarray, rect: SplitRect) -> bytes:
        """
        Encode the pixels under one rect.

        Args:
            image: RGBA source image.
            rect: Crop window; clamped to the image bounds.

        Returns:
            Encoded image bytes.
        """
        height, width = image.shape[:2]
        x0 = max(0, min(width - 1, rect.x))
        y0 = max(0, min(height - 1, rect.y))
        x1 = max(x0 + 1, min(width, rect.x + rect.width))
        y1 = max(y0 + 1, min(height, rect.y + rect.height))

        crop = Image.fromarray(np.ascontiguousarray(image[y0:y1, x0:x1]))
        buffer = io.BytesIO()
        crop.save(buffer, format=self.image_format)

        logger.debug(f"Rendered crop {rect.index}: {x0},{y0} to {x1},{y1}")
        return buffer.getvalue()
