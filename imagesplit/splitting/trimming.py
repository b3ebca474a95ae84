"""
White-border trimming for detected regions.

Region bounding boxes are computed with a strict near-white test, so paper
tinted margins and JPEG halos can survive around the content. Trimming
shrinks each rect to the bounds of pixels that are not light background.
"""

import logging
import numpy as np

from .base import SplitRect

logger = logging.getLogger(__name__)

# Pixels at or below this alpha are background
TRANSPARENT_ALPHA = 12
NEAR_WHITE_LEVEL = 235
PAPER_MIN_LUMA = 225
PAPER_MAX_CHROMA = 35
MIN_TRIMMED_SIZE = 2


def light_background_mask(pixels: np.ndarray) -> np.ndarray:
    """
    Mask of pixels that look like white or paper-colored background.

    Args:
        pixels: RGBA array.

    Returns:
        Boolean mask with the channel axis dropped.
    """
    rgb = pixels[..., :3].astype(np.int16)
    alpha = pixels[..., 3]

    near_white = np.all(rgb >= NEAR_WHITE_LEVEL, axis=-1)

    luma = 0.2126 * rgb[..., 0] + 0.7152 * rgb[..., 1] + 0.0722 * rgb[..., 2]
    chroma = rgb.max(axis=-1) - rgb.min(axis=-1)
    paper = (luma >= PAPER_MIN_LUMA) & (chroma <= PAPER_MAX_CHROMA)

    return (alpha <= TRANSPARENT_ALPHA) | near_white | paper


class ContentTrimmer:
    """Shrinks crop windows to their non-background content."""

    def trim_rects(self, image: np.ndarray, rects: list[SplitRect]) -> list[SplitRect]:
        """Trim every rect, keeping indices."""
        return [self.trim_rect(image, rect) for rect in rects]

    def trim_rect(self, image: np.ndarray, rect: SplitRect) -> SplitRect:
        """
        Trim one rect to the content inside it.

        Args:
            image: RGBA source image.
            rect: Crop window inside the image.

        Returns:
            The trimmed rect, or the original one when the window holds no
            content or trimming would leave less than 2x2 pixels.
        """
        height, width = image.shape[:2]
        x0 = max(0, min(width - 1, rect.x))
        y0 = max(0, min(height - 1, rect.y))
        x1 = max(x0 + 1, min(width, rect.x + rect.width))
        y1 = max(y0 + 1, min(height, rect.y + rect.height))
        safe = SplitRect(index=rect.index, x=x0, y=y0, width=x1 - x0, height=y1 - y0)

        content = ~light_background_mask(image[y0:y1, x0:x1])
        rows = np.flatnonzero(content.any(axis=1))
        cols = np.flatnonzero(content.any(axis=0))
        if rows.size == 0 or cols.size == 0:
            return safe

        trimmed = SplitRect(
            index=rect.index,
            x=x0 + int(cols[0]),
            y=y0 + int(rows[0]),
            width=int(cols[-1] - cols[0]) + 1,
            height=int(rows[-1] - rows[0]) + 1,
        )

        if trimmed.width < MIN_TRIMMED_SIZE or trimmed.height < MIN_TRIMMED_SIZE:
            logger.debug(f"Trim of rect {rect.index} too small, keeping original")
            return safe

        return trimmed
