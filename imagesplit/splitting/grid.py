"""
Grid-based image splitter.

This is the deterministic fallback used when region detection is skipped
or produces an unusable result. Cells are computed independently from
fractional boundaries, so rounding never drifts across a row.
"""

import math
from typing import Optional
import numpy as np

from .base import BaseSplitter, SplitConfig, SplitRect


def _round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (builtin round() is banker's)."""
    return math.floor(value + 0.5)


class GridSplitter(BaseSplitter):
    """
    Partitions an image into a row x column grid of near-equal cells.

    With ``cols = ceil(sqrt(n))`` and ``rows = ceil(n / cols)``, cell ``i`` sits
    at row ``i // cols`` and column ``i % cols``. A partially filled last row
    keeps the column widths of the rows above and leaves the right side
    uncovered.
    """

    def __init__(self, config: Optional[SplitConfig] = None):
        """Initialize the grid splitter."""
        super().__init__(config)

    @property
    def name(self) -> str:
        return "grid"

    def split_rects(self, image: np.ndarray, output_count: int) -> list[SplitRect]:
        """
        Split image into a grid of output_count cells.

        Args:
            image: Image as numpy array.
            output_count: Requested number of cells (clamped to [1, 50]).

        Returns:
            Grid cells in row-major order.
        """
        height, width = image.shape[:2]
        return self.tile(width, height, output_count)

    def tile(self, width: int, height: int, output_count: int) -> list[SplitRect]:
        """
        Compute grid cells for the given source dimensions.

        Args:
            width: Source width in pixels.
            height: Source height in pixels.
            output_count: Requested number of cells.

        Returns:
            Grid cells in row-major order.
        """
        count = self.config.clamp_output_count(output_count)
        rows, cols = self._calculate_grid_size(count)

        rects = []
        for index in range(count):
            row = index // cols
            col = index % cols

            x0 = _round_half_up(col / cols * width)
            x1 = _round_half_up((col + 1) / cols * width)
            y0 = _round_half_up(row / rows * height)
            y1 = _round_half_up((row + 1) / rows * height)

            # Sources narrower than the grid get 1px cells that stay in bounds
            x0 = min(x0, width - 1)
            y0 = min(y0, height - 1)

            rects.append(
                SplitRect(
                    index=index,
                    x=x0,
                    y=y0,
                    width=max(1, x1 - x0),
                    height=max(1, y1 - y0),
                )
            )

        return rects

    def _calculate_grid_size(self, count: int) -> tuple[int, int]:
        """
        Calculate grid dimensions for a cell count.

        Args:
            count: Number of cells.

        Returns:
            Tuple of (rows, cols).
        """
        cols = max(1, math.ceil(math.sqrt(count)))
        rows = max(1, math.ceil(count / cols))
        return rows, cols
