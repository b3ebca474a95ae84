"""
Connected region detection for composite images.

Finds the bounding boxes of 4-connected non-white components with a
breadth-first flood fill, drops noise, and orders the survivors in
reading order.
"""

import logging
from collections import deque
from typing import Callable, Optional
import numpy as np

from .base import BaseSplitter, Region, SplitConfig, SplitRect
from .errors import SplitCancelled

logger = logging.getLogger(__name__)


class RegionSplitter(BaseSplitter):
    """
    Splits a composite image along the white gutters between sub-images.

    Every 4-connected component of non-white pixels becomes a candidate
    region. Components no wider or taller than ``min_region_size`` are
    treated as anti-aliasing specks and discarded.
    """

    def __init__(
        self,
        config: Optional[SplitConfig] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize the region splitter.

        Args:
            config: Split configuration.
            should_cancel: Optional callable polled during the flood fill;
                returning True aborts detection with SplitCancelled.
        """
        super().__init__(config)
        self.should_cancel = should_cancel

    @property
    def name(self) -> str:
        return "regions"

    def split_rects(self, image: np.ndarray, output_count: int) -> list[SplitRect]:
        """
        Convert detected regions 1:1 into crop windows.

        The requested count does not limit detection; the orchestrator
        decides whether the result is usable.
        """
        regions = self.detect_regions(image)
        return [region.to_rect(index) for index, region in enumerate(regions)]

    def detect_regions(self, image: np.ndarray) -> list[Region]:
        """
        Find non-white regions in reading order.

        Args:
            image: RGBA image as numpy array.

        Returns:
            Regions sorted top-to-bottom, then left-to-right.

        Raises:
            SplitCancelled: If the cancellation hook fires mid-fill.
        """
        height, width = image.shape[:2]
        # One byte per pixel, indexed y * width + x
        non_white = (~self.is_near_white(image)).ravel().tobytes()
        visited = bytearray(width * height)

        regions = []
        dequeued = 0
        check_interval = max(1, self.config.cancel_check_interval)

        for start in np.flatnonzero(np.frombuffer(non_white, dtype=np.uint8)).tolist():
            if visited[start]:
                continue

            visited[start] = 1
            queue = deque([start])
            # Row-major scan: the seed always lies on the component's top row
            min_y, min_x = divmod(start, width)
            max_x, max_y = min_x, min_y

            while queue:
                idx = queue.popleft()
                cy, cx = divmod(idx, width)

                if cx < min_x:
                    min_x = cx
                elif cx > max_x:
                    max_x = cx
                if cy > max_y:
                    max_y = cy

                if cx > 0:
                    n_idx = idx - 1
                    if non_white[n_idx] and not visited[n_idx]:
                        visited[n_idx] = 1
                        queue.append(n_idx)
                if cx + 1 < width:
                    n_idx = idx + 1
                    if non_white[n_idx] and not visited[n_idx]:
                        visited[n_idx] = 1
                        queue.append(n_idx)
                if cy > 0:
                    n_idx = idx - width
                    if non_white[n_idx] and not visited[n_idx]:
                        visited[n_idx] = 1
                        queue.append(n_idx)
                if cy + 1 < height:
                    n_idx = idx + width
                    if non_white[n_idx] and not visited[n_idx]:
                        visited[n_idx] = 1
                        queue.append(n_idx)

                dequeued += 1
                if self.should_cancel is not None and dequeued % check_interval == 0:
                    if self.should_cancel():
                        logger.info(f"Region detection cancelled after {dequeued} pixels")
                        raise SplitCancelled("Region detection was cancelled")

            region = Region(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)
            if not self._is_noise(region):
                regions.append(region)

        regions.sort(key=self._reading_order_key)

        logger.debug(
            f"Detected {len(regions)} regions in {width}x{height} image "
            f"({dequeued} non-white pixels)"
        )
        return regions

    def _is_noise(self, region: Region) -> bool:
        min_size = self.config.min_region_size
        return region.width <= min_size or region.height <= min_size

    def _reading_order_key(self, region: Region) -> tuple[int, int]:
        # Sub-images placed in a row rarely share an exact top edge
        return (region.min_y // self.config.row_bucket_height, region.min_x)
