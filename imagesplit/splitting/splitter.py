"""
Split orchestrator for composite images.

Samples the background, runs region detection when it is worth it, and
falls back to a deterministic grid when detection is skipped or its
result is unusable.
"""

import logging
from typing import Callable, Optional

from .base import SplitConfig, SplitRect, SplitResult
from .grid import GridSplitter
from .heuristic import BackgroundHeuristic
from .regions import RegionSplitter
from .sampler import ImageSource, PixelSampler, load_image
from .trimming import ContentTrimmer

logger = logging.getLogger(__name__)


class SplitOrchestrator:
    """
    Public entry point of the decomposition engine.

    Split strategy:
    1. Background heuristic - Sample the image and decide whether to detect
    2. Region detection - Flood fill non-white components
    3. Grid - Fallback when detection is skipped, empty or degenerate
    """

    def __init__(
        self,
        config: Optional[SplitConfig] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Shared configuration for all components.
            should_cancel: Optional cooperative cancellation hook for
                region detection.
        """
        self.config = config or SplitConfig()

        self.sampler = PixelSampler(self.config.sample_size)
        self.heuristic = BackgroundHeuristic(self.config)
        self.region_splitter = RegionSplitter(self.config, should_cancel=should_cancel)
        self.grid_splitter = GridSplitter(self.config)
        self.trimmer = ContentTrimmer()

    def split(
        self,
        source: ImageSource,
        requested_output_count: Optional[int] = None,
    ) -> SplitResult:
        """
        Split a composite image into crop windows.

        Args:
            source: Encoded bytes, path, PIL image or pixel array.
            requested_output_count: Desired number of outputs; only the grid
                fallback honors it exactly.

        Returns:
            SplitResult with at most max_output_count rects.

        Raises:
            EmptySourceError: If no source was supplied.
            DecodeError: If the source cannot be decoded.
            CanvasContextError: If the sample surface cannot be created.
        """
        image = load_image(source)
        height, width = image.shape[:2]
        count = self.config.clamp_output_count(requested_output_count)

        decision = self.heuristic.decide(self.sampler.sample(image), width * height)
        logger.debug(
            f"Background check for {width}x{height}: white_ratio={decision.white_ratio:.3f}, "
            f"decision={decision.reason}"
        )

        rects: list[SplitRect] = []
        if decision.should_detect:
            rects = self.region_splitter.split_rects(image, count)

        method = self.region_splitter.name
        if self._is_degenerate(rects, count):
            if decision.should_detect:
                logger.info(
                    f"Region detection found {len(rects)} regions for count {count}, "
                    f"falling back to grid"
                )
            rects = self.grid_splitter.split_rects(image, count)
            method = self.grid_splitter.name
        elif self.config.trim_to_content:
            rects = self.trimmer.trim_rects(image, rects)

        rects = rects[: self.config.max_output_count]

        return SplitResult(
            rects=tuple(rects),
            source_width=width,
            source_height=height,
            method=method,
            metadata={
                "requested_count": count,
                "white_ratio": decision.white_ratio,
                "detection": decision.reason,
            },
        )

    def analyze(self, source: ImageSource) -> dict:
        """
        Report the background decision for an image without splitting it.

        Args:
            source: Image to analyze.

        Returns:
            Dictionary with dimensions and the heuristic outcome.
        """
        image = load_image(source)
        height, width = image.shape[:2]
        decision = self.heuristic.decide(self.sampler.sample(image), width * height)

        return {
            "width": width,
            "height": height,
            "pixel_count": decision.pixel_count,
            "white_ratio": decision.white_ratio,
            "white_ratio_threshold": self.config.white_ratio_threshold,
            "max_detect_pixels": self.config.max_detect_pixels,
            "will_detect_regions": decision.should_detect,
            "reason": decision.reason,
        }

    def _is_degenerate(self, rects: list[SplitRect], count: int) -> bool:
        """Whole-image blobs and speckle fields are both unusable."""
        budget = min(
            self.config.max_output_count,
            max(count, self.config.default_output_count),
        )
        return len(rects) <= 1 or len(rects) > self.config.degenerate_factor * budget


def reconcile_output_count(
    current_output_count: Optional[int],
    rect_count: int,
    config: Optional[SplitConfig] = None,
) -> int:
    """
    Output port count after a split.

    Ports only grow automatically, so a manually widened port set survives
    a split that produced fewer rects.

    Args:
        current_output_count: Port count before the split.
        rect_count: Number of rects the split produced.
        config: Split configuration for the bounds.

    Returns:
        max(current, rect_count) clamped to [min_output_count, max_output_count].
    """
    config = config or SplitConfig()
    current = int(current_output_count or 0)
    return min(config.max_output_count, max(config.min_output_count, current, rect_count))


def create_splitter(
    white_ratio_threshold: float = 0.55,
    max_detect_pixels: int = 2_000_000,
    **kwargs,
) -> SplitOrchestrator:
    """
    Factory function to create a configured SplitOrchestrator.

    Args:
        white_ratio_threshold: Minimum near-white share for detection.
        max_detect_pixels: Pixel count above which detection is skipped.
        **kwargs: Additional SplitConfig options.

    Returns:
        Configured SplitOrchestrator.
    """
    config = SplitConfig(
        white_ratio_threshold=white_ratio_threshold,
        max_detect_pixels=max_detect_pixels,
        **kwargs,
    )
    return SplitOrchestrator(config)
