"""
Background heuristic for split decisions.

Region detection is O(pixels) and only pays off on clean white canvases with
gutters between sub-images. Photographic and full-bleed images degenerate to
one giant region, so a cheap sample decides whether to try at all.
"""

from dataclasses import dataclass
from typing import Optional
import numpy as np

from .base import SplitConfig


@dataclass
class BackgroundDecision:
    """Outcome of the background check."""

    should_detect: bool
    """Whether full-resolution region detection should run."""

    white_ratio: float
    """Share of near-white pixels in the sample (0.0 to 1.0)."""

    pixel_count: int
    """Full-resolution pixel count (width * height)."""

    reason: str
    """One of 'detect', 'not_white_background', 'too_many_pixels'."""


class BackgroundHeuristic:
    """Decides from a small sample whether region detection is worth running."""

    def __init__(self, config: Optional[SplitConfig] = None):
        self.config = config or SplitConfig()

    def white_ratio(self, sample: np.ndarray) -> float:
        """
        Fraction of near-white pixels in a sampled buffer.

        Args:
            sample: RGBA sample as numpy array.

        Returns:
            Ratio in [0.0, 1.0]; 0.0 for an empty sample.
        """
        total = sample.shape[0] * sample.shape[1]
        if total == 0:
            return 0.0

        near_white = np.all(sample[..., :3] >= self.config.white_threshold, axis=-1)
        return int(np.count_nonzero(near_white)) / total

    def decide(self, sample: np.ndarray, pixel_count: int) -> BackgroundDecision:
        """
        Decide whether to run region detection.

        Args:
            sample: Downsampled RGBA buffer.
            pixel_count: Full-resolution width * height.

        Returns:
            BackgroundDecision describing the choice.
        """
        ratio = self.white_ratio(sample)

        if ratio < self.config.white_ratio_threshold:
            reason = "not_white_background"
        elif pixel_count > self.config.max_detect_pixels:
            reason = "too_many_pixels"
        else:
            reason = "detect"

        return BackgroundDecision(
            should_detect=reason == "detect",
            white_ratio=ratio,
            pixel_count=pixel_count,
            reason=reason,
        )
