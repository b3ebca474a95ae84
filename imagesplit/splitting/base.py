"""
Base classes for composite image splitting.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
import numpy as np


@dataclass(frozen=True)
class Region:
    """Bounding box of one connected component of non-background pixels."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    def to_rect(self, index: int) -> "SplitRect":
        """Convert to a crop window with the given output index."""
        return SplitRect(
            index=index,
            x=self.min_x,
            y=self.min_y,
            width=self.width,
            height=self.height,
        )


@dataclass(frozen=True)
class SplitRect:
    """A geometry-only crop window in source pixel coordinates."""

    index: int
    """Stable 0-based output port identity."""

    x: int
    """Left edge in source pixels."""

    y: int
    """Top edge in source pixels."""

    width: int
    """Width in source pixels (always > 0)."""

    height: int
    """Height in source pixels (always > 0)."""

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        """Return (x, y, width, height)."""
        return (self.x, self.y, self.width, self.height)

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Return (left, upper, right, lower) as used by PIL's crop."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def area(self) -> int:
        return self.width * self.height

    def with_index(self, index: int) -> "SplitRect":
        return SplitRect(index=index, x=self.x, y=self.y, width=self.width, height=self.height)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SplitRect":
        return cls(
            index=int(data["index"]),
            x=int(data["x"]),
            y=int(data["y"]),
            width=int(data["width"]),
            height=int(data["height"]),
        )


@dataclass(frozen=True)
class SplitResult:
    """Result of splitting one source image."""

    rects: tuple[SplitRect, ...]
    """Crop windows in reading order; rects[i].index == i."""

    source_width: int
    """Width of the source image in pixels."""

    source_height: int
    """Height of the source image in pixels."""

    method: str
    """Method that produced the rects ('regions' or 'grid')."""

    metadata: dict = field(default_factory=dict, compare=False, hash=False)
    """Diagnostics about the split (white ratio, detection decision)."""

    @property
    def num_rects(self) -> int:
        return len(self.rects)

    @property
    def source_size(self) -> tuple[int, int]:
        """Source size as (width, height)."""
        return (self.source_width, self.source_height)

    def to_dict(self) -> dict:
        """Plain-data payload suitable for persisting into node state."""
        return {
            "rects": [rect.to_dict() for rect in self.rects],
            "source_width": self.source_width,
            "source_height": self.source_height,
            "method": self.method,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SplitResult":
        return cls(
            rects=tuple(SplitRect.from_dict(item) for item in data.get("rects", [])),
            source_width=int(data["source_width"]),
            source_height=int(data["source_height"]),
            method=data.get("method", "grid"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class SplitConfig:
    """Configuration for composite image splitting."""

    white_threshold: int = 250
    """A pixel is near-white when R, G and B are all >= this value."""

    white_ratio_threshold: float = 0.55
    """Minimum near-white share of the sample before detection is attempted."""

    max_detect_pixels: int = 2_000_000
    """Images with more pixels than this skip region detection."""

    sample_size: int = 96
    """Maximum width and height of the background sample."""

    min_region_size: int = 20
    """Regions must be strictly wider and taller than this."""

    row_bucket_height: int = 50
    """Vertical quantization used when sorting regions into reading order."""

    min_output_count: int = 1
    """Lowest allowed output count."""

    max_output_count: int = 50
    """Hard cap on the number of rects returned."""

    default_output_count: int = 9
    """Output count used when none is requested."""

    degenerate_factor: int = 2
    """Detection yielding more than factor x max(requested, default) rects is discarded."""

    trim_to_content: bool = False
    """Trim region rects to their light-background content bounds."""

    cancel_check_interval: int = 65_536
    """Dequeued pixels between cooperative cancellation checks."""

    def clamp_output_count(self, count: Optional[int]) -> int:
        """Clamp a requested output count into [min_output_count, max_output_count]."""
        try:
            value = int(count) if count else self.default_output_count
        except (TypeError, ValueError):
            value = self.default_output_count
        return min(self.max_output_count, max(self.min_output_count, value))


class BaseSplitter(ABC):
    """Abstract base class for rect producers."""

    def __init__(self, config: Optional[SplitConfig] = None):
        """Initialize splitter with configuration."""
        self.config = config or SplitConfig()

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this splitting method."""
        pass

    @abstractmethod
    def split_rects(self, image: np.ndarray, output_count: int) -> list[SplitRect]:
        """
        Compute crop windows for the image.

        Args:
            image: RGBA image as numpy array (H, W, 4).
            output_count: Requested number of outputs.

        Returns:
            Crop windows in reading order.
        """
        pass

    def is_near_white(self, pixels: np.ndarray) -> np.ndarray:
        """
        Boolean mask of near-white pixels.

        Args:
            pixels: Array whose last axis holds at least R, G, B.

        Returns:
            Mask with the last axis dropped.
        """
        return np.all(pixels[..., :3] >= self.config.white_threshold, axis=-1)
