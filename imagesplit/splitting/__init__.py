"""
Composite image decomposition engine.

Takes one raster image, typically an AI-generated grid of sub-images, and
produces axis-aligned, non-overlapping rects that crop it into individual
images, using background sampling, 4-connected region detection and a
deterministic grid fallback.
"""

from .base import BaseSplitter, Region, SplitConfig, SplitRect, SplitResult
from .crops import CropRenderer
from .errors import (
    CanvasContextError,
    DecodeError,
    EmptySourceError,
    SplitCancelled,
    SplitError,
    WorkerError,
)
from .executor import (
    FallbackExecutor,
    InlineExecutor,
    SplitExecutor,
    WorkerExecutor,
    create_executor,
    probe_worker_support,
)
from .grid import GridSplitter
from .heuristic import BackgroundDecision, BackgroundHeuristic
from .regions import RegionSplitter
from .sampler import PixelSampler, load_image
from .splitter import SplitOrchestrator, create_splitter, reconcile_output_count
from .trimming import ContentTrimmer

__all__ = [
    "BaseSplitter",
    "Region",
    "SplitConfig",
    "SplitRect",
    "SplitResult",
    "CropRenderer",
    "SplitError",
    "DecodeError",
    "EmptySourceError",
    "CanvasContextError",
    "WorkerError",
    "SplitCancelled",
    "SplitExecutor",
    "InlineExecutor",
    "WorkerExecutor",
    "FallbackExecutor",
    "create_executor",
    "probe_worker_support",
    "GridSplitter",
    "BackgroundDecision",
    "BackgroundHeuristic",
    "RegionSplitter",
    "PixelSampler",
    "load_image",
    "SplitOrchestrator",
    "create_splitter",
    "reconcile_output_count",
    "ContentTrimmer",
]
