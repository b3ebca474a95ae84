"""
Error taxonomy for image splitting.
"""


class SplitError(Exception):
    """Base class for all splitting failures."""

    pass


class EmptySourceError(SplitError):
    """Raised when no source image was supplied."""

    pass


class DecodeError(SplitError):
    """Raised when the source bytes cannot be rasterized."""

    pass


class CanvasContextError(SplitError):
    """Raised when a drawing surface for sampling cannot be created."""

    pass


class WorkerError(SplitError):
    """Raised when off-thread execution fails (pool or transport issue)."""

    pass


class SplitCancelled(SplitError):
    """Raised when a cooperative cancellation check stops region detection."""

    pass
