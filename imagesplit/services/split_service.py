import logging

from imagesplit.config import settings
from imagesplit.splitting import (
    CropRenderer,
    SplitExecutor,
    SplitOrchestrator,
    SplitRect,
    SplitResult,
    create_executor,
)
from imagesplit.splitting.sampler import ImageSource

logger = logging.getLogger(__name__)


class SplitService:
    """
    Runs splits for the API and the worker.

    Wraps the execution strategy chosen at startup and the crop renderer,
    both configured from settings.
    """

    def __init__(self, executor: SplitExecutor | None = None):
        """
        Initialize the split service.

        Args:
            executor: Execution strategy. Picked by capability probe if not provided.
        """
        self.config = settings.get_split_config()
        self.executor = executor or create_executor(
            self.config,
            use_worker=settings.execution.use_worker,
            max_workers=settings.execution.max_workers,
        )
        self.renderer = CropRenderer()
        logger.info(f"Split service using '{self.executor.name}' execution")

    def split(self, source: ImageSource, output_count: int | None) -> SplitResult:
        """
        Split an image, waiting at most the configured worker timeout.

        Raises:
            SplitError: If the split fails.
            TimeoutError: If the split does not finish in time.
        """
        return self.executor.split(
            source,
            output_count,
            timeout=settings.execution.worker_timeout,
        )

    def analyze(self, source: ImageSource) -> dict:
        """Report the background decision for an image."""
        return SplitOrchestrator(self.config).analyze(source)

    def render_crop(self, source: ImageSource, rect: SplitRect) -> bytes:
        """Render the crop under one rect."""
        return self.renderer.render(source, rect)

    def shutdown(self) -> None:
        self.executor.shutdown()


# Singleton instance
_split_service: SplitService | None = None


def get_split_service() -> SplitService:
    """Get or create the split service singleton."""
    global _split_service
    if _split_service is None:
        _split_service = SplitService()
    return _split_service


def shutdown_split_service() -> None:
    """Release the singleton's executor, if one was created."""
    global _split_service
    if _split_service is not None:
        _split_service.shutdown()
        _split_service = None
