"""
Execution strategies for the split engine.

The same orchestrator runs either in a worker process (preferred, keeps the
calling thread responsive) or inline on the calling thread. Both return a
``concurrent.futures.Future`` resolving to a SplitResult and produce
identical results for identical inputs.
"""

import logging
import multiprocessing
import pickle
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import Callable, Optional

from .base import SplitConfig, SplitResult
from .errors import CanvasContextError, SplitError, WorkerError
from .sampler import ImageSource
from .splitter import SplitOrchestrator

logger = logging.getLogger(__name__)

# Failures of the process transport rather than of the split itself
TRANSPORT_ERRORS = (BrokenProcessPool, pickle.PicklingError, EOFError, OSError)


def _split_in_worker(source: ImageSource, output_count: Optional[int], config: SplitConfig) -> dict:
    """Run one split in a worker process and return plain data."""
    return SplitOrchestrator(config).split(source, output_count).to_dict()


class SplitExecutor(ABC):
    """Runs splits and hands back futures."""

    def __init__(self, config: Optional[SplitConfig] = None):
        self.config = config or SplitConfig()

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this execution strategy."""
        pass

    @abstractmethod
    def submit(self, source: ImageSource, output_count: Optional[int]) -> Future:
        """
        Schedule a split.

        Args:
            source: Encoded bytes, path, PIL image or pixel array.
            output_count: Requested output count.

        Returns:
            Future resolving to a SplitResult.
        """
        pass

    def split(
        self,
        source: ImageSource,
        output_count: Optional[int],
        timeout: Optional[float] = None,
    ) -> SplitResult:
        """Submit a split and wait for its result."""
        return self.submit(source, output_count).result(timeout=timeout)

    def shutdown(self) -> None:
        """Release any background resources."""
        pass


class InlineExecutor(SplitExecutor):
    """Runs the split synchronously on the calling thread."""

    def __init__(
        self,
        config: Optional[SplitConfig] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ):
        super().__init__(config)
        self.should_cancel = should_cancel

    @property
    def name(self) -> str:
        return "inline"

    def submit(self, source: ImageSource, output_count: Optional[int]) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()
        try:
            result = SplitOrchestrator(self.config, should_cancel=self.should_cancel).split(
                source, output_count
            )
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        return future


class WorkerExecutor(SplitExecutor):
    """
    Runs splits in a process pool.

    Sources cross the process boundary as picklable data (bytes, paths or
    decoded arrays) and results come back as the plain ``to_dict`` payload.
    """

    def __init__(self, config: Optional[SplitConfig] = None, max_workers: Optional[int] = None):
        super().__init__(config)
        self.max_workers = max_workers
        self._pool: Optional[ProcessPoolExecutor] = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "worker"

    def _ensure_pool(self) -> ProcessPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = ProcessPoolExecutor(
                    max_workers=self.max_workers,
                    mp_context=multiprocessing.get_context("spawn"),
                )
                logger.info(f"Started split worker pool (max_workers={self.max_workers or 'auto'})")
            return self._pool

    def _reset_pool(self) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)

    def submit(self, source: ImageSource, output_count: Optional[int]) -> Future:
        outer: Future = Future()

        try:
            inner = self._ensure_pool().submit(_split_in_worker, source, output_count, self.config)
        except (BrokenProcessPool, RuntimeError, OSError) as e:
            logger.warning(f"Split worker pool unavailable: {e}")
            self._reset_pool()
            outer.set_exception(WorkerError(f"Split worker unavailable: {e}"))
            return outer

        def _relay(done: Future) -> None:
            if outer.done():
                return
            if done.cancelled():
                outer.cancel()
                return

            exc = done.exception()
            if exc is None:
                outer.set_result(SplitResult.from_dict(done.result()))
            elif isinstance(exc, SplitError):
                outer.set_exception(exc)
            elif isinstance(exc, TRANSPORT_ERRORS):
                if isinstance(exc, BrokenProcessPool):
                    self._reset_pool()
                outer.set_exception(WorkerError(f"Split worker failed: {type(exc).__name__}: {exc}"))
            else:
                outer.set_exception(exc)

        def _forward_cancel(done: Future) -> None:
            if done.cancelled():
                inner.cancel()

        outer.add_done_callback(_forward_cancel)
        inner.add_done_callback(_relay)
        return outer

    def shutdown(self) -> None:
        self._reset_pool()


class FallbackExecutor(SplitExecutor):
    """
    Prefers a primary strategy and retries once on a fallback.

    Only environment failures (WorkerError, CanvasContextError) trigger the
    retry; decode and empty-source errors are the caller's to handle.
    """

    def __init__(self, primary: SplitExecutor, fallback: SplitExecutor, max_pending: int = 4):
        super().__init__(fallback.config)
        self.primary = primary
        self.fallback = fallback
        self._dispatcher = ThreadPoolExecutor(
            max_workers=max_pending,
            thread_name_prefix="split-dispatch",
        )

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"

    def submit(self, source: ImageSource, output_count: Optional[int]) -> Future:
        return self._dispatcher.submit(self.split, source, output_count)

    def split(
        self,
        source: ImageSource,
        output_count: Optional[int],
        timeout: Optional[float] = None,
    ) -> SplitResult:
        try:
            return self.primary.split(source, output_count, timeout=timeout)
        except (WorkerError, CanvasContextError) as e:
            logger.warning(f"{self.primary.name} split failed ({e}), retrying with {self.fallback.name}")
            return self.fallback.split(source, output_count, timeout=timeout)

    def shutdown(self) -> None:
        self._dispatcher.shutdown(wait=False)
        self.primary.shutdown()
        self.fallback.shutdown()


def probe_worker_support() -> bool:
    """
    Check whether worker processes can be used in this environment.

    Process pools need working semaphores, which some sandboxes and
    serverless runtimes lack.
    """
    try:
        context = multiprocessing.get_context("spawn")
        context.Lock()
    except (ImportError, OSError, NotImplementedError, ValueError) as e:
        logger.info(f"Worker execution unavailable, using inline splits: {e}")
        return False
    return True


def create_executor(
    config: Optional[SplitConfig] = None,
    use_worker: bool = True,
    max_workers: Optional[int] = None,
) -> SplitExecutor:
    """
    Factory function picking an execution strategy.

    Args:
        config: Split configuration shared by both strategies.
        use_worker: Prefer a worker process pool when supported.
        max_workers: Worker pool size (None = CPU count).

    Returns:
        A worker executor with inline fallback, or an inline executor.
    """
    config = config or SplitConfig()
    inline = InlineExecutor(config)

    if use_worker and probe_worker_support():
        return FallbackExecutor(WorkerExecutor(config, max_workers=max_workers), inline)

    return inline
