"""
RQ exception and failure handlers.

These handlers are called when split tasks fail outside the task's own
error handling, including when the work horse is killed mid-split.
"""
import logging

from rq.job import Job

from imagesplit.services.job_service import get_job_service

logger = logging.getLogger(__name__)

SPLIT_TASK = "imagesplit.worker.tasks.process_split_job"


def describe_failure(args: tuple) -> str:
    """
    Build an error message from the arguments RQ passes to a handler.

    RQ calls handlers with (connection, type, value, traceback) for raised
    exceptions and with (connection, exc_instance) for some cleanups.
    """
    if len(args) < 2:
        return "Job failed unexpectedly"

    exc_info = args[1]
    if isinstance(exc_info, type) and issubclass(exc_info, BaseException):
        exc_value = args[2] if len(args) > 2 else None
        return f"{exc_info.__name__}: {exc_value}"
    if isinstance(exc_info, BaseException):
        return f"{type(exc_info).__name__}: {exc_info}"
    return f"Job failed: {exc_info}"


def handle_job_failure(job: Job, *args, **kwargs) -> bool:
    """
    Handle split task failure - called when the task raises or the worker dies.

    Args:
        job: The failed RQ job.
        *args: Additional arguments (connection, exc_info, etc.)

    Returns:
        False to indicate the exception was handled and should not propagate.
    """
    error_msg = describe_failure(args)
    logger.error(f"Job {job.id} failed: {error_msg}")

    # process_split_job(job_id)
    if job.func_name == SPLIT_TASK and job.args:
        _mark_job_failed(job.args[0], error_msg)

    return False


def _mark_job_failed(job_id: str, error_msg: str) -> None:
    """
    Reset a split job to the failed state.

    Args:
        job_id: The split job ID.
        error_msg: Error message to store.
    """
    job = get_job_service().mark_failed(job_id, error_msg)
    if job is None:
        logger.warning(f"Split job {job_id} no longer exists, nothing to mark failed")
    else:
        logger.info(f"Marked split job {job_id} as failed: {error_msg}")
