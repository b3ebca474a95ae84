import asyncio
import logging
from pathlib import Path

from imagesplit.config import settings
from imagesplit.schemas.job import Job, JobStatus
from imagesplit.services.job_service import JobService, get_job_service
from imagesplit.services.source_service import resolve_source
from imagesplit.services.split_service import SplitService
from imagesplit.services.webhook_service import get_webhook_service
from imagesplit.splitting import InlineExecutor, SplitCancelled, SplitError

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async coroutine in the sync RQ context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def load_job_source(job: Job) -> bytes:
    """
    Load the encoded source bytes of a job.

    Uploaded images are read from their stored path; otherwise the job's
    source reference is resolved.
    """
    if job.source_path:
        return Path(job.source_path).read_bytes()
    return _run_async(resolve_source(job.source_ref))


def _job_deleted(job_service: JobService, job_id: str):
    """Cancellation hook: a deleted job aborts its in-flight split."""

    def should_cancel() -> bool:
        return not job_service.job_exists(job_id)

    return should_cancel


def _notify(job: Job | None) -> None:
    if job and job.webhook_url:
        _run_async(get_webhook_service().deliver(job))


def process_split_job(job_id: str) -> dict:
    """
    Process a split job.

    This is the RQ task that runs in the worker process. The split runs
    inline since RQ already isolates each job in its own work horse.

    Args:
        job_id: The job identifier.

    Returns:
        Dictionary with job result or error.
    """
    job_service = get_job_service()

    # Update status to processing
    job = job_service.update_status(job_id, JobStatus.PROCESSING)
    if job is None:
        logger.error(f"Job not found: {job_id}")
        return {"error": "Job not found"}

    split_service = SplitService(
        InlineExecutor(
            settings.get_split_config(),
            should_cancel=_job_deleted(job_service, job_id),
        )
    )

    try:
        source = load_job_source(job)
        result = split_service.split(source, job.requested_output_count)

    except SplitCancelled:
        logger.info(f"Split cancelled for job {job_id}")
        return {"job_id": job_id, "status": "cancelled"}

    except (SplitError, OSError) as e:
        error_msg = str(e) or type(e).__name__
        logger.error(f"Split failed for job {job_id}: {error_msg}")

        job = job_service.mark_failed(job_id, error_msg)
        _notify(job)
        return {"error": error_msg}

    except Exception as e:
        error_msg = f"Unexpected error: {str(e)}"
        logger.exception(f"Split failed for job {job_id}")

        job = job_service.mark_failed(job_id, error_msg)
        _notify(job)
        return {"error": error_msg}

    job = job_service.set_result(job_id, result)
    if job is None:
        logger.info(f"Job {job_id} was deleted before its result was stored")
        return {"job_id": job_id, "status": "cancelled"}

    logger.info(
        f"Split completed for job {job_id}: {len(result.rects)} rects via {result.method}"
    )
    _notify(job)

    return {
        "job_id": job_id,
        "status": "completed",
        "rects": len(result.rects),
    }
