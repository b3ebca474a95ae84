"""
Custom RQ worker entry point.

Clears jobs left in "processing" by a previous crash and reports the
split configuration before starting the RQ worker.
"""
from redis import Redis
from rq import Worker

from imagesplit.config import settings
from imagesplit.services.job_service import get_job_service
from imagesplit.worker.handlers import handle_job_failure


def cleanup_stale_jobs() -> None:
    """Clean up any jobs stuck in processing from previous runs."""
    print("[STARTUP] Checking for stale processing jobs...", flush=True)
    job_service = get_job_service()
    cleaned = job_service.cleanup_stale_processing_jobs()

    if cleaned:
        print(f"[STARTUP] Cleaned up stale jobs: {cleaned}", flush=True)
    else:
        print("[STARTUP] No stale processing jobs found", flush=True)


def report_config() -> None:
    """Print the split thresholds this worker will use."""
    config = settings.get_split_config()
    print(
        f"[STARTUP] Split config: white>={config.white_threshold}, "
        f"ratio>={config.white_ratio_threshold}, max_detect_pixels={config.max_detect_pixels}, "
        f"trim_to_content={config.trim_to_content}",
        flush=True,
    )


def main():
    """Run the RQ worker."""
    # Clean up stale jobs from previous crashes
    cleanup_stale_jobs()
    report_config()

    # Connect to Redis
    redis_conn = Redis.from_url(settings.redis_url)

    # Start the worker with exception handler
    worker = Worker(
        queues=["default"],
        connection=redis_conn,
        exception_handlers=[handle_job_failure],
    )

    worker.work()


if __name__ == "__main__":
    main()
