import logging
import uuid
from datetime import datetime

import redis

from imagesplit.config import settings
from imagesplit.schemas.job import Job, JobStatus
from imagesplit.services.node_state import apply_split_failure, apply_split_result
from imagesplit.splitting import SplitResult

logger = logging.getLogger(__name__)

# Jobs stuck in "processing" for longer than this are considered stale
STALE_PROCESSING_THRESHOLD_SECONDS = 300  # 5 minutes


class JobService:
    """
    Service for managing split jobs in Redis.

    Handles job creation, status updates, and result storage.
    """

    JOB_PREFIX = "split:job:"

    def __init__(self, redis_client: redis.Redis | None = None):
        """
        Initialize the job service.

        Args:
            redis_client: Redis client instance. Creates one if not provided.
        """
        self.redis = redis_client or redis.Redis.from_url(settings.redis_url)

    def _job_key(self, job_id: str) -> str:
        """Generate Redis key for a job."""
        return f"{self.JOB_PREFIX}{job_id}"

    def _save(self, job: Job) -> Job:
        self.redis.setex(
            self._job_key(job.id),
            settings.job_result_ttl,
            job.model_dump_json(),
        )
        return job

    def create_job(
        self,
        filename: str | None = None,
        source_ref: str | None = None,
        source_path: str | None = None,
        output_count: int | None = None,
        current_output_count: int | None = None,
        webhook_url: str | None = None,
    ) -> Job:
        """
        Create a new split job.

        Args:
            filename: Original filename of the uploaded image.
            source_ref: Normalized image reference, when not uploaded.
            source_path: Local path of the stored source bytes.
            output_count: Requested output count.
            current_output_count: Output port count before the split.
            webhook_url: Optional webhook URL to call on completion.

        Returns:
            The created job.
        """
        split_config = settings.get_split_config()
        requested = split_config.clamp_output_count(output_count)

        now = datetime.utcnow()
        job = Job(
            id=str(uuid.uuid4()),
            status=JobStatus.PENDING,
            created_at=now,
            updated_at=now,
            filename=filename,
            source_ref=source_ref,
            source_path=source_path,
            requested_output_count=requested,
            output_count=split_config.clamp_output_count(current_output_count or requested),
            webhook_url=webhook_url,
        )

        return self._save(job)

    def get_job(self, job_id: str) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job identifier.

        Returns:
            The job if found, None otherwise.
        """
        data = self.redis.get(self._job_key(job_id))
        if data is None:
            return None
        return Job.model_validate_json(data)

    def job_exists(self, job_id: str) -> bool:
        return bool(self.redis.exists(self._job_key(job_id)))

    def update_job(self, job: Job) -> Job:
        """Persist a job that was modified in place."""
        return self._save(job)

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error: str | None = None,
    ) -> Job | None:
        """
        Update a job's status.

        Failing a job goes through the failure reset, so no stale rects
        survive.

        Args:
            job_id: The job identifier.
            status: New status.
            error: Optional error message (for failed status).

        Returns:
            The updated job, or None if not found.
        """
        job = self.get_job(job_id)
        if job is None:
            return None

        if status == JobStatus.FAILED:
            apply_split_failure(job, error or "Split failed")
        else:
            job.status = status
            job.updated_at = datetime.utcnow()
            if error:
                job.error = error

        return self._save(job)

    def set_result(self, job_id: str, result: SplitResult) -> Job | None:
        """
        Set the result of a split job.

        Args:
            job_id: The job identifier.
            result: Split result to record.

        Returns:
            The updated job, or None if not found.
        """
        job = self.get_job(job_id)
        if job is None:
            return None

        apply_split_result(job, result, settings.get_split_config())
        return self._save(job)

    def mark_failed(self, job_id: str, error: str) -> Job | None:
        """Reset a job to an empty failed state."""
        return self.update_status(job_id, JobStatus.FAILED, error=error)

    def delete_job(self, job_id: str) -> bool:
        """
        Delete a job.

        Args:
            job_id: The job identifier.

        Returns:
            True if deleted, False if not found.
        """
        return self.redis.delete(self._job_key(job_id)) > 0

    def cleanup_stale_processing_jobs(self) -> list[str]:
        """
        Clean up jobs stuck in "processing" status.

        This handles cases where the worker crashed mid-split
        and the job status was never updated to failed.

        Returns:
            List of job IDs that were cleaned up.
        """
        cleaned = []

        for key in self.redis.scan_iter(f"{self.JOB_PREFIX}*"):
            data = self.redis.get(key)
            if data is None:
                continue

            try:
                job = Job.model_validate_json(data)
            except ValueError as e:
                logger.error(f"Unreadable job record {key}: {e}")
                continue

            if job.status != JobStatus.PROCESSING:
                continue

            age_seconds = (datetime.utcnow() - job.updated_at).total_seconds()
            if age_seconds > STALE_PROCESSING_THRESHOLD_SECONDS:
                logger.warning(
                    f"Cleaning up stale processing job {job.id} "
                    f"(stuck for {age_seconds:.0f}s)"
                )
                self.mark_failed(job.id, "Job timed out - worker may have crashed")
                cleaned.append(job.id)

        return cleaned


# Singleton instance
_job_service: JobService | None = None


def get_job_service() -> JobService:
    """Get or create the job service singleton."""
    global _job_service
    if _job_service is None:
        _job_service = JobService()
    return _job_service
