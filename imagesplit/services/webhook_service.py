"""
Completion callbacks for split jobs.

A finished job is announced once to its ``webhook_url``. The body carries
geometry only: rects, source dimensions and the reconciled port count.
Consumers crop the source themselves or fetch ``/split/{job_id}/crops/{index}``.
"""

import logging

import httpx

from imagesplit.config import settings
from imagesplit.schemas.job import Job

logger = logging.getLogger(__name__)


class WebhookService:
    """Posts the split outcome of completed and failed jobs."""

    def __init__(
        self,
        timeout: int | None = None,
        max_retries: int | None = None,
    ):
        """
        Args:
            timeout: Per-attempt request timeout in seconds.
            max_retries: Attempts before giving up on a callback.
        """
        self.timeout = timeout or settings.webhook_timeout
        self.max_retries = max_retries or settings.webhook_max_retries

    def build_payload(self, job: Job) -> dict:
        """
        Notification body for a finished split job.

        Failed jobs report an empty ``rects`` list with ``source_width``,
        ``source_height`` and ``method`` set to None, matching the reset
        job state. ``output_count`` is the port count after reconciliation,
        which may exceed ``len(rects)``.
        """
        return {
            "job_id": job.id,
            "status": job.status.value,
            "filename": job.filename,
            "source_ref": job.source_ref,
            "output_count": job.output_count,
            "rects": [rect.model_dump() for rect in job.rects],
            "source_width": job.source_width,
            "source_height": job.source_height,
            "method": job.method,
            "error": job.error,
        }

    async def deliver(self, job: Job) -> bool:
        """
        POST the split payload to the job's webhook URL.

        Non-2xx responses and transport errors are retried up to
        ``max_retries`` times. A job without a webhook URL counts as
        delivered.

        Returns:
            True once a callback was accepted, False after the last attempt fails.
        """
        if not job.webhook_url:
            return True

        payload = self.build_payload(job)

        for attempt in range(1, self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(job.webhook_url, json=payload)
                    response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.warning(
                    f"Split webhook for job {job.id} rejected (attempt {attempt}/{self.max_retries}): "
                    f"HTTP {e.response.status_code}"
                )
            except httpx.RequestError as e:
                logger.warning(
                    f"Split webhook for job {job.id} unreachable (attempt {attempt}/{self.max_retries}): {e}"
                )
            else:
                logger.info(
                    f"Split webhook delivered for job {job.id} "
                    f"({job.status.value}, {len(job.rects)} rects)"
                )
                return True

        logger.error(f"Split webhook for job {job.id} dropped after {self.max_retries} attempts")
        return False


_webhook_service: WebhookService | None = None


def get_webhook_service() -> WebhookService:
    """Get or create the webhook service singleton."""
    global _webhook_service
    if _webhook_service is None:
        _webhook_service = WebhookService()
    return _webhook_service
