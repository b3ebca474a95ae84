import shutil
from pathlib import Path

import redis
from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from rq import Queue

from imagesplit.config import settings
from imagesplit.schemas.job import Job, JobStatus, JobStatusResponse
from imagesplit.schemas.split import AnalyzeResponse, SplitResponse, SplitSubmitResponse
from imagesplit.services.job_service import get_job_service
from imagesplit.services.source_service import normalize_source_ref, resolve_source
from imagesplit.services.split_service import get_split_service
from imagesplit.splitting import DecodeError, EmptySourceError, SplitError, reconcile_output_count
from imagesplit.utils.file_validation import (
    EXTENSIONS,
    ValidationError,
    validate_filename,
    validate_image_upload,
)
from imagesplit.worker.tasks import process_split_job

router = APIRouter(prefix="/split", tags=["Split"])

# Uploaded sources are stored under this storage-key prefix
UPLOAD_KEY_PREFIX = "uploads/split"


def get_queue() -> Queue:
    """Get RQ queue for job submission."""
    redis_client = redis.Redis.from_url(settings.redis_url)
    return Queue(connection=redis_client)


def split_error_to_http(e: SplitError) -> HTTPException:
    """Map engine errors onto HTTP errors."""
    if isinstance(e, (EmptySourceError, DecodeError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Split failed: {e}",
    )


def _require_one_source(file: UploadFile | None, source: str | None) -> None:
    if file is None and not (source or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either an image file or a source reference",
        )
    if file is not None and (source or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide only one of file or source",
        )


def _validate_upload(file: UploadFile) -> tuple[str, str]:
    """Validate an upload and return (safe filename, image format)."""
    try:
        safe_filename = validate_filename(file.filename or "image.png")
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid filename: {e}",
        )

    try:
        image_format = validate_image_upload(file.file, max_size_mb=settings.max_upload_mb)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid image file: {e}",
        )

    return safe_filename, image_format


async def _read_source(file: UploadFile | None, source: str | None) -> bytes:
    """Load source bytes from an upload or a reference."""
    _require_one_source(file, source)

    if file is not None:
        _validate_upload(file)
        return await file.read()

    try:
        return await resolve_source(source)
    except SplitError as e:
        raise split_error_to_http(e)


def _get_job_or_404(job_id: str) -> Job:
    job = get_job_service().get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )
    return job


@router.post(
    "",
    response_model=SplitSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_split(
    file: UploadFile | None = File(default=None, description="Image file to split"),
    source: str | None = Form(default=None, description="Image reference (storage key, proxy path, URL or data URL)"),
    output_count: int = Form(default=9, description="Requested number of outputs (1-50)"),
    current_output_count: int | None = Form(default=None, description="Output port count before the split"),
    webhook_url: str | None = Form(default=None, description="Webhook URL for completion notification"),
):
    """
    Submit an image for splitting.

    The image will be split asynchronously. Use the returned job_id
    to poll for the rects or provide a webhook_url for notification.
    """
    _require_one_source(file, source)

    safe_filename = None
    image_format = None
    if file is not None:
        safe_filename, image_format = _validate_upload(file)

    job_service = get_job_service()
    job = job_service.create_job(
        filename=safe_filename,
        source_ref=normalize_source_ref(source) if file is None else None,
        output_count=output_count,
        current_output_count=current_output_count,
        webhook_url=webhook_url,
    )

    if file is not None:
        # Save uploaded file under a storage key so the job stays addressable
        key = f"{UPLOAD_KEY_PREFIX}/{job.id}{EXTENSIONS[image_format]}"
        image_path = settings.uploads_dir / key
        image_path.parent.mkdir(parents=True, exist_ok=True)

        file.file.seek(0)  # Reset after validation
        with open(image_path, "wb") as buffer:
            shutil.copyfileobj(file.file, buffer)

        job.source_ref = key
        job.source_path = str(image_path)
        job_service.update_job(job)

    queue = get_queue()
    queue.enqueue(
        process_split_job,
        job.id,
        job_timeout=settings.job_timeout,
    )

    return SplitSubmitResponse(
        job_id=job.id,
        message=f"Image submitted for splitting into up to {job.requested_output_count} outputs",
    )


@router.post(
    "/sync",
    response_model=SplitResponse,
)
async def split_sync(
    file: UploadFile | None = File(default=None, description="Image file to split"),
    source: str | None = Form(default=None, description="Image reference (storage key, proxy path, URL or data URL)"),
    output_count: int = Form(default=9, description="Requested number of outputs (1-50)"),
    current_output_count: int | None = Form(default=None, description="Output port count before the split"),
):
    """
    Split an image and return the rects directly.

    Runs on the API's own executor; intended for small images.
    """
    data = await _read_source(file, source)
    split_service = get_split_service()

    try:
        result = await run_in_threadpool(split_service.split, data, output_count)
    except SplitError as e:
        raise split_error_to_http(e)
    except TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Split timed out",
        )

    config = split_service.config
    ports = reconcile_output_count(
        current_output_count or config.clamp_output_count(output_count),
        len(result.rects),
        config,
    )
    return SplitResponse.from_result(result, ports)


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
)
async def analyze_image(
    file: UploadFile | None = File(default=None, description="Image file to analyze"),
    source: str | None = Form(default=None, description="Image reference"),
):
    """
    Report whether region detection would run for an image.

    Returns the sampled white ratio and the background decision.
    """
    data = await _read_source(file, source)

    try:
        analysis = await run_in_threadpool(get_split_service().analyze, data)
    except SplitError as e:
        raise split_error_to_http(e)

    return AnalyzeResponse(**analysis)


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
)
async def get_job_status(job_id: str):
    """
    Get the status and rects of a split job.

    Poll this endpoint to check if the split is complete.
    """
    job = _get_job_or_404(job_id)

    return JobStatusResponse(
        id=job.id,
        status=job.status,
        created_at=job.created_at,
        updated_at=job.updated_at,
        filename=job.filename,
        source_ref=job.source_ref,
        output_count=job.output_count,
        rects=job.rects,
        source_width=job.source_width,
        source_height=job.source_height,
        method=job.method,
        error=job.error,
    )


@router.get(
    "/{job_id}/crops/{index}",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
async def get_crop(job_id: str, index: int):
    """
    Render the crop for one output port.

    Crops are cut on demand from the job's source image.
    """
    job = _get_job_or_404(job_id)

    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is {job.status.value}",
        )
    if not 0 <= index < len(job.rects):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No crop at index {index}",
        )

    split_service = get_split_service()
    try:
        if job.source_path:
            data = Path(job.source_path).read_bytes()
        else:
            data = await resolve_source(job.source_ref)
        content = await run_in_threadpool(split_service.render_crop, data, job.rects[index].to_rect())
    except FileNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="Source image is no longer available",
        )
    except SplitError as e:
        raise split_error_to_http(e)

    return Response(content=content, media_type=split_service.renderer.content_type)


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_job(job_id: str):
    """
    Delete a split job and its stored upload.

    A split still running for the job is cancelled.
    """
    job = _get_job_or_404(job_id)
    get_job_service().delete_job(job_id)

    if job.source_path:
        Path(job.source_path).unlink(missing_ok=True)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
