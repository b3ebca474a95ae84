from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from imagesplit.schemas.split import SplitRectModel


class JobStatus(str, Enum):
    """Status of a split job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """
    Split job with status and result.

    A job doubles as the persisted node state: only geometry is stored,
    crops are rendered on demand from the stored source bytes.
    """

    id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    filename: str | None = None
    source_ref: str | None = None
    source_path: str | None = None
    requested_output_count: int = 9
    output_count: int = 9
    webhook_url: str | None = None
    rects: list[SplitRectModel] = Field(default_factory=list)
    source_width: int | None = None
    source_height: int | None = None
    method: str | None = None
    error: str | None = None


class JobStatusResponse(BaseModel):
    """Response for job status endpoint."""

    id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    filename: str | None = None
    source_ref: str | None = None
    output_count: int
    rects: list[SplitRectModel] = Field(default_factory=list)
    source_width: int | None = None
    source_height: int | None = None
    method: str | None = None
    error: str | None = None
