from pydantic import BaseModel, Field

from imagesplit.splitting.base import SplitRect, SplitResult


class SplitRectModel(BaseModel):
    """A crop window in source pixel coordinates."""

    index: int = Field(ge=0, description="0-based output port index")
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @classmethod
    def from_rect(cls, rect: SplitRect) -> "SplitRectModel":
        return cls(**rect.to_dict())

    def to_rect(self) -> SplitRect:
        return SplitRect.from_dict(self.model_dump())


class SplitSubmitResponse(BaseModel):
    """Response after submitting an image for splitting."""

    job_id: str = Field(description="Unique identifier for the job")
    message: str = Field(default="Image submitted for splitting")


class SplitResponse(BaseModel):
    """Synchronous split result."""

    rects: list[SplitRectModel]
    source_width: int
    source_height: int
    method: str
    output_count: int = Field(description="Output port count after reconciliation")

    @classmethod
    def from_result(cls, result: SplitResult, output_count: int) -> "SplitResponse":
        return cls(
            rects=[SplitRectModel.from_rect(rect) for rect in result.rects],
            source_width=result.source_width,
            source_height=result.source_height,
            method=result.method,
            output_count=output_count,
        )


class AnalyzeResponse(BaseModel):
    """Background analysis of an image without splitting it."""

    width: int
    height: int
    pixel_count: int
    white_ratio: float
    white_ratio_threshold: float
    max_detect_pixels: int
    will_detect_regions: bool
    reason: str
