from pathlib import Path
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from imagesplit.splitting.base import SplitConfig


class SplittingConfig(BaseModel):
    """Configuration for composite image splitting."""

    white_threshold: int = Field(default=250, ge=0, le=255, description="Channel level at or above which a pixel counts as white")
    white_ratio_threshold: float = Field(default=0.55, ge=0.0, le=1.0, description="Minimum near-white share of the sample for region detection")
    max_detect_pixels: int = Field(default=2_000_000, gt=0, description="Images above this pixel count skip region detection")
    sample_size: int = Field(default=96, gt=0, description="Maximum width and height of the background sample")
    min_region_size: int = Field(default=20, ge=0, description="Regions must be strictly wider and taller than this")
    row_bucket_height: int = Field(default=50, gt=0, description="Vertical quantization for reading order")
    max_output_count: int = Field(default=50, gt=0, description="Hard cap on returned rects")
    default_output_count: int = Field(default=9, gt=0, description="Output count when none is requested")
    degenerate_factor: int = Field(default=2, gt=0, description="Detection yielding more than factor x count rects falls back to grid")
    trim_to_content: bool = Field(default=False, description="Trim detected regions to their content bounds")
    cancel_check_interval: int = Field(default=65_536, gt=0, description="Pixels between cancellation checks during flood fill")

    def to_split_config(self) -> SplitConfig:
        """Build the engine-level configuration."""
        return SplitConfig(**self.model_dump())


class ExecutionConfig(BaseModel):
    """Configuration for where splits run."""

    use_worker: bool = Field(default=True, description="Prefer a worker process pool over inline execution")
    max_workers: int | None = Field(default=None, gt=0, description="Worker pool size (None = CPU count)")
    worker_timeout: float = Field(default=60.0, gt=0, description="Seconds to wait for a synchronous split")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    # Redis Settings
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    # Paths (mounted volumes)
    uploads_dir: Path = Path("/app/data/uploads")

    # Job Settings
    job_timeout: int = 300  # 5 minutes
    job_result_ttl: int = 86400  # 1 day

    # Upload / source fetch settings
    max_upload_mb: int = 50
    fetch_timeout: float = 30.0

    # Webhook Settings
    webhook_timeout: int = 30
    webhook_max_retries: int = 3

    splitting: SplittingConfig = SplittingConfig()
    execution: ExecutionConfig = ExecutionConfig()

    def get_split_config(self) -> SplitConfig:
        """Get the engine configuration for splits."""
        import logging
        logger = logging.getLogger(__name__)
        logger.debug(f"[Config] Building split config: {self.splitting.model_dump()}")

        return self.splitting.to_split_config()

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"


settings = Settings()
