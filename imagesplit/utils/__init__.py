"""Utility modules for the image split service."""

from imagesplit.utils.file_validation import (
    EXTENSIONS,
    ValidationError,
    detect_image_format,
    validate_filename,
    validate_image_upload,
)

__all__ = [
    "EXTENSIONS",
    "ValidationError",
    "detect_image_format",
    "validate_filename",
    "validate_image_upload",
]
