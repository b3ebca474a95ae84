"""
Upload validation for source images.

Uploads are checked in layers before they are stored:
1. Size (non-empty, under the configured limit)
2. Magic bytes (file signature of a supported raster format)
3. Pillow verification of the image structure
"""

import logging
from pathlib import Path
from typing import BinaryIO

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


# Magic byte signatures of supported raster formats
MAGIC_BYTES = {
    b"\xff\xd8\xff": "jpeg",
    b"\x89PNG\r\n\x1a\n": "png",
    b"GIF87a": "gif",
    b"GIF89a": "gif",
    b"BM": "bmp",
    b"II*\x00": "tiff",
    b"MM\x00*": "tiff",
    b"RIFF": "webp",  # needs further validation
}

EXTENSIONS = {
    "jpeg": ".jpg",
    "png": ".png",
    "gif": ".gif",
    "bmp": ".bmp",
    "tiff": ".tif",
    "webp": ".webp",
}


class ValidationError(Exception):
    """Raised when upload validation fails."""

    pass


def detect_image_format(header: bytes) -> str | None:
    """
    Detect the image format from magic bytes.

    Args:
        header: First bytes of the file.

    Returns:
        Format name, or None if the signature is not a supported image.
    """
    for signature, image_format in MAGIC_BYTES.items():
        if header.startswith(signature):
            # RIFF is only an image container when it holds WebP
            if signature == b"RIFF" and header[8:12] != b"WEBP":
                continue
            return image_format
    return None


def verify_image(file_obj: BinaryIO) -> bool:
    """
    Check that Pillow can parse the image structure.

    Args:
        file_obj: File object to validate (will be seeked to start).

    Returns:
        True if valid image, False otherwise.
    """
    file_obj.seek(0)
    try:
        with Image.open(file_obj) as img:
            img.verify()
        return True
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        logger.debug(f"Pillow validation failed: {e}")
        return False
    finally:
        file_obj.seek(0)


def validate_image_upload(file_obj: BinaryIO, max_size_mb: int = 50) -> str:
    """
    Validate an uploaded source image.

    Args:
        file_obj: File object to validate (should be at start).
        max_size_mb: Maximum file size in MB.

    Returns:
        Detected format name.

    Raises:
        ValidationError: If the file fails any check.
    """
    file_obj.seek(0, 2)
    file_size = file_obj.tell()
    file_obj.seek(0)

    if file_size == 0:
        raise ValidationError("File is empty")

    max_size_bytes = max_size_mb * 1024 * 1024
    if file_size > max_size_bytes:
        raise ValidationError(
            f"File too large: {file_size / 1024 / 1024:.1f}MB "
            f"(max {max_size_mb}MB)"
        )

    header = file_obj.read(32)
    file_obj.seek(0)

    image_format = detect_image_format(header)
    if image_format is None:
        raise ValidationError("Unknown or unsupported file type")

    if not verify_image(file_obj):
        raise ValidationError("File is not a valid image")

    logger.info(f"Upload validated: {image_format}, {file_size / 1024:.1f}KB")
    return image_format


def validate_filename(filename: str) -> str:
    """
    Sanitize and validate filename to prevent path traversal attacks.

    Args:
        filename: Original filename from upload.

    Returns:
        Sanitized filename safe for filesystem operations.

    Raises:
        ValidationError: If filename is invalid or malicious.
    """
    if not filename:
        raise ValidationError("Filename cannot be empty")

    # Remove any path components (prevent directory traversal)
    safe_filename = Path(filename).name

    if not safe_filename:
        raise ValidationError("Invalid filename")

    if ".." in safe_filename or safe_filename.startswith("."):
        raise ValidationError("Invalid filename pattern")

    if len(safe_filename) > 255:
        raise ValidationError("Filename too long (max 255 characters)")

    return safe_filename
