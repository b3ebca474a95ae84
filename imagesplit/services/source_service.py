"""
Source image resolution.

Turns the image reference stored on a node (storage key, proxy path,
remote URL or data URL) into the encoded bytes the split engine decodes.
"""

import base64
import binascii
import logging
import re
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import httpx

from imagesplit.config import settings
from imagesplit.splitting.errors import DecodeError, EmptySourceError

logger = logging.getLogger(__name__)

STORAGE_KEY_PATTERN = re.compile(r"^(templates|projects|uploads|videos)/", re.IGNORECASE)
PROXY_PREFIXES = ("/api/assets/proxy", "/assets/proxy")
DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?),(?P<data>.*)$", re.DOTALL)

# Servers that do not know the type of a stored object send this
GENERIC_CONTENT_TYPES = ("application/octet-stream", "binary/octet-stream")


def normalize_source_ref(value: str | None) -> str:
    """
    Normalize an image reference into a persistable form.

    Proxy paths are unwrapped into the storage key or remote URL they
    point at, and storage keys lose any leading slashes. Anything else
    is returned trimmed.

    Args:
        value: Raw reference as found on the node.

    Returns:
        Normalized reference (empty string for blank input).
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return trimmed

    if trimmed.startswith(PROXY_PREFIXES):
        query = parse_qs(urlsplit(trimmed).query)
        key = (query.get("key") or [""])[0]
        if key:
            return key.lstrip("/")
        remote = (query.get("url") or [""])[0]
        if remote:
            return remote
        return trimmed

    without_leading = trimmed.lstrip("/")
    if STORAGE_KEY_PATTERN.match(without_leading):
        return without_leading

    return trimmed


def is_storage_key(ref: str) -> bool:
    return bool(STORAGE_KEY_PATTERN.match(ref))


def is_remote_url(ref: str) -> bool:
    return ref.lower().startswith(("http://", "https://"))


def decode_data_url(ref: str) -> bytes:
    """
    Decode a ``data:image/...;base64,`` URL.

    Raises:
        DecodeError: If the URL is malformed or does not carry an image.
    """
    match = DATA_URL_PATTERN.match(ref)
    if match is None:
        raise DecodeError("Malformed data URL")

    mime = (match.group("mime") or "").lower()
    if not mime.startswith("image/"):
        raise DecodeError(f"Data URL is not an image ({mime or 'no type'})")
    if ";base64" not in match.group("params").lower():
        raise DecodeError("Data URL is not base64 encoded")

    try:
        return base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 image data: {e}") from e


def storage_path(key: str, root: Path | None = None) -> Path:
    """
    Map a storage key onto the local uploads directory.

    Raises:
        DecodeError: If the key escapes the uploads directory.
    """
    root = (root or settings.uploads_dir).resolve()
    path = (root / key).resolve()
    if not path.is_relative_to(root):
        raise DecodeError(f"Invalid storage key: {key}")
    return path


async def fetch_remote(url: str, timeout: float | None = None) -> bytes:
    """
    Download a remote image.

    Raises:
        DecodeError: On transport errors, non-2xx responses or a
            non-image content type.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout or settings.fetch_timeout,
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
    except httpx.RequestError as e:
        logger.warning(f"Fetching source image failed: {e}")
        raise DecodeError(f"Image failed to load: {e}") from e

    if not response.is_success:
        raise DecodeError(f"Image failed to load ({response.status_code})")

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type and not content_type.startswith("image/") and content_type not in GENERIC_CONTENT_TYPES:
        raise DecodeError(f"Source is not an image ({content_type})")

    return response.content


async def resolve_source(ref: str | None, root: Path | None = None) -> bytes:
    """
    Load the encoded bytes behind an image reference.

    Args:
        ref: Storage key, proxy path, http(s) URL or data URL.
        root: Uploads directory for storage keys (defaults to settings).

    Returns:
        Encoded image bytes.

    Raises:
        EmptySourceError: If the reference is blank.
        DecodeError: If the reference cannot be loaded.
    """
    normalized = normalize_source_ref(ref)
    if not normalized:
        raise EmptySourceError("No input image")

    if normalized.lower().startswith("data:"):
        data = decode_data_url(normalized)
    elif is_remote_url(normalized):
        data = await fetch_remote(normalized)
    elif is_storage_key(normalized):
        path = storage_path(normalized, root)
        if not path.is_file():
            raise DecodeError(f"Image not found: {normalized}")
        data = path.read_bytes()
    else:
        raise DecodeError(f"Unsupported image reference: {normalized[:64]}")

    if not data:
        raise EmptySourceError("Image source is empty")

    logger.debug(f"Resolved source {normalized[:64]} ({len(data)} bytes)")
    return data
