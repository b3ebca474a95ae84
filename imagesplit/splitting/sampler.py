"""
Source decoding and background sampling.

Decodes source bytes into an RGBA pixel array and draws a small downsampled
copy of it that the background heuristic inspects.
"""

import io
import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import CanvasContextError, DecodeError, EmptySourceError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, memoryview, str, Path, Image.Image, np.ndarray]


def load_image(source: ImageSource) -> np.ndarray:
    """
    Decode a source into an RGBA pixel array.

    Fully transparent pixels read back as (0, 0, 0, 0), the same way a
    canvas readback reports them, so they never count as white.

    Args:
        source: Encoded image bytes, a file path, a PIL image, or an array.

    Returns:
        Array of shape (height, width, 4) and dtype uint8.

    Raises:
        EmptySourceError: If no source was supplied.
        DecodeError: If the source cannot be rasterized.
    """
    if source is None:
        raise EmptySourceError("No source image supplied")

    if isinstance(source, np.ndarray):
        return _array_to_rgba(source)

    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        if not data:
            raise EmptySourceError("Source image is empty")
        image = _open_image(io.BytesIO(data))
    elif isinstance(source, (str, Path)):
        if not str(source).strip():
            raise EmptySourceError("No source image supplied")
        path = Path(source)
        if not path.is_file():
            raise DecodeError(f"Source image not found: {path}")
        image = _open_image(path)
    elif isinstance(source, Image.Image):
        image = source
    else:
        raise TypeError(f"Unsupported image source type: {type(source)}")

    return _image_to_rgba(image)


def _open_image(fp) -> Image.Image:
    """Open and fully decode an image, mapping decoder failures to DecodeError."""
    try:
        image = Image.open(fp)
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Source image could not be decoded: {e}") from e
    except (OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"Source image is corrupt or truncated: {e}") from e
    return image


def _image_to_rgba(image: Image.Image) -> np.ndarray:
    width, height = image.size
    if width <= 0 or height <= 0:
        raise DecodeError(f"Source image has no pixels ({width}x{height})")

    if image.mode != "RGBA":
        image = image.convert("RGBA")

    pixels = np.array(image, dtype=np.uint8)
    pixels[pixels[..., 3] == 0] = 0
    return pixels


def _array_to_rgba(array: np.ndarray) -> np.ndarray:
    if array.ndim == 2:
        array = np.stack([array] * 3, axis=-1)

    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise DecodeError(f"Unsupported pixel array shape: {array.shape}")

    height, width = array.shape[:2]
    if width == 0 or height == 0:
        raise DecodeError(f"Source image has no pixels ({width}x{height})")

    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = array[..., :3]
    if array.shape[2] == 4:
        pixels[..., 3] = array[..., 3]
        pixels[pixels[..., 3] == 0] = 0
    else:
        pixels[..., 3] = 255
    return pixels


class PixelSampler:
    """
    Draws a small copy of the source for the background heuristic.

    Each dimension is capped independently at ``sample_size``; the image is
    squeezed rather than cropped, so the sample covers the whole source.
    """

    def __init__(self, sample_size: int = 96):
        """
        Initialize the sampler.

        Args:
            sample_size: Maximum sample width and height.
        """
        self.sample_size = sample_size

    def sample(self, image: np.ndarray) -> np.ndarray:
        """
        Downsample an RGBA image to at most sample_size x sample_size.

        Args:
            image: RGBA image as numpy array.

        Returns:
            The sampled RGBA buffer.

        Raises:
            CanvasContextError: If the sample raster cannot be allocated.
        """
        height, width = image.shape[:2]
        sample_width = min(self.sample_size, width)
        sample_height = min(self.sample_size, height)

        if (sample_width, sample_height) == (width, height):
            return image

        try:
            return cv2.resize(
                image,
                (sample_width, sample_height),
                interpolation=cv2.INTER_AREA,
            )
        except (cv2.error, MemoryError) as e:
            logger.warning(f"Failed to draw {sample_width}x{sample_height} sample: {e}")
            raise CanvasContextError(f"Could not create sampling surface: {e}") from e
