"""Shared fixtures for the split tests."""

import fnmatch
import io

import numpy as np
import pytest
from PIL import Image

from imagesplit.splitting import SplitConfig


def white_canvas(width: int, height: int) -> np.ndarray:
    """Opaque white RGBA canvas."""
    return np.full((height, width, 4), 255, dtype=np.uint8)


def draw_block(canvas: np.ndarray, x: int, y: int, width: int, height: int, color=(0, 0, 0)) -> None:
    """Paint an opaque rectangle in place."""
    canvas[y:y + height, x:x + width, :3] = color
    canvas[y:y + height, x:x + width, 3] = 255


def encode_png(pixels: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeRedis:
    """In-memory stand-in for the few Redis commands the job store uses."""

    def __init__(self):
        self.store: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}

    def setex(self, key, ttl, value):
        self.store[key] = value.encode() if isinstance(value, str) else value
        self.ttls[key] = ttl
        return True

    def get(self, key):
        if isinstance(key, bytes):
            key = key.decode()
        return self.store.get(key)

    def exists(self, key):
        return int(key in self.store)

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def scan_iter(self, pattern):
        return [key.encode() for key in list(self.store) if fnmatch.fnmatch(key, pattern)]

    def ping(self):
        return True


@pytest.fixture
def config():
    return SplitConfig()


@pytest.fixture
def two_squares():
    """800x400 white canvas with two separated 50x50 black squares."""
    canvas = white_canvas(800, 400)
    draw_block(canvas, 50, 50, 50, 50)
    draw_block(canvas, 700, 50, 50, 50)
    return canvas


@pytest.fixture
def composite_grid():
    """600x600 white canvas holding a 3x3 layout of 100x100 colored tiles."""
    canvas = white_canvas(600, 600)
    for row in range(3):
        for col in range(3):
            draw_block(canvas, 50 + col * 200, 50 + row * 200, 100, 100, color=(40 * col, 80, 40 * row))
    return canvas


@pytest.fixture
def photo():
    """Full-bleed mid-tone image with no white background."""
    rng = np.random.default_rng(7)
    pixels = rng.integers(40, 200, size=(240, 320, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    return pixels


@pytest.fixture
def fake_redis():
    return FakeRedis()
