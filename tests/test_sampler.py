"""Tests for source decoding, sampling and the background heuristic."""

import numpy as np
import pytest

from conftest import encode_png, white_canvas
from imagesplit.splitting import (
    BackgroundHeuristic,
    CanvasContextError,
    DecodeError,
    EmptySourceError,
    PixelSampler,
    load_image,
)
from imagesplit.splitting import sampler as sampler_module


def test_load_png_bytes(two_squares):
    pixels = load_image(encode_png(two_squares))

    assert pixels.shape == (400, 800, 4)
    assert pixels.dtype == np.uint8
    assert (pixels == two_squares).all()


def test_load_rgb_array_adds_opaque_alpha():
    rgb = np.zeros((10, 20, 3), dtype=np.uint8)
    pixels = load_image(rgb)

    assert pixels.shape == (10, 20, 4)
    assert (pixels[..., 3] == 255).all()


def test_transparent_pixels_read_back_as_zero():
    rgba = white_canvas(4, 4)
    rgba[0, 0, 3] = 0

    pixels = load_image(encode_png(rgba))

    assert tuple(pixels[0, 0]) == (0, 0, 0, 0)
    assert tuple(pixels[1, 1]) == (255, 255, 255, 255)


def test_load_from_path(tmp_path, two_squares):
    path = tmp_path / "grid.png"
    path.write_bytes(encode_png(two_squares))

    assert load_image(path).shape == (400, 800, 4)
    assert load_image(str(path)).shape == (400, 800, 4)


@pytest.mark.parametrize("source", [None, b"", "  "])
def test_empty_sources(source):
    with pytest.raises(EmptySourceError):
        load_image(source)


def test_garbage_bytes_fail_to_decode():
    with pytest.raises(DecodeError):
        load_image(b"definitely not an image")


def test_truncated_png_fails_to_decode(two_squares):
    data = encode_png(two_squares)
    with pytest.raises(DecodeError):
        load_image(data[: len(data) // 2])


def test_missing_path_fails_to_decode(tmp_path):
    with pytest.raises(DecodeError):
        load_image(tmp_path / "missing.png")


def test_sample_caps_each_dimension():
    sampler = PixelSampler()

    assert sampler.sample(white_canvas(300, 200)).shape == (96, 96, 4)
    assert sampler.sample(white_canvas(50, 200)).shape == (96, 50, 4)


def test_small_image_is_its_own_sample():
    image = white_canvas(40, 30)
    assert PixelSampler().sample(image) is image


def test_sampling_surface_failure(monkeypatch):
    def fail(*args, **kwargs):
        raise MemoryError("no surface")

    monkeypatch.setattr(sampler_module.cv2, "resize", fail)

    with pytest.raises(CanvasContextError):
        PixelSampler().sample(white_canvas(200, 200))


def test_white_ratio():
    sample = white_canvas(10, 10)
    sample[:5, :, :3] = 100

    assert BackgroundHeuristic().white_ratio(sample) == 0.5


def test_near_white_needs_all_channels():
    sample = white_canvas(2, 1)
    sample[0, 0, :3] = (250, 250, 250)
    sample[0, 1, :3] = (255, 255, 249)

    assert BackgroundHeuristic().white_ratio(sample) == 0.5


def test_decision_on_white_background():
    decision = BackgroundHeuristic().decide(white_canvas(96, 96), 800 * 400)

    assert decision.should_detect
    assert decision.reason == "detect"
    assert decision.white_ratio == 1.0


def test_ratio_threshold_is_inclusive():
    sample = white_canvas(10, 10)
    sample.reshape(-1, 4)[:45, :3] = 0

    decision = BackgroundHeuristic().decide(sample, 100)

    assert decision.white_ratio == 0.55
    assert decision.should_detect


def test_decision_on_photo(photo):
    decision = BackgroundHeuristic().decide(PixelSampler().sample(photo), 320 * 240)

    assert not decision.should_detect
    assert decision.reason == "not_white_background"


@pytest.mark.parametrize("pixel_count, expected", [(2_000_000, True), (2_000_001, False)])
def test_pixel_gate(pixel_count, expected):
    decision = BackgroundHeuristic().decide(white_canvas(96, 96), pixel_count)

    assert decision.should_detect is expected
    if not expected:
        assert decision.reason == "too_many_pixels"
