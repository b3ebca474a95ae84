"""Tests for the split orchestrator."""

from unittest.mock import MagicMock

import numpy as np
import pytest

from conftest import draw_block, encode_png, white_canvas
from imagesplit.splitting import (
    DecodeError,
    EmptySourceError,
    SplitConfig,
    SplitOrchestrator,
    SplitResult,
    create_splitter,
    reconcile_output_count,
)


def test_blank_canvas_falls_back_to_grid():
    result = SplitOrchestrator().split(encode_png(white_canvas(300, 300)), 4)

    assert result.method == "grid"
    assert [r.bounds for r in result.rects] == [
        (0, 0, 150, 150),
        (150, 0, 150, 150),
        (0, 150, 150, 150),
        (150, 150, 150, 150),
    ]
    assert result.source_size == (300, 300)


def test_separated_squares_use_regions(two_squares):
    result = SplitOrchestrator().split(encode_png(two_squares), 9)

    assert result.method == "regions"
    assert [r.bounds for r in result.rects] == [(50, 50, 50, 50), (700, 50, 50, 50)]
    assert (result.source_width, result.source_height) == (800, 400)


def test_composite_grid_detects_every_tile(composite_grid):
    result = SplitOrchestrator().split(composite_grid, 9)

    assert result.method == "regions"
    assert len(result.rects) == 9
    assert [(r.x, r.y) for r in result.rects[:3]] == [(50, 50), (250, 50), (450, 50)]
    assert all((r.width, r.height) == (100, 100) for r in result.rects)


def test_large_image_skips_detection():
    image = white_canvas(3000, 2000)
    draw_block(image, 100, 100, 500, 500)
    draw_block(image, 1500, 100, 500, 500)

    orchestrator = SplitOrchestrator()
    orchestrator.region_splitter = MagicMock(wraps=orchestrator.region_splitter)

    result = orchestrator.split(image, 6)

    orchestrator.region_splitter.split_rects.assert_not_called()
    assert result.method == "grid"
    assert len(result.rects) == 6
    assert result.metadata["detection"] == "too_many_pixels"


def test_photo_skips_detection(photo):
    orchestrator = SplitOrchestrator()
    orchestrator.region_splitter = MagicMock()

    result = orchestrator.split(photo, 4)

    orchestrator.region_splitter.split_rects.assert_not_called()
    assert result.method == "grid"
    assert len(result.rects) == 4
    assert result.metadata["detection"] == "not_white_background"


def test_single_region_falls_back_to_grid():
    image = white_canvas(200, 200)
    draw_block(image, 60, 60, 80, 80)

    result = SplitOrchestrator().split(image, 4)

    assert result.method == "grid"
    assert len(result.rects) == 4


def test_speckle_field_falls_back_to_grid():
    # 25 regions exceed 2 x max(4, 9) = 18
    image = white_canvas(500, 500)
    for row in range(5):
        for col in range(5):
            draw_block(image, 10 + col * 100, 10 + row * 100, 30, 30)

    result = SplitOrchestrator().split(image, 4)

    assert result.method == "grid"
    assert len(result.rects) == 4


def test_region_budget_scales_with_requested_count():
    image = white_canvas(500, 500)
    for row in range(5):
        for col in range(5):
            draw_block(image, 10 + col * 100, 10 + row * 100, 30, 30)

    result = SplitOrchestrator().split(image, 20)

    assert result.method == "regions"
    assert len(result.rects) == 25


def test_regions_truncated_to_max_outputs():
    image = white_canvas(800, 800)
    for row in range(8):
        for col in range(8):
            draw_block(image, 5 + col * 100, 5 + row * 100, 30, 30)

    result = SplitOrchestrator().split(image, 50)

    assert result.method == "regions"
    assert len(result.rects) == 50
    assert [r.index for r in result.rects] == list(range(50))


def test_missing_count_uses_default():
    result = SplitOrchestrator().split(white_canvas(90, 90), None)

    assert len(result.rects) == 9
    assert result.metadata["requested_count"] == 9


def test_split_is_deterministic(composite_grid):
    data = encode_png(composite_grid)
    first = SplitOrchestrator().split(data, 9)
    second = SplitOrchestrator().split(data, 9)

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_source_is_not_mutated(composite_grid):
    before = composite_grid.copy()
    SplitOrchestrator(SplitConfig(trim_to_content=True)).split(composite_grid, 9)

    assert np.array_equal(before, composite_grid)


def test_trim_applies_to_regions_only():
    image = white_canvas(400, 200)
    draw_block(image, 20, 20, 100, 100, color=(240, 240, 240))
    draw_block(image, 40, 40, 60, 60)
    draw_block(image, 250, 20, 100, 100, color=(240, 240, 240))
    draw_block(image, 270, 40, 60, 60)

    result = SplitOrchestrator(SplitConfig(trim_to_content=True)).split(image, 9)

    assert result.method == "regions"
    assert [r.bounds for r in result.rects] == [(40, 40, 60, 60), (270, 40, 60, 60)]


def test_errors_propagate():
    with pytest.raises(EmptySourceError):
        SplitOrchestrator().split(b"", 4)
    with pytest.raises(DecodeError):
        SplitOrchestrator().split(b"not an image", 4)


def test_result_round_trips_through_dict(two_squares):
    result = SplitOrchestrator().split(two_squares, 9)
    payload = result.to_dict()

    assert set(payload) >= {"rects", "source_width", "source_height", "method"}
    assert SplitResult.from_dict(payload) == result


def test_analyze_reports_decision(two_squares, photo):
    orchestrator = SplitOrchestrator()

    assert orchestrator.analyze(two_squares)["will_detect_regions"] is True
    analysis = orchestrator.analyze(photo)
    assert analysis["will_detect_regions"] is False
    assert analysis["reason"] == "not_white_background"
    assert (analysis["width"], analysis["height"]) == (320, 240)


@pytest.mark.parametrize(
    "current, rect_count, expected",
    [
        (9, 4, 9),
        (4, 9, 9),
        (9, 12, 12),
        (40, 60, 50),
        (80, 2, 50),
        (3, 0, 3),
        (0, 0, 1),
        (0, 3, 3),
        (-5, 0, 1),
        (None, 2, 2),
    ],
)
def test_reconcile_output_count(current, rect_count, expected):
    assert reconcile_output_count(current, rect_count) == expected


def test_ports_never_shrink():
    current = 12
    for rect_count in (1, 5, 12, 3, 20, 0):
        updated = reconcile_output_count(current, rect_count)
        assert updated >= current
        current = updated
    assert current == 20


def test_create_splitter_passes_thresholds():
    splitter = create_splitter(white_ratio_threshold=0.8, max_detect_pixels=10, trim_to_content=True)

    assert splitter.config.white_ratio_threshold == 0.8
    assert splitter.config.max_detect_pixels == 10
    assert splitter.config.trim_to_content is True
