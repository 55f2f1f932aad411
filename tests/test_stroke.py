"""Tests for the disc-stamp stroke primitive."""
import numpy as np
import pytest

from raster_lib import PixelBuffer, Stroke, paint_stroke


def _changed(before, after):
    return {(int(y), int(x)) for y, x in zip(*np.nonzero(np.any(before != after, axis=2)))}


def test_radius_zero_paints_one_pixel():
    buf = PixelBuffer(5, 5)
    before = buf.pixels.copy()
    assert paint_stroke(buf, Stroke(0, 2, 3, (255, 0, 0, 255)))
    assert _changed(before, buf.pixels) == {(3, 2)}
    assert buf.pixels[3, 2].tolist() == [255, 0, 0, 255]


def test_radius_one_core_and_blended_corners():
    buf = PixelBuffer(5, 5)
    paint_stroke(buf, Stroke(1, 2, 2, (200, 100, 50, 127)))
    px = buf.pixels
    for y, x in [(2, 2), (1, 2), (3, 2), (2, 1), (2, 3)]:
        assert px[y, x].tolist() == [200, 100, 50, 127]
    for y, x in [(1, 1), (1, 3), (3, 1), (3, 3)]:
        # average with opaque black, alpha included
        assert px[y, x].tolist() == [100, 50, 25, 191]
    assert px[0, 0].tolist() == [0, 0, 0, 255]
    assert px[0, 2].tolist() == [0, 0, 0, 255]


def test_shell_is_exactly_radius_squared_plus_one():
    buf = PixelBuffer(9, 9)
    before = buf.pixels.copy()
    paint_stroke(buf, Stroke(3, 4, 4, (255, 255, 255, 255)))
    changed = _changed(before, buf.pixels)
    for y, x in changed:
        assert (x - 4) ** 2 + (y - 4) ** 2 <= 10
    # offset (3, 1) is at distance^2 10, (3, 2) at 13
    assert buf.pixels[4 + 1, 4 + 3].tolist() == [127, 127, 127, 255]
    assert buf.pixels[4 + 2, 4 + 3].tolist() == [0, 0, 0, 255]
    assert buf.pixels[4, 4 + 3].tolist() == [255, 255, 255, 255]


def test_clipped_at_image_edge():
    buf = PixelBuffer(4, 3)
    before = buf.pixels.copy()
    assert paint_stroke(buf, Stroke(2, 0, 0, (0, 255, 0, 255)))
    changed = _changed(before, buf.pixels)
    assert (0, 0) in changed
    assert all(0 <= y < 3 and 0 <= x < 4 for y, x in changed)


def test_stroke_outside_image_is_noop():
    buf = PixelBuffer(3, 3)
    before = buf.tobytes()
    assert paint_stroke(buf, Stroke(1, 10, 10, (255, 255, 255, 255)))
    assert buf.tobytes() == before


def test_missing_buffer():
    assert paint_stroke(None, Stroke(1, 0, 0)) is False


@pytest.mark.parametrize("args", [
    (-1, 0, 0),
    (1, -2, 0),
    (1, 0, -3),
    (1, 0, 0, (0, 0, 0)),
    (1, 0, 0, (0, 0, 0, 256)),
])
def test_invalid_stroke_rejected(args):
    with pytest.raises(ValueError):
        Stroke(*args)
