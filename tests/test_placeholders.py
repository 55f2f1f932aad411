"""Tests for the unimplemented operations and the operation registry."""
import pytest

from raster_lib import (
    OPERATIONS,
    TWO_BUFFER_OPERATIONS,
    PixelBuffer,
    apply_operation,
    comp_atop,
    comp_in,
    comp_out,
    comp_over,
    comp_xor,
    filter_edge,
    filter_enhance,
    filter_gaussian_n,
    npr_paint,
    resize,
    rotate,
)

COMPOSITES = [comp_over, comp_in, comp_out, comp_atop, comp_xor]
SINGLE = [
    lambda b: filter_gaussian_n(b, 7),
    filter_edge,
    filter_enhance,
    npr_paint,
    lambda b: resize(b, 0.5),
    lambda b: rotate(b, 45.0),
]


@pytest.mark.parametrize("op", SINGLE)
def test_placeholder_clears_and_fails(op, noisy):
    assert op(noisy) is False
    assert (noisy.width, noisy.height) == (24, 16)
    assert not noisy.pixels.any()


@pytest.mark.parametrize("op", COMPOSITES)
def test_composite_clears_when_sizes_match(op, noisy):
    other = noisy.copy()
    assert op(noisy, other) is False
    assert not noisy.pixels.any()
    assert other.pixels.any()


@pytest.mark.parametrize("op", COMPOSITES)
def test_composite_size_mismatch_leaves_image(op, noisy):
    before = noisy.tobytes()
    assert op(noisy, PixelBuffer(2, 2)) is False
    assert noisy.tobytes() == before


@pytest.mark.parametrize("op", COMPOSITES)
def test_composite_missing_image(op, noisy):
    before = noisy.tobytes()
    assert op(noisy, None) is False
    assert noisy.tobytes() == before
    assert op(None, noisy) is False


# ============================================================================
# Registry
# ============================================================================

def test_two_buffer_operations_are_registered():
    assert TWO_BUFFER_OPERATIONS <= set(OPERATIONS)


def test_apply_operation_single(make_solid):
    buf = make_solid(2, 2, (200, 100, 50, 255))
    assert apply_operation(buf, "quantize_uniform")
    assert buf.pixels[0, 0].tolist() == [192, 96, 0, 255]


def test_apply_operation_with_params(noisy):
    other = noisy.copy()
    apply_operation(noisy, "dither_random", seed=11)
    apply_operation(other, "dither_random", seed=11)
    assert noisy == other


def test_apply_operation_two_buffers(noisy):
    assert apply_operation(noisy, "difference", other=noisy.copy())
    assert not noisy.pixels[..., :3].any()


def test_apply_operation_unknown_name(noisy):
    with pytest.raises(ValueError, match="Unknown operation"):
        apply_operation(noisy, "sharpen")


def test_every_operation_handles_missing_buffer():
    for name in OPERATIONS:
        if name == "paint_stroke":
            continue
        assert apply_operation(None, name) is False, name
