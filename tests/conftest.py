"""Shared fixtures for the raster tests."""
import numpy as np
import pytest

from raster_lib import PixelBuffer


def solid(width, height, rgba):
    """Buffer filled with a single RGBA color."""
    data = np.empty((height, width, 4), dtype=np.uint8)
    data[...] = rgba
    return PixelBuffer(width, height, data)


@pytest.fixture
def make_solid():
    return solid


@pytest.fixture
def noisy():
    """Deterministic 24x16 opaque image with varied colors."""
    rng = np.random.default_rng(1234)
    data = rng.integers(0, 256, size=(16, 24, 4), dtype=np.uint8)
    data[..., 3] = 255
    return PixelBuffer(24, 16, data)


@pytest.fixture
def translucent():
    """4x4 image with a mix of alpha values."""
    rng = np.random.default_rng(99)
    data = rng.integers(0, 256, size=(4, 4, 4), dtype=np.uint8)
    return PixelBuffer(4, 4, data)
