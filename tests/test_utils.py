"""Tests for the image codec boundary and the color helpers."""
import numpy as np
import pytest

from raster_lib import PixelBuffer
from utils import (
    hex_to_rgba,
    list_image_files,
    load_image,
    parse_color,
    save_image,
    validate_image_file,
)


@pytest.mark.parametrize("ext", [".png", ".tga"])
def test_round_trip_is_lossless(ext, translucent, tmp_path):
    path = tmp_path / f"image{ext}"
    assert save_image(translucent, path)
    loaded = load_image(path)
    assert loaded == translucent


def test_tga_is_stored_bottom_to_top(tmp_path):
    buf = PixelBuffer(2, 2)
    buf.pixels[0, 0] = (255, 0, 0, 255)     # top-left
    buf.pixels[1, 0] = (0, 0, 255, 128)     # bottom-left
    path = tmp_path / "rows.tga"
    assert save_image(buf, path)

    raw = path.read_bytes()
    assert raw[2] == 2                 # uncompressed truecolor
    assert raw[16] == 32               # bits per pixel
    assert raw[17] & 0x20 == 0         # origin at the bottom
    # first stored pixel is the bottom-left one, in BGRA order
    assert list(raw[18:22]) == [255, 0, 0, 128]

    loaded = load_image(path)
    assert loaded.pixels[0, 0].tolist() == [255, 0, 0, 255]
    assert loaded.pixels[1, 0].tolist() == [0, 0, 255, 128]


def test_load_converts_to_rgba(tmp_path):
    buf = PixelBuffer(3, 1, bytes([10, 20, 30, 255] * 3))
    path = tmp_path / "rgb.jpg"
    assert save_image(buf, path)
    loaded = load_image(path)
    assert loaded.pixels.shape == (1, 3, 4)
    assert np.all(loaded.pixels[..., 3] == 255)


def test_load_missing_file(tmp_path):
    assert load_image(tmp_path / "nope.tga") is None


def test_load_garbage_file(tmp_path):
    path = tmp_path / "garbage.png"
    path.write_bytes(b"not an image at all")
    assert load_image(path) is None


def test_load_without_name():
    assert load_image(None) is None
    assert load_image("") is None


def test_save_unknown_extension(noisy, tmp_path):
    assert save_image(noisy, tmp_path / "out.unknown") is False


def test_save_into_missing_directory(noisy, tmp_path):
    assert save_image(noisy, tmp_path / "missing" / "out.png") is False


def test_save_nothing(tmp_path):
    assert save_image(None, tmp_path / "out.png") is False


# ============================================================================
# Files
# ============================================================================

def test_list_and_validate_image_files(noisy, tmp_path):
    save_image(noisy, tmp_path / "b.png")
    save_image(noisy, tmp_path / "a.tga")
    (tmp_path / "notes.txt").write_text("hello")
    (tmp_path / "sub.png").mkdir()

    assert [p.name for p in list_image_files(tmp_path)] == ["a.tga", "b.png"]
    assert validate_image_file(tmp_path / "a.tga")
    assert not validate_image_file(tmp_path / "notes.txt")
    assert not validate_image_file(tmp_path / "missing.png")


# ============================================================================
# Colors
# ============================================================================

@pytest.mark.parametrize("text, expected", [
    ("#FF8000", (255, 128, 0, 255)),
    ("ff800080", (255, 128, 0, 128)),
    ("#000000", (0, 0, 0, 255)),
])
def test_hex_to_rgba(text, expected):
    assert hex_to_rgba(text) == expected


@pytest.mark.parametrize("text", ["#FFF", "#12345", "#GG0000"])
def test_hex_to_rgba_invalid(text):
    with pytest.raises(ValueError):
        hex_to_rgba(text)


def test_parse_color():
    assert parse_color([1, 2, 3]) == (1, 2, 3, 255)
    assert parse_color((1, 2, 3, 4)) == (1, 2, 3, 4)
    assert parse_color("#010203") == (1, 2, 3, 255)
    with pytest.raises(ValueError):
        parse_color([1, 2])
    with pytest.raises(ValueError):
        parse_color([0, 0, 300])
