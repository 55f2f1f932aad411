"""
A Python library of pixel-buffer transforms for RGBA rasters: grayscale and
color reduction, monochrome and color dithering, 5x5 convolution filters,
2x resampling and a disc-stamp stroke primitive.
Use this as a standalone library or drive it from raster_cli.py.

Every transform takes a PixelBuffer, mutates it and returns True, or returns
False and leaves it untouched. The placeholder operations at the bottom of
the module are the one exception: they clear the buffer and return False.
"""

import logging
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import KDTree

logger = logging.getLogger(__name__)

# -------------------- Constants --------------------

RED = 0
GREEN = 1
BLUE = 2
ALPHA = 3

BACKGROUND = (0, 0, 0)

# ITU-R BT.601 luma
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


# -------------------- Pixel Buffer --------------------

class PixelBuffer:
    """
    Owns an RGBA8 raster stored row-major and top-to-bottom as a
    (height, width, 4) uint8 array. Width and height are read off the array,
    so swapping in a new array changes storage and dimensions together.
    """

    def __init__(self, width: int, height: int, pixels=None):
        """
        Args:
            width: Raster width in pixels
            height: Raster height in pixels
            pixels: Optional texel data (flat RGBA bytes or an (h, w, 4) array).
                    It is copied; without it the raster starts opaque black.
        """
        if width < 0 or height < 0:
            raise ValueError(f"Invalid dimensions: {width}x{height}")

        if pixels is None:
            data = np.zeros((height, width, 4), dtype=np.uint8)
            data[:, :, ALPHA] = 255
        else:
            if isinstance(pixels, (bytes, bytearray, memoryview)):
                data = np.frombuffer(pixels, dtype=np.uint8).copy()
            else:
                data = np.array(pixels, dtype=np.uint8)
            expected = width * height * 4
            if data.size != expected:
                raise ValueError(
                    f"Expected {expected} texel bytes for {width}x{height}, got {data.size}"
                )
            data = data.reshape((height, width, 4))

        self.pixels = data

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, self.pixels)

    __copy__ = copy

    def __deepcopy__(self, memo) -> "PixelBuffer":
        return self.copy()

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.pixels.shape == other.pixels.shape and np.array_equal(self.pixels, other.pixels)

    __hash__ = None

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"


def _require_buffer(buffer: Optional[PixelBuffer], op_name: str) -> bool:
    if buffer is None or getattr(buffer, "pixels", None) is None:
        logger.error(f"{op_name}: no image data")
        return False
    return True


def _same_size(buffer: PixelBuffer, other: Optional[PixelBuffer], op_name: str) -> bool:
    if not _require_buffer(other, op_name):
        return False
    if buffer.width != other.width or buffer.height != other.height:
        logger.warning(
            f"{op_name}: images not the same size "
            f"({buffer.width}x{buffer.height} vs {other.width}x{other.height})"
        )
        return False
    return True


# -------------------- Color Conversion --------------------

def _composite_over_black(texels: np.ndarray) -> np.ndarray:
    """
    Un-premultiply (..., 4) RGBA texels against an opaque black background,
    returning (..., 3) uint8 RGB.
    """
    alpha = texels[..., ALPHA].astype(np.float32)
    rgb = texels[..., :ALPHA].astype(np.float32)
    with np.errstate(divide='ignore', invalid='ignore'):
        scale = np.float32(255.0) / alpha
        values = np.clip(np.floor(rgb * scale[..., np.newaxis]), 0, 255)
    background = np.array(BACKGROUND, dtype=np.float32)
    values = np.where(alpha[..., np.newaxis] == 0, background, values)
    return values.astype(np.uint8)


def composite_over_black(rgba: Sequence[int]) -> Tuple[int, int, int]:
    """
    Convert one RGBA texel to the RGB it shows over opaque black.
    A zero alpha gives BACKGROUND; otherwise each channel is
    clamp(floor(channel * 255 / alpha), 0, 255).
    """
    texel = np.asarray(rgba, dtype=np.uint8).reshape(1, 4)
    r, g, b = _composite_over_black(texel)[0]
    return int(r), int(g), int(b)


def to_rgb(buffer: PixelBuffer) -> Optional[np.ndarray]:
    """Return a new (h, w, 3) RGB array composited over black. Never mutates the buffer."""
    if not _require_buffer(buffer, "to_rgb"):
        return None
    return _composite_over_black(buffer.pixels)


def clear_to_black(buffer: PixelBuffer) -> None:
    """Zero every byte, leaving fully transparent black."""
    if not _require_buffer(buffer, "clear_to_black"):
        return
    buffer.pixels[...] = 0


def reverse_rows(buffer: PixelBuffer) -> Optional[PixelBuffer]:
    """Copy of the buffer with its row order flipped."""
    if not _require_buffer(buffer, "reverse_rows"):
        return None
    return PixelBuffer(buffer.width, buffer.height, buffer.pixels[::-1])


def difference(buffer: PixelBuffer, other: PixelBuffer) -> bool:
    """
    Replace the buffer with the per-channel absolute difference of both
    images composited over black. Alpha becomes 255.
    """
    if not _require_buffer(buffer, "difference") or not _same_size(buffer, other, "difference"):
        return False

    rgb1 = _composite_over_black(buffer.pixels).astype(np.int16)
    rgb2 = _composite_over_black(other.pixels).astype(np.int16)

    out = np.empty_like(buffer.pixels)
    out[..., :ALPHA] = np.abs(rgb1 - rgb2).astype(np.uint8)
    out[..., ALPHA] = 255
    buffer.pixels = out
    return True


def _luma(rgb: np.ndarray) -> np.ndarray:
    wr, wg, wb = LUMA_WEIGHTS
    return (rgb[..., RED].astype(np.float64) * wr
            + rgb[..., GREEN].astype(np.float64) * wg
            + rgb[..., BLUE].astype(np.float64) * wb)


def to_grayscale(buffer: PixelBuffer) -> bool:
    """Store truncated BT.601 luma in R, G and B. Alpha is left alone."""
    if not _require_buffer(buffer, "to_grayscale"):
        return False
    luma = np.clip(np.floor(_luma(buffer.pixels)), 0, 255).astype(np.uint8)
    buffer.pixels[..., :ALPHA] = luma[..., np.newaxis]
    return True


# -------------------- Quantization --------------------

UNIFORM_MASKS = (0xE0, 0xE0, 0xC0)
POPULOSITY_BUCKET_MASK = 0xF8
POPULOSITY_PALETTE_SIZE = 256


@dataclass(frozen=True)
class PaletteEntry:
    color: Tuple[int, int, int]
    frequency: int


def quantize_uniform(buffer: PixelBuffer) -> bool:
    """
    Reduce to 8 bits per pixel: 3 bits of red, 3 of green, 2 of blue.
    """
    if not _require_buffer(buffer, "quantize_uniform"):
        return False
    for channel, mask in enumerate(UNIFORM_MASKS):
        buffer.pixels[..., channel] &= mask
    return True


def build_populosity_palette(rgb: np.ndarray,
                             palette_size: int = POPULOSITY_PALETTE_SIZE) -> List[PaletteEntry]:
    """
    Histogram the colors coarsened to 5 bits per channel and return the most
    frequent ones, most frequent first. Equal frequencies keep ascending RGB
    order. Fewer than palette_size distinct colors returns all of them;
    a palette_size below 1 returns none.
    """
    flat = np.asarray(rgb, dtype=np.uint8).reshape(-1, 3)
    if len(flat) == 0:
        return []

    coarse = flat & POPULOSITY_BUCKET_MASK
    # rows come back in ascending RGB order
    colors, counts = np.unique(coarse, axis=0, return_counts=True)
    order = np.argsort(-counts, kind='stable')[:max(0, palette_size)]
    return [PaletteEntry(tuple(int(c) for c in colors[i]), int(counts[i])) for i in order]


def nearest_palette_indices(colors: np.ndarray, palette_arr: np.ndarray) -> np.ndarray:
    """
    Index of the closest palette color (squared Euclidean RGB distance) for
    every row of 'colors'. When several entries are equally close the one
    that comes first in the palette wins.
    """
    colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    palette_arr = np.asarray(palette_arr, dtype=np.float64).reshape(-1, 3)

    tree = KDTree(palette_arr)
    distances, _ = tree.query(colors, k=1, workers=-1)
    # distinct integer squared distances are at least ~1e-3 apart after sqrt
    candidates = tree.query_ball_point(colors, distances + 1e-6, workers=-1)

    result = np.empty(len(colors), dtype=np.intp)
    for row, found in enumerate(candidates):
        found = np.asarray(found, dtype=np.intp)
        dist_sq = ((palette_arr[found] - colors[row]) ** 2).sum(axis=1)
        result[row] = found[dist_sq == dist_sq.min()].min()
    return result


def quantize_populosity(buffer: PixelBuffer,
                        palette_size: int = POPULOSITY_PALETTE_SIZE) -> bool:
    """
    Populosity quantization: keep the most frequent coarsened colors as the
    palette and snap every original pixel color to its nearest entry.
    """
    if not _require_buffer(buffer, "quantize_populosity"):
        return False
    if palette_size < 1:
        logger.error(f"quantize_populosity: palette size must be at least 1, got {palette_size}")
        return False
    if buffer.pixels.size == 0:
        return True

    rgb = buffer.pixels[..., :ALPHA].reshape(-1, 3)
    palette = build_populosity_palette(rgb, palette_size)
    palette_arr = np.array([entry.color for entry in palette], dtype=np.uint8)
    logger.debug(f"Populosity palette: {len(palette)} colors")

    # search once per distinct source color
    unique_colors, inverse = np.unique(rgb, axis=0, return_inverse=True)
    nearest = nearest_palette_indices(unique_colors, palette_arr)
    mapped = palette_arr[nearest[inverse.reshape(-1)]]

    buffer.pixels[..., :ALPHA] = mapped.reshape((buffer.height, buffer.width, 3))
    return True


# -------------------- Enumerations --------------------

class DitherMode(Enum):
    THRESHOLD = "threshold"
    RANDOM = "random"
    ORDERED = "ordered"
    BRIGHTNESS = "brightness"
    FLOYD_STEINBERG = "floyd_steinberg"
    COLOR_FLOYD_STEINBERG = "color_floyd_steinberg"


# -------------------- Dither Utils --------------------

class DitherUtils:
    """
    Threshold matrix and level tables shared by the dithering strategies.
    """

    # clustered-dot cell, indexed [x % 4][y % 4]
    CLUSTER4x4 = np.array([
        [0.7059, 0.0588, 0.4706, 0.1765],
        [0.3529, 0.9412, 0.7647, 0.5294],
        [0.5882, 0.8235, 0.8824, 0.2941],
        [0.2353, 0.4118, 0.1176, 0.6471]
    ], dtype=np.float64)
    CLUSTER4x4.flags.writeable = False

    # 8-8-4 color cube: (boundaries, output levels) per channel, 0..255 scale
    RG_BOUNDARIES = (18.0, 54.5, 91.0, 127.5, 164.0, 200.5, 237.0)
    RG_LEVELS = (0, 36, 73, 109, 146, 182, 219, 255)
    B_BOUNDARIES = (42.5, 127.5, 212.5)
    B_LEVELS = (0, 85, 170, 255)

    COLOR_LEVELS = (
        (RG_BOUNDARIES, RG_LEVELS),
        (RG_BOUNDARIES, RG_LEVELS),
        (B_BOUNDARIES, B_LEVELS),
    )

    # Floyd-Steinberg weights
    FS_AHEAD = 7.0 / 16.0
    FS_BELOW = 5.0 / 16.0
    FS_BELOW_BEHIND = 3.0 / 16.0
    FS_BELOW_AHEAD = 1.0 / 16.0

    @staticmethod
    def tile_cluster_matrix(h: int, w: int) -> np.ndarray:
        """(h, w) thresholds in [0, 1] taken from CLUSTER4x4[x % 4][y % 4]."""
        xs = np.arange(w) % 4
        ys = np.arange(h) % 4
        return DitherUtils.CLUSTER4x4[xs[np.newaxis, :], ys[:, np.newaxis]]

    @staticmethod
    def level_quantizer(boundaries: Sequence[float],
                        levels: Sequence[int]) -> Callable[[float], float]:
        """
        Build a function snapping a [0, 1] value to the nearest output level.
        A value sitting exactly on a boundary goes to the upper level.
        """
        cuts = [b / 255.0 for b in boundaries]
        steps = [level / 255.0 for level in levels]

        def quantize(value: float) -> float:
            return steps[bisect_right(cuts, value)]

        return quantize


def _binarize(value: float) -> float:
    return 1.0 if value > 0.5 else 0.0


def serpentine_diffuse(plane: np.ndarray, quantize: Callable[[float], float]) -> np.ndarray:
    """
    Floyd-Steinberg error diffusion over a 2D [0, 1] plane in serpentine
    order: even rows run left to right, odd rows right to left. The error
    always flows to pixels not yet visited; error that would leave the image
    is dropped. Returns a new float64 plane of quantized values.
    """
    h, w = plane.shape
    if h == 0 or w == 0:
        return np.zeros((h, w), dtype=np.float64)

    rows = np.asarray(plane, dtype=np.float64).tolist()
    for y in range(h):
        if y % 2 == 0:
            xs, step = range(w), 1
        else:
            xs, step = range(w - 1, -1, -1), -1
        row = rows[y]
        below = rows[y + 1] if y + 1 < h else None

        for x in xs:
            old = row[x]
            new = quantize(old)
            row[x] = new
            err = old - new

            ahead = x + step
            behind = x - step
            ahead_ok = 0 <= ahead < w
            if ahead_ok:
                row[ahead] += err * DitherUtils.FS_AHEAD
            if below is not None:
                below[x] += err * DitherUtils.FS_BELOW
                if 0 <= behind < w:
                    below[behind] += err * DitherUtils.FS_BELOW_BEHIND
                if ahead_ok:
                    below[ahead] += err * DitherUtils.FS_BELOW_AHEAD

    return np.array(rows, dtype=np.float64)


# -------------------- Base Classes for Dithering Strategies --------------------

class BaseDitherStrategy:
    """
    Base class for dithering strategies.
    Each strategy must implement a .dither(rgb) method taking an (h, w, 3)
    uint8 array and returning a new uint8 array of the same shape.
    Strategies with grayscale_first set are handed an image that has
    already been through to_grayscale.
    """
    grayscale_first = True

    def dither(self, rgb: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class MonochromeDitherStrategy(BaseDitherStrategy):
    """
    Binarizes the luma (stored in the red channel of a grayscale image) to
    black or white. Subclasses decide which pixels turn white.
    """

    def white_mask(self, luma: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def dither(self, rgb: np.ndarray) -> np.ndarray:
        white = self.white_mask(rgb[..., RED])
        out = np.where(white, 255, 0).astype(np.uint8)
        return np.repeat(out[..., np.newaxis], 3, axis=2)


class ThresholdDitherStrategy(MonochromeDitherStrategy):
    """
    Static midpoint split: white where luma is above the threshold.
    """

    @staticmethod
    def get_parameter_info():
        """
        Returns metadata about configurable parameters for this dithering mode.
        """
        return {
            'threshold': {
                'type': 'int',
                'default': 127,
                'min': 0,
                'max': 255,
                'label': 'Threshold',
                'description': 'Pixels with luma above this value turn white'
            }
        }

    def __init__(self, threshold: int = 127):
        self.threshold = threshold

    def white_mask(self, luma: np.ndarray) -> np.ndarray:
        return luma > self.threshold


class RandomDitherStrategy(MonochromeDitherStrategy):
    """
    Adds uniform integer noise in [-amplitude, amplitude] to the luma before
    the midpoint test.
    """

    @staticmethod
    def get_parameter_info():
        """
        Returns metadata about configurable parameters for this dithering mode.
        """
        return {
            'amplitude': {
                'type': 'int',
                'default': 51,
                'min': 0,
                'max': 127,
                'label': 'Noise Amplitude',
                'description': 'Largest perturbation added to or subtracted from the luma'
            },
            'seed': {
                'type': 'int',
                'default': None,
                'min': 0,
                'max': 2**32 - 1,
                'label': 'Random Seed',
                'description': 'Seed for the noise (empty = different every run)'
            }
        }

    def __init__(self, amplitude: int = 51, seed: Optional[int] = None):
        self.amplitude = amplitude
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def white_mask(self, luma: np.ndarray) -> np.ndarray:
        noise = self.rng.integers(-self.amplitude, self.amplitude + 1, size=luma.shape)
        return luma.astype(np.int32) + noise > 127


class OrderedDitherStrategy(MonochromeDitherStrategy):
    """
    Clustered-dot ordered dither with the 4x4 dot-growth cell tiled across
    the image. A pixel equal to its cell threshold turns white.
    """

    def white_mask(self, luma: np.ndarray) -> np.ndarray:
        h, w = luma.shape
        thresholds = DitherUtils.tile_cluster_matrix(h, w) * 255
        return luma >= thresholds


class BrightnessDitherStrategy(MonochromeDitherStrategy):
    """
    Picks the threshold that keeps the average brightness: the number of
    white pixels should match sum(luma) / 255.
    """

    @staticmethod
    def find_threshold(luma: np.ndarray) -> int:
        """
        Scan thresholds from 255 down, accumulating histogram counts, and stop
        at the first one whose accumulated count reaches the white target.
        """
        luma = np.asarray(luma, dtype=np.uint8)
        histogram = np.bincount(luma.ravel(), minlength=256)
        target = int(luma.sum(dtype=np.uint64)) // 255

        accumulated = np.cumsum(histogram[::-1])
        reached = np.nonzero(accumulated >= target)[0]
        # the full pixel count always reaches the target
        return 255 - int(reached[0]) if len(reached) else 0

    def white_mask(self, luma: np.ndarray) -> np.ndarray:
        threshold = self.find_threshold(luma)
        logger.debug(f"Brightness-preserving threshold: {threshold}")
        return luma >= threshold


class FloydSteinbergDitherStrategy(MonochromeDitherStrategy):
    """
    Serpentine Floyd-Steinberg error diffusion to black and white.
    """

    def white_mask(self, luma: np.ndarray) -> np.ndarray:
        plane = serpentine_diffuse(luma / 255.0, _binarize)
        return plane > 0.5


class ColorFloydSteinbergDitherStrategy(BaseDitherStrategy):
    """
    Serpentine Floyd-Steinberg error diffusion per channel onto the 8-8-4
    color cube (8 red levels, 8 green, 4 blue). Works on the original colors,
    no grayscale step.
    """
    grayscale_first = False

    def dither(self, rgb: np.ndarray) -> np.ndarray:
        out = np.empty_like(rgb)
        for channel, (boundaries, levels) in enumerate(DitherUtils.COLOR_LEVELS):
            quantize = DitherUtils.level_quantizer(boundaries, levels)
            plane = serpentine_diffuse(rgb[..., channel] / 255.0, quantize)
            out[..., channel] = np.clip(np.rint(plane * 255.0), 0, 255).astype(np.uint8)
        return out


# -------------------- Image Ditherer --------------------

class ImageDitherer:
    """
    Picks a dithering strategy for a DitherMode and applies it to a buffer.
    """
    def __init__(self,
                 dither_mode: DitherMode = DitherMode.FLOYD_STEINBERG,
                 dither_params: Optional[dict] = None):
        self.dither_mode = dither_mode
        self.dither_params = dither_params or {}

    def _get_dither_strategy(self, mode: DitherMode) -> BaseDitherStrategy:
        if mode == DitherMode.THRESHOLD:
            params = ThresholdDitherStrategy.get_parameter_info()
            settings = {key: info['default'] for key, info in params.items()}
            settings.update(self.dither_params)
            return ThresholdDitherStrategy(**settings)
        elif mode == DitherMode.RANDOM:
            params = RandomDitherStrategy.get_parameter_info()
            settings = {key: info['default'] for key, info in params.items()}
            settings.update(self.dither_params)
            return RandomDitherStrategy(**settings)
        elif mode == DitherMode.ORDERED:
            return OrderedDitherStrategy()
        elif mode == DitherMode.BRIGHTNESS:
            return BrightnessDitherStrategy()
        elif mode == DitherMode.FLOYD_STEINBERG:
            return FloydSteinbergDitherStrategy()
        elif mode == DitherMode.COLOR_FLOYD_STEINBERG:
            return ColorFloydSteinbergDitherStrategy()
        else:
            raise ValueError(f"Unrecognized DitherMode: {mode}")

    def apply_dithering(self, buffer: PixelBuffer) -> bool:
        strategy = self._get_dither_strategy(self.dither_mode)
        if not _require_buffer(buffer, f"dither ({self.dither_mode.value})"):
            return False

        if strategy.grayscale_first and not to_grayscale(buffer):
            return False

        buffer.pixels[..., :ALPHA] = strategy.dither(buffer.pixels[..., :ALPHA])
        return True


def dither_threshold(buffer: PixelBuffer) -> bool:
    """Grayscale, then white where luma > 127."""
    return ImageDitherer(DitherMode.THRESHOLD).apply_dithering(buffer)


def dither_random(buffer: PixelBuffer, seed: Optional[int] = None) -> bool:
    """Grayscale, add noise in [-51, 51], then threshold at 127."""
    return ImageDitherer(DitherMode.RANDOM, {'seed': seed}).apply_dithering(buffer)


def dither_ordered(buffer: PixelBuffer) -> bool:
    return ImageDitherer(DitherMode.ORDERED).apply_dithering(buffer)


def dither_bright(buffer: PixelBuffer) -> bool:
    return ImageDitherer(DitherMode.BRIGHTNESS).apply_dithering(buffer)


def dither_fs(buffer: PixelBuffer) -> bool:
    return ImageDitherer(DitherMode.FLOYD_STEINBERG).apply_dithering(buffer)


def dither_color(buffer: PixelBuffer) -> bool:
    return ImageDitherer(DitherMode.COLOR_FLOYD_STEINBERG).apply_dithering(buffer)


# -------------------- Kernels --------------------

def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


class Kernels:
    """
    Fixed convolution and resampling kernels, indexed [row][column], i.e.
    [y offset][x offset]. Integer kernels pair with a divisor.
    """

    BOX5x5 = _frozen(np.ones((5, 5), dtype=np.int64))
    BOX_DIVISOR = 25

    BARTLETT5x5 = _frozen(np.outer([1, 2, 3, 2, 1], [1, 2, 3, 2, 1]).astype(np.int64))
    BARTLETT_DIVISOR = 81

    GAUSSIAN5x5 = _frozen(np.outer([1, 4, 6, 4, 1], [1, 4, 6, 4, 1]).astype(np.int64))
    GAUSSIAN_DIVISOR = 256

    # normalized binomial interpolation weights
    BINOMIAL3x3 = _frozen(np.array([
        [0.0625, 0.125, 0.0625],
        [0.125,  0.25,  0.125],
        [0.0625, 0.125, 0.0625]
    ], dtype=np.float64))

    BINOMIAL4x4 = _frozen(np.array([
        [0.015625, 0.046875, 0.046875, 0.015625],
        [0.046875, 0.140625, 0.140625, 0.046875],
        [0.046875, 0.140625, 0.140625, 0.046875],
        [0.015625, 0.046875, 0.046875, 0.015625]
    ], dtype=np.float64))

    # 4 taps along y, 3 along x; transpose for the other orientation
    BINOMIAL4x3 = _frozen(np.array([
        [0.03125, 0.0625, 0.03125],
        [0.09375, 0.1875, 0.09375],
        [0.09375, 0.1875, 0.09375],
        [0.03125, 0.0625, 0.03125]
    ], dtype=np.float64))


# -------------------- Convolution & Resampling --------------------

def _reflect(centers: np.ndarray, offsets: np.ndarray, size: int) -> np.ndarray:
    """
    Sample coordinates center + offset, shape (len(offsets), len(centers)).
    Out-of-range samples use center - offset instead; images smaller than
    the kernel reach past that too and are clamped to the edge.
    """
    forward = centers[np.newaxis, :] + offsets[:, np.newaxis]
    mirrored = centers[np.newaxis, :] - offsets[:, np.newaxis]
    idx = np.where((forward < 0) | (forward >= size), mirrored, forward)
    return np.clip(idx, 0, max(size - 1, 0))


def _correlate(rgb: np.ndarray, kernel: np.ndarray,
               y_centers: np.ndarray, x_centers: np.ndarray) -> np.ndarray:
    """
    Weighted RGB sums of the kernel placed over each (y, x) center. Kernel
    row j and column i sit at offsets j - (kh - 1) // 2 and i - (kw - 1) // 2,
    so odd kernels are centered and 4-tap kernels span -1..2.
    """
    kh, kw = kernel.shape
    ys = _reflect(y_centers, np.arange(kh) - (kh - 1) // 2, rgb.shape[0])
    xs = _reflect(x_centers, np.arange(kw) - (kw - 1) // 2, rgb.shape[1])

    src = rgb.astype(kernel.dtype)
    acc = np.zeros((len(y_centers), len(x_centers), 3), dtype=kernel.dtype)
    for j in range(kh):
        rows = src[ys[j]]
        for i in range(kw):
            acc += kernel[j, i] * rows[:, xs[i]]
    return acc


def _opaque(rgb: np.ndarray) -> np.ndarray:
    h, w = rgb.shape[:2]
    out = np.empty((h, w, 4), dtype=np.uint8)
    out[..., :ALPHA] = rgb
    out[..., ALPHA] = 255
    return out


def _truncate(values: np.ndarray) -> np.ndarray:
    return np.clip(np.floor(values), 0, 255).astype(np.uint8)


def _filter_5x5(buffer: PixelBuffer, kernel: np.ndarray, divisor: int, op_name: str) -> bool:
    if not _require_buffer(buffer, op_name):
        return False
    h, w = buffer.height, buffer.width
    acc = _correlate(buffer.pixels[..., :ALPHA], kernel, np.arange(h), np.arange(w))
    buffer.pixels = _opaque((acc // divisor).astype(np.uint8))
    return True


def filter_box(buffer: PixelBuffer) -> bool:
    """5x5 box blur. Alpha becomes 255."""
    return _filter_5x5(buffer, Kernels.BOX5x5, Kernels.BOX_DIVISOR, "filter_box")


def filter_bartlett(buffer: PixelBuffer) -> bool:
    """5x5 Bartlett (triangle) blur. Alpha becomes 255."""
    return _filter_5x5(buffer, Kernels.BARTLETT5x5, Kernels.BARTLETT_DIVISOR, "filter_bartlett")


def filter_gaussian(buffer: PixelBuffer) -> bool:
    """5x5 binomial Gaussian blur. Alpha becomes 255."""
    return _filter_5x5(buffer, Kernels.GAUSSIAN5x5, Kernels.GAUSSIAN_DIVISOR, "filter_gaussian")


def half_size(buffer: PixelBuffer) -> bool:
    """
    Halve both dimensions (integer division). Each output pixel is the 3x3
    binomial blur around source pixel (2x, 2y). Alpha becomes 255.
    A 1-pixel-wide or -tall image halves to an empty one.
    """
    if not _require_buffer(buffer, "half_size"):
        return False
    h, w = buffer.height, buffer.width

    ys = 2 * np.arange(h // 2)
    xs = 2 * np.arange(w // 2)
    acc = _correlate(buffer.pixels[..., :ALPHA], Kernels.BINOMIAL3x3, ys, xs)
    buffer.pixels = _opaque(_truncate(acc))
    return True


def double_size(buffer: PixelBuffer) -> bool:
    """
    Double both dimensions. The kernel depends on where the output pixel
    falls on the source grid:
      even/even: on a source pixel, 3x3 kernel
      odd/odd:   between four source pixels, 4x4 kernel
      mixed:     between two source pixels, 4x3 kernel with its 4 taps
                 along the axis that falls between them
    Alpha becomes 255.
    """
    if not _require_buffer(buffer, "double_size"):
        return False
    h, w = buffer.height, buffer.width

    rgb = buffer.pixels[..., :ALPHA]
    ys = np.arange(h)
    xs = np.arange(w)

    out = np.empty((2 * h, 2 * w, 3), dtype=np.uint8)
    out[0::2, 0::2] = _truncate(_correlate(rgb, Kernels.BINOMIAL3x3, ys, xs))
    out[1::2, 1::2] = _truncate(_correlate(rgb, Kernels.BINOMIAL4x4, ys, xs))
    out[1::2, 0::2] = _truncate(_correlate(rgb, Kernels.BINOMIAL4x3, ys, xs))
    out[0::2, 1::2] = _truncate(_correlate(rgb, Kernels.BINOMIAL4x3.T, ys, xs))

    buffer.pixels = _opaque(out)
    return True


# -------------------- Stroke Painting --------------------

@dataclass(frozen=True)
class Stroke:
    """One disc stamp: center (x, y), radius, RGBA color."""
    radius: int
    x: int
    y: int
    color: Tuple[int, int, int, int] = (0, 0, 0, 255)

    def __post_init__(self):
        if self.radius < 0 or self.x < 0 or self.y < 0:
            raise ValueError(f"Stroke radius and position must be non-negative: {self}")
        if len(self.color) != 4 or not all(0 <= c <= 255 for c in self.color):
            raise ValueError(f"Stroke color must be four 0-255 values: {self.color}")


def paint_stroke(buffer: PixelBuffer, stroke: Stroke) -> bool:
    """
    Stamp a hard-edged disc. Pixels whose squared distance from the center is
    exactly radius^2 + 1 get a 50/50 blend with the stroke color instead.
    Parts of the disc outside the image are skipped.
    """
    if not _require_buffer(buffer, "paint_stroke"):
        return False

    r = int(stroke.radius)
    offsets = np.arange(-r, r + 1)
    dy, dx = np.meshgrid(offsets, offsets, indexing='ij')
    ys = stroke.y + dy
    xs = stroke.x + dx
    inside = (xs >= 0) & (xs < buffer.width) & (ys >= 0) & (ys < buffer.height)

    dist_sq = dx * dx + dy * dy
    core = inside & (dist_sq <= r * r)
    shell = inside & (dist_sq == r * r + 1)

    color = np.array(stroke.color, dtype=np.uint16)
    pixels = buffer.pixels
    pixels[ys[core], xs[core]] = color.astype(np.uint8)
    blended = (pixels[ys[shell], xs[shell]].astype(np.uint16) + color) // 2
    pixels[ys[shell], xs[shell]] = blended.astype(np.uint8)
    return True


# -------------------- Placeholder Operations --------------------

def _not_implemented(buffer: PixelBuffer, op_name: str) -> bool:
    logger.warning(f"{op_name}: not implemented, image cleared")
    clear_to_black(buffer)
    return False


def comp_over(buffer: PixelBuffer, other: PixelBuffer) -> bool:
    """Composite buffer over other (Porter-Duff). Not implemented."""
    if not _require_buffer(buffer, "comp_over") or not _same_size(buffer, other, "comp_over"):
        return False
    return _not_implemented(buffer, "comp_over")


def comp_in(buffer: PixelBuffer, other: PixelBuffer) -> bool:
    """Composite buffer in other (Porter-Duff). Not implemented."""
    if not _require_buffer(buffer, "comp_in") or not _same_size(buffer, other, "comp_in"):
        return False
    return _not_implemented(buffer, "comp_in")


def comp_out(buffer: PixelBuffer, other: PixelBuffer) -> bool:
    """Composite buffer out of other (Porter-Duff). Not implemented."""
    if not _require_buffer(buffer, "comp_out") or not _same_size(buffer, other, "comp_out"):
        return False
    return _not_implemented(buffer, "comp_out")


def comp_atop(buffer: PixelBuffer, other: PixelBuffer) -> bool:
    """Composite buffer atop other (Porter-Duff). Not implemented."""
    if not _require_buffer(buffer, "comp_atop") or not _same_size(buffer, other, "comp_atop"):
        return False
    return _not_implemented(buffer, "comp_atop")


def comp_xor(buffer: PixelBuffer, other: PixelBuffer) -> bool:
    """Composite buffer xor other (Porter-Duff). Not implemented."""
    if not _require_buffer(buffer, "comp_xor") or not _same_size(buffer, other, "comp_xor"):
        return False
    return _not_implemented(buffer, "comp_xor")


def filter_gaussian_n(buffer: PixelBuffer, n: int = 5) -> bool:
    if not _require_buffer(buffer, "filter_gaussian_n"):
        return False
    return _not_implemented(buffer, f"filter_gaussian_n({n})")


def filter_edge(buffer: PixelBuffer) -> bool:
    if not _require_buffer(buffer, "filter_edge"):
        return False
    return _not_implemented(buffer, "filter_edge")


def filter_enhance(buffer: PixelBuffer) -> bool:
    if not _require_buffer(buffer, "filter_enhance"):
        return False
    return _not_implemented(buffer, "filter_enhance")


def npr_paint(buffer: PixelBuffer) -> bool:
    if not _require_buffer(buffer, "npr_paint"):
        return False
    return _not_implemented(buffer, "npr_paint")


def resize(buffer: PixelBuffer, scale: float = 1.0) -> bool:
    if not _require_buffer(buffer, "resize"):
        return False
    return _not_implemented(buffer, f"resize({scale})")


def rotate(buffer: PixelBuffer, angle_degrees: float = 0.0) -> bool:
    if not _require_buffer(buffer, "rotate"):
        return False
    return _not_implemented(buffer, f"rotate({angle_degrees})")


# -------------------- Operation Registry --------------------

OPERATIONS: Dict[str, Callable[..., bool]] = {
    "grayscale": to_grayscale,
    "quantize_uniform": quantize_uniform,
    "quantize_populosity": quantize_populosity,
    "dither_threshold": dither_threshold,
    "dither_random": dither_random,
    "dither_ordered": dither_ordered,
    "dither_bright": dither_bright,
    "dither_fs": dither_fs,
    "dither_color": dither_color,
    "difference": difference,
    "filter_box": filter_box,
    "filter_bartlett": filter_bartlett,
    "filter_gaussian": filter_gaussian,
    "filter_gaussian_n": filter_gaussian_n,
    "filter_edge": filter_edge,
    "filter_enhance": filter_enhance,
    "half_size": half_size,
    "double_size": double_size,
    "resize": resize,
    "rotate": rotate,
    "paint_stroke": paint_stroke,
    "npr_paint": npr_paint,
    "comp_over": comp_over,
    "comp_in": comp_in,
    "comp_out": comp_out,
    "comp_atop": comp_atop,
    "comp_xor": comp_xor,
}

# operations that take a second, same-sized image
TWO_BUFFER_OPERATIONS = frozenset({
    "difference", "comp_over", "comp_in", "comp_out", "comp_atop", "comp_xor",
})


def apply_operation(buffer: PixelBuffer, name: str,
                    other: Optional[PixelBuffer] = None, **params) -> bool:
    """
    Run a named operation from OPERATIONS. Two-image operations receive
    'other'; every other operation receives 'params' as keyword arguments.
    """
    try:
        func = OPERATIONS[name]
    except KeyError:
        raise ValueError(f"Unknown operation: {name}") from None

    if name in TWO_BUFFER_OPERATIONS:
        return func(buffer, other)
    return func(buffer, **params)
