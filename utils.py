"""
Utility functions for the raster tools: the image codec boundary and
small file and color helpers.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from raster_lib import PixelBuffer

__all__ = [
    # Functions
    'load_image',
    'save_image',
    'hex_to_rgba',
    'parse_color',
    'validate_image_file',
    'list_image_files',
    # Constants
    'IMAGE_EXTENSIONS',
]

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.tga', '.png', '.bmp', '.gif', '.tiff', '.tif', '.webp', '.jpg', '.jpeg'}

# formats without an alpha channel
_OPAQUE_FORMATS = {'.jpg', '.jpeg'}


def load_image(filepath: Optional[Union[str, Path]]) -> Optional[PixelBuffer]:
    """
    Decode an image file into a PixelBuffer.

    The codec returns rows top-to-bottom whatever the on-disk order is
    (Targa files are usually stored bottom-to-top).

    Args:
        filepath: Path to the image file

    Returns:
        PixelBuffer with RGBA texels, or None if the file is missing or
        cannot be decoded
    """
    if not filepath:
        logger.error("No filename given.")
        return None

    try:
        with Image.open(filepath) as img:
            arr = np.array(img.convert('RGBA'), dtype=np.uint8)
    except OSError as e:
        logger.error(f"Error loading image '{filepath}': {e}")
        return None

    height, width = arr.shape[:2]
    return PixelBuffer(width, height, arr)


def save_image(buffer: PixelBuffer, filepath: Union[str, Path]) -> bool:
    """
    Encode a PixelBuffer to a file, format chosen by extension.
    A .tga path gets a 32-bit truecolor Targa with rows stored bottom-to-top.

    Args:
        buffer: Image to write
        filepath: Destination path

    Returns:
        True on success, False if the codec write failed
    """
    if buffer is None:
        logger.error("No image to save.")
        return False

    ext = os.path.splitext(str(filepath))[1].lower()
    try:
        image = Image.fromarray(buffer.pixels)
        if ext in _OPAQUE_FORMATS:
            image = image.convert('RGB')
        image.save(filepath)
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Error saving image '{filepath}': {e}")
        return False
    return True


def hex_to_rgba(hex_color: str) -> Tuple[int, int, int, int]:
    """
    Convert hex color string to RGBA tuple.

    Args:
        hex_color: Hex string like "#FF0000" (opaque) or "#FF000080"

    Returns:
        RGBA tuple (r, g, b, a)
    """
    hex_color = hex_color.lstrip('#')
    if len(hex_color) == 6:
        hex_color += 'ff'
    if len(hex_color) != 8:
        raise ValueError(f"Invalid hex color: #{hex_color}")
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4, 6))


def parse_color(value: Union[str, Sequence[int]]) -> Tuple[int, int, int, int]:
    """
    Accept a hex string or a list of 3 or 4 channel values and return RGBA.
    Three values are treated as opaque.
    """
    if isinstance(value, str):
        return hex_to_rgba(value)

    channels = [int(c) for c in value]
    if len(channels) == 3:
        channels.append(255)
    if len(channels) != 4 or not all(0 <= c <= 255 for c in channels):
        raise ValueError(f"Invalid color: {value}")
    return tuple(channels)


def validate_image_file(filepath: Union[str, Path]) -> bool:
    """
    Check if file is a valid image file.

    Args:
        filepath: Path to image file

    Returns:
        True if the extension is a known image format and the file exists
    """
    ext = os.path.splitext(str(filepath))[1].lower()
    return ext in IMAGE_EXTENSIONS and os.path.isfile(filepath)


def list_image_files(folder: Union[str, Path]) -> List[Path]:
    """Image files directly inside 'folder', sorted by name."""
    folder = Path(folder)
    return sorted(p for p in folder.iterdir() if validate_image_file(p))
