"""
Error-Diffusion Dithering with Numba JIT Compilation

Collapses a continuous grayscale image into a small set of evenly spaced
gray levels. Each level later becomes a wall height, so the number of
levels is bounded by how many print layers fit in a wall.

Floyd-Steinberg kernel (X = current pixel, visited in row-major order):

            X    7/16
    3/16  5/16   1/16

The quantization error of each pixel is pushed onto its unvisited
neighbours before they are quantized themselves, which preserves the
local average brightness.
"""

from typing import List
import math
import numpy as np
from numba import njit


@njit(cache=True)
def _floyd_steinberg(values: np.ndarray, step: float, max_level: int) -> np.ndarray:
    """
    Dither a float grayscale image in place and return the level indices.

    Args:
        values: (H, W) float64 working buffer, modified in place
        step: Distance between two gray levels (255 / (levels - 1))
        max_level: Highest level index (levels - 1)

    Returns:
        (H, W) int32 array of level indices in [0, max_level]
    """
    height, width = values.shape
    levels = np.zeros((height, width), dtype=np.int32)

    for y in range(height):
        for x in range(width):
            old = values[y, x]
            level = math.floor(old / step + 0.5)
            new = level * step
            error = old - new

            # Accumulated error can push a pixel past either end of the range
            if level < 0:
                level = 0
            elif level > max_level:
                level = max_level
            levels[y, x] = level

            if x + 1 < width:
                values[y, x + 1] += error * 7.0 / 16.0
            if y + 1 < height:
                if x > 0:
                    values[y + 1, x - 1] += error * 3.0 / 16.0
                values[y + 1, x] += error * 5.0 / 16.0
                if x + 1 < width:
                    values[y + 1, x + 1] += error * 1.0 / 16.0

    return levels


def level_values(number_of_colors: int) -> np.ndarray:
    """
    Get the gray value of every level.

    Values are k * 255 / (n - 1) rounded half up, so both 0 and 255
    are always present.

    Args:
        number_of_colors: Number of gray levels (>= 2)

    Returns:
        uint8 array of shape (number_of_colors,)
    """
    step = 255.0 / (number_of_colors - 1)
    scaled = np.floor(np.arange(number_of_colors) * step + 0.5)
    return np.clip(scaled, 0, 255).astype(np.uint8)


def level_set(number_of_colors: int) -> List[int]:
    """Get the legal output values of dither_image() as a sorted list."""
    return [int(v) for v in level_values(number_of_colors)]


def dither_image(gray: np.ndarray, number_of_colors: int) -> np.ndarray:
    """
    Quantize a grayscale image to a fixed number of levels.

    The input array is not modified.

    Args:
        gray: (H, W) grayscale image with values in [0, 255]
        number_of_colors: Number of gray levels (>= 2)

    Returns:
        (H, W) uint8 array whose values all belong to level_set(number_of_colors)
    """
    if gray.ndim != 2:
        raise ValueError(f"Grayscale image must be 2D, got shape {gray.shape}")
    if number_of_colors < 2:
        raise ValueError("number_of_colors must be at least 2")

    working = np.array(gray, dtype=np.float64, copy=True)
    if working.size == 0:
        return working.astype(np.uint8)

    step = 255.0 / (number_of_colors - 1)
    levels = _floyd_steinberg(working, step, number_of_colors - 1)

    return level_values(number_of_colors)[levels]
