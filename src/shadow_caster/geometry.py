"""
Shadow Caster Geometry Synthesis

Maps each dithered pixel to one axis-aligned wall box standing on a flat
base slab. Wall height encodes darkness: a black pixel gets the tallest
wall, a white pixel a single layer.

Coordinate system: X right, Y back, Z up, millimetres. Image row 0 (the
top of the picture) is placed furthest back, so the shadow reads upright.

- Left walls are thin along X and encode the horizontal-axis image
- Up walls are thin along Y and encode the vertical-axis image
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple
import math
import numpy as np

from .config import GeometryConfig
from .errors import InvalidParameter


# Extra size added to walls so they fuse with the base and their neighbours
WALL_OVERLAP = 0.01

Vec3 = Tuple[float, float, float]


class Box(NamedTuple):
    """Axis-aligned box given by its centre and its extent (mm)."""
    position: Vec3
    size: Vec3


class ShadowCasterGeometry(NamedTuple):
    """All boxes of one shadow caster."""
    base: Box
    left_walls: List[Box]
    up_walls: List[Box]

    @property
    def boxes(self) -> List[Box]:
        """Base, left walls and up walls as one list."""
        return [self.base] + self.left_walls + self.up_walls


class Bounds(NamedTuple):
    """Axis-aligned bounding box."""
    min: np.ndarray
    max: np.ndarray

    @property
    def center(self) -> np.ndarray:
        return (self.min + self.max) / 2

    @property
    def size(self) -> np.ndarray:
        return self.max - self.min


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from -inf."""
    return int(math.floor(value + 0.5))


def round_to_layer_height(height: float, layer_height: float) -> float:
    """Snap a height to the nearest multiple of the layer height."""
    return round_half_up(height / layer_height) * layer_height


def wall_height(value: float, config: GeometryConfig) -> float:
    """
    Height of a wall above its first layer for a brightness value.

    Args:
        value: Dithered brightness (0 = black, 255 = white)
        config: Resolved geometry config

    Returns:
        Height in mm, a multiple of layer_height
    """
    return round_to_layer_height(
        (1 - value / 256) * (config.max_height - config.layer_height),
        config.layer_height
    )


def _check_grid(grid: Optional[np.ndarray], name: str) -> Optional[np.ndarray]:
    if grid is None:
        return None
    grid = np.asarray(grid)
    if grid.ndim != 2:
        raise InvalidParameter(name, f"must be a 2D brightness grid, got shape {grid.shape}")
    if grid.size == 0:
        raise InvalidParameter(name, "brightness grid is empty")
    return grid


def _height_lookup(grid: np.ndarray, config: GeometryConfig) -> dict:
    """Compute each distinct brightness value's wall height once."""
    return {int(v): wall_height(int(v), config) for v in np.unique(grid)}


def synthesize(
    horiz_grid: Optional[np.ndarray],
    vert_grid: Optional[np.ndarray],
    config: GeometryConfig
) -> ShadowCasterGeometry:
    """
    Build the base slab and one wall per pixel of each active grid.

    An axis is active when its grid is given and its do_*_image flag is set.
    With both axes active, rows past the shorter grid's height are dropped
    so that both shadow images share the same footprint. The base spans
    every supplied grid, including one whose axis is disabled.

    Args:
        horiz_grid: (H, W) brightness grid for the left walls, or None
        vert_grid: (H, W) brightness grid for the up walls, or None
        config: Resolved geometry config

    Returns:
        ShadowCasterGeometry

    Raises:
        InvalidParameter: if no axis is active or a grid is malformed
    """
    horiz_grid = _check_grid(horiz_grid, "horiz_grid")
    vert_grid = _check_grid(vert_grid, "vert_grid")
    supplied = [g for g in (horiz_grid, vert_grid) if g is not None]

    horiz = horiz_grid if config.do_horiz_image else None
    vert = vert_grid if config.do_vert_image else None

    active = [g for g in (horiz, vert) if g is not None]
    if not active:
        raise InvalidParameter(
            "do_horiz_image/do_vert_image", "no image axis is enabled, nothing to build"
        )

    end_y = min(g.shape[0] for g in active)

    cell = config.cell_size
    border = config.border
    layer = config.layer_height
    plus_offset = 0.5 * (cell - config.wall_width) if config.plus_walls else 0.0
    thin = config.wall_width + WALL_OVERLAP
    wide = cell + WALL_OVERLAP

    left_walls: List[Box] = []
    if horiz is not None:
        heights = _height_lookup(horiz[:end_y], config)
        for y in range(end_y):
            pos_y = border + (end_y - y) * cell
            for x in range(horiz.shape[1]):
                h = heights[int(horiz[y, x])]
                pos_x = border + (x + 1) * cell + plus_offset
                pos_z = config.bottom_thk + h / 2 + layer / 2
                left_walls.append(Box((pos_x, pos_y, pos_z), (thin, wide, h + layer)))

    up_walls: List[Box] = []
    if vert is not None:
        heights = _height_lookup(vert[:end_y], config)
        for y in range(end_y):
            pos_y = border + (end_y - y) * cell + plus_offset
            for x in range(vert.shape[1]):
                h = heights[int(vert[y, x])]
                pos_x = border + (x + 1) * cell
                pos_z = config.bottom_thk + h / 2 + layer / 2
                up_walls.append(Box((pos_x, pos_y, pos_z), (wide, thin, h + layer)))

    # The footprint covers every supplied grid, even one whose axis is off
    image_width = max(g.shape[1] for g in supplied)
    image_height = max(g.shape[0] for g in supplied)
    base_w = border * 2 + cell * (image_width + 2)
    base_h = border * 2 + cell * (image_height + 2)
    base = Box(
        (base_w / 2, base_h / 2, config.bottom_thk / 2),
        (base_w, base_h, config.bottom_thk)
    )

    return ShadowCasterGeometry(base=base, left_walls=left_walls, up_walls=up_walls)


def compute_bounds(boxes: Sequence[Box]) -> Bounds:
    """
    Bounding box of a collection of boxes, for camera framing.

    Args:
        boxes: Boxes to enclose

    Returns:
        Bounds covering every box's full extent
    """
    if len(boxes) == 0:
        raise InvalidParameter("boxes", "cannot compute bounds of no boxes")

    positions = np.array([b.position for b in boxes], dtype=np.float64)
    half = np.array([b.size for b in boxes], dtype=np.float64) / 2
    return Bounds(
        min=(positions - half).min(axis=0),
        max=(positions + half).max(axis=0)
    )
