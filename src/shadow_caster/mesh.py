"""
Box Merging with Numba JIT Compilation

Flattens a collection of axis-aligned boxes into one indexed triangle
mesh. Every box becomes the same canonical cuboid:

- 6 faces, 4 vertices each (24 vertices, so normals stay flat per face)
- 2 triangles per face (12 triangles, 36 indices)
- counter-clockwise winding seen from outside, normals pointing out

Buffers for all boxes are allocated up front; each box is then copied in
at its running vertex/index offset (arena-style append).
"""

from enum import IntEnum
from typing import NamedTuple, Sequence, Tuple
import numpy as np
from numba import njit

from .errors import ExportError
from .geometry import Box


class FaceDirection(IntEnum):
    """Face normal directions."""
    WEST = 0   # -X
    EAST = 1   # +X
    SOUTH = 2  # -Y
    NORTH = 3  # +Y
    BOTTOM = 4 # -Z
    TOP = 5    # +Z


# Normal vectors for each face direction
FACE_NORMALS = np.array([
    [-1, 0, 0],  # WEST
    [1, 0, 0],   # EAST
    [0, -1, 0],  # SOUTH
    [0, 1, 0],   # NORTH
    [0, 0, -1],  # BOTTOM
    [0, 0, 1],   # TOP
], dtype=np.float32)

# Corners of each face of the unit cube centred at the origin,
# ordered counter-clockwise when seen from outside
FACE_CORNERS = np.array([
    [[-0.5, -0.5, -0.5], [-0.5, -0.5, 0.5], [-0.5, 0.5, 0.5], [-0.5, 0.5, -0.5]],  # WEST
    [[0.5, -0.5, -0.5], [0.5, 0.5, -0.5], [0.5, 0.5, 0.5], [0.5, -0.5, 0.5]],      # EAST
    [[-0.5, -0.5, -0.5], [0.5, -0.5, -0.5], [0.5, -0.5, 0.5], [-0.5, -0.5, 0.5]],  # SOUTH
    [[-0.5, 0.5, -0.5], [-0.5, 0.5, 0.5], [0.5, 0.5, 0.5], [0.5, 0.5, -0.5]],      # NORTH
    [[-0.5, -0.5, -0.5], [-0.5, 0.5, -0.5], [0.5, 0.5, -0.5], [0.5, -0.5, -0.5]],  # BOTTOM
    [[-0.5, -0.5, 0.5], [0.5, -0.5, 0.5], [0.5, 0.5, 0.5], [-0.5, 0.5, 0.5]],      # TOP
], dtype=np.float64)

VERTICES_PER_BOX = 24
INDICES_PER_BOX = 36
TRIANGLES_PER_BOX = 12


class MeshData(NamedTuple):
    """Container for mesh geometry data."""
    vertices: np.ndarray     # (N, 3) float32 positions
    normals: np.ndarray      # (N, 3) float32 normals
    indices: np.ndarray      # (M,) uint32 triangle indices

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3


def box_template() -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Build the canonical unit cube.

    Returns:
        (vertices, normals, indices): (24, 3) float64 corners of a unit cube
        centred at the origin, (24, 3) float32 face normals and (36,) uint32
        triangle indices
    """
    vertices = FACE_CORNERS.reshape(VERTICES_PER_BOX, 3).copy()
    normals = np.repeat(FACE_NORMALS, 4, axis=0)

    # Triangle 1: 0, 1, 2
    # Triangle 2: 0, 2, 3
    quad = np.array([0, 1, 2, 0, 2, 3], dtype=np.uint32)
    indices = np.concatenate([quad + 4 * face for face in range(6)]).astype(np.uint32)

    return vertices, normals, indices


@njit(cache=True)
def _fill_boxes(
    positions: np.ndarray,
    sizes: np.ndarray,
    template_vertices: np.ndarray,
    template_normals: np.ndarray,
    template_indices: np.ndarray,
    out_vertices: np.ndarray,
    out_normals: np.ndarray,
    out_indices: np.ndarray
):
    """
    Copy one scaled and translated template cube per box into the buffers.

    Args:
        positions: (B, 3) box centres
        sizes: (B, 3) box extents
        template_vertices: (V, 3) unit cube corners
        template_normals: (V, 3) unit cube normals
        template_indices: (I,) unit cube triangle indices
        out_vertices: (B * V, 3) float32 output
        out_normals: (B * V, 3) float32 output
        out_indices: (B * I,) uint32 output
    """
    n_verts = template_vertices.shape[0]
    n_idx = template_indices.shape[0]

    for b in range(positions.shape[0]):
        vertex_offset = b * n_verts
        index_offset = b * n_idx

        for v in range(n_verts):
            for axis in range(3):
                out_vertices[vertex_offset + v, axis] = np.float32(
                    template_vertices[v, axis] * sizes[b, axis] + positions[b, axis]
                )
                out_normals[vertex_offset + v, axis] = template_normals[v, axis]

        for i in range(n_idx):
            out_indices[index_offset + i] = np.uint32(template_indices[i] + vertex_offset)


def merge_boxes(boxes: Sequence[Box]) -> MeshData:
    """
    Merge boxes into a single indexed triangle mesh.

    Args:
        boxes: Axis-aligned boxes (see geometry.Box)

    Returns:
        MeshData with 24 vertices and 12 triangles per box

    Raises:
        ExportError: if there are no boxes or a box is malformed
    """
    if len(boxes) == 0:
        raise ExportError("Cannot merge an empty box collection")

    try:
        positions = np.array([b.position for b in boxes], dtype=np.float64)
        sizes = np.array([b.size for b in boxes], dtype=np.float64)
    except (TypeError, ValueError, AttributeError) as e:
        raise ExportError(f"Malformed box collection: {e}") from e
    if positions.shape != (len(boxes), 3) or sizes.shape != (len(boxes), 3):
        raise ExportError("Every box needs a 3D position and a 3D size")
    if not (np.all(np.isfinite(positions)) and np.all(np.isfinite(sizes))):
        raise ExportError("Box coordinates must be finite")
    if np.any(sizes <= 0):
        raise ExportError("Box sizes must be positive")

    template_vertices, template_normals, template_indices = box_template()

    n = len(boxes)
    vertices = np.empty((n * VERTICES_PER_BOX, 3), dtype=np.float32)
    normals = np.empty((n * VERTICES_PER_BOX, 3), dtype=np.float32)
    indices = np.empty(n * INDICES_PER_BOX, dtype=np.uint32)

    _fill_boxes(
        positions, sizes,
        template_vertices, template_normals, template_indices,
        vertices, normals, indices
    )

    return MeshData(vertices=vertices, normals=normals, indices=indices)
