"""
Binary STL Exporter

STL is the lingua franca of slicers. The binary layout is:

- 80-byte header (free text, must not start with "solid")
- uint32 triangle count N (little-endian)
- N records of 50 bytes:
  - float32 normal (x, y, z)
  - 3 x float32 vertex (x, y, z)
  - uint16 attribute byte count (always 0)

Total size is exactly 84 + 50 * N bytes.
"""

from pathlib import Path
from typing import Sequence, Union
import logging
import struct
import numpy as np

from ..errors import ExportError
from ..geometry import Box
from ..mesh import MeshData, merge_boxes

logger = logging.getLogger(__name__)

HEADER_SIZE = 80
RECORD_SIZE = 50
GENERATOR = b"ShadowCaster binary STL"

TRIANGLE_DTYPE = np.dtype([
    ("normal", "<f4", (3,)),
    ("vertices", "<f4", (3, 3)),
    ("attribute", "<u2"),
])


def stl_size(triangle_count: int) -> int:
    """Exact byte size of a binary STL with the given triangle count."""
    return HEADER_SIZE + 4 + RECORD_SIZE * triangle_count


def encode_stl(mesh: MeshData, header: bytes = GENERATOR) -> bytes:
    """
    Encode a mesh as binary STL.

    Args:
        mesh: Indexed triangle mesh
        header: Header text, truncated/padded with NUL to 80 bytes

    Returns:
        STL file contents

    Raises:
        ExportError: if the mesh is empty or its indices are inconsistent
    """
    indices = np.asarray(mesh.indices)
    vertices = np.asarray(mesh.vertices, dtype=np.float32)
    normals = np.asarray(mesh.normals, dtype=np.float32)

    if len(indices) == 0 or len(vertices) == 0:
        raise ExportError("Cannot export empty mesh")
    if len(indices) % 3 != 0:
        raise ExportError(f"Index count {len(indices)} is not a multiple of 3")
    if normals.shape != vertices.shape:
        raise ExportError("Normals and vertices must have the same shape")
    if indices.max() >= len(vertices):
        raise ExportError("Triangle index out of range")
    if header.lower().startswith(b"solid"):
        raise ExportError("Binary STL header must not start with 'solid'")

    triangles = indices.reshape(-1, 3)
    records = np.zeros(len(triangles), dtype=TRIANGLE_DTYPE)
    records["normal"] = normals[triangles[:, 0]]
    records["vertices"] = vertices[triangles]

    return (
        header[:HEADER_SIZE].ljust(HEADER_SIZE, b"\0")
        + struct.pack("<I", len(triangles))
        + records.tobytes()
    )


def merge_and_encode(boxes: Sequence[Box]) -> bytes:
    """
    Merge boxes into one mesh and encode it as binary STL.

    Raises:
        ExportError: if the box collection is empty
    """
    return encode_stl(merge_boxes(boxes))


class STLExporter:
    """Export mesh data to binary STL files."""

    def __init__(self, header: bytes = GENERATOR):
        """
        Initialize the exporter.

        Args:
            header: Text stored in the 80-byte header
        """
        self.header = header

    def export(self, mesh: MeshData, output_path: Union[str, Path]) -> Path:
        """
        Write a mesh to a binary STL file.

        Args:
            mesh: MeshData to write
            output_path: Output file path (.stl)

        Returns:
            The written path
        """
        output_path = Path(output_path)
        data = encode_stl(mesh, self.header)

        with open(output_path, "wb") as f:
            f.write(data)

        logger.info(
            "Wrote %s (%d triangles, %d bytes)",
            output_path, len(mesh.indices) // 3, len(data)
        )
        return output_path
