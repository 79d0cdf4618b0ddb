"""
Wavefront OBJ Format Exporter

OBJ is a universal text-based format supported by virtually all 3D software
and by browser viewers, which makes it the preview format of the web UI.

Limitations:
- Text format = larger file sizes than binary STL
- Face normals only (one "vn" per distinct direction)
"""

from pathlib import Path
from typing import Union, List
import logging
import numpy as np

from ..errors import ExportError
from ..mesh import MeshData

logger = logging.getLogger(__name__)


class OBJExporter:
    """
    Export mesh data to Wavefront OBJ format.

    Supports:
    - Geometry with or without normals
    - Uniform scaling of vertex positions
    """

    def __init__(
        self,
        scale: float = 1.0,
        include_normals: bool = True
    ):
        """
        Initialize the exporter.

        Args:
            scale: Scale factor for vertex positions
            include_normals: Whether to include face normals
        """
        self.scale = scale
        self.include_normals = include_normals

    def to_text(self, mesh: MeshData, model_name: str = "shadow_caster") -> str:
        """
        Render a mesh as OBJ text.

        Args:
            mesh: MeshData to render
            model_name: Name for the object

        Returns:
            OBJ file contents
        """
        if len(mesh.vertices) == 0 or len(mesh.indices) == 0:
            raise ExportError("Cannot export empty mesh")
        if len(mesh.indices) % 3 != 0:
            raise ExportError(f"Index count {len(mesh.indices)} is not a multiple of 3")

        vertices = np.asarray(mesh.vertices, dtype=np.float64) * self.scale
        indices = np.asarray(mesh.indices, dtype=np.int64)

        lines: List[str] = []
        lines.append("# Shadow Caster OBJ Export")
        lines.append(f"# Vertices: {len(vertices)}")
        lines.append(f"# Triangles: {len(indices) // 3}")
        lines.append("")
        lines.append(f"o {model_name}")
        lines.append("")

        for v in vertices:
            lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}")
        lines.append("")

        if self.include_normals:
            unique_normals, normal_indices = np.unique(
                np.asarray(mesh.normals), axis=0, return_inverse=True
            )
            normal_indices = normal_indices.reshape(-1)
            for n in unique_normals:
                lines.append(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}")
            lines.append("")

        # OBJ indices are 1-based
        for i in range(0, len(indices), 3):
            i0, i1, i2 = indices[i] + 1, indices[i + 1] + 1, indices[i + 2] + 1

            if self.include_normals:
                # Faces are flat: the first vertex carries the face normal
                ni = normal_indices[indices[i]] + 1
                lines.append(f"f {i0}//{ni} {i1}//{ni} {i2}//{ni}")
            else:
                lines.append(f"f {i0} {i1} {i2}")

        return "\n".join(lines) + "\n"

    def export(
        self,
        mesh: MeshData,
        output_path: Union[str, Path],
        model_name: str = "shadow_caster"
    ) -> Path:
        """
        Export mesh to OBJ file.

        Args:
            mesh: MeshData to write
            output_path: Output file path (.obj)
            model_name: Name for the model/object

        Returns:
            The written path
        """
        output_path = Path(output_path)
        text = self.to_text(mesh, model_name)

        with open(output_path, "w") as f:
            f.write(text)

        logger.info("Wrote %s (%d vertices)", output_path, len(mesh.vertices))
        return output_path
