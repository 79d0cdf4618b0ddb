"""
Export modules for various 3D formats.

Supported formats:
- Binary STL (.stl) - What slicers expect
- Wavefront (.obj) - Universal, used for the web preview
- OpenSCAD (.scad) - Editable CSG script of the boxes
"""

from .stl_exporter import STLExporter, encode_stl, merge_and_encode, stl_size
from .obj_exporter import OBJExporter
from .scad_exporter import SCADExporter

__all__ = [
    "STLExporter",
    "OBJExporter",
    "SCADExporter",
    "encode_stl",
    "merge_and_encode",
    "stl_size",
]
