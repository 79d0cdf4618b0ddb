"""
Shadow Caster
=============

Turns one or two images into a 3D-printable solid that casts them as shadows.

Each pixel becomes a thin wall on a flat base; the darker the pixel, the
taller the wall. Lit from the side, the walls of the "left" image shade the
floor of each cell and the picture appears; light from the perpendicular
direction reveals the second, "up" image.

Key Features:
- Floyd-Steinberg dithering to the gray levels a printer can reproduce
- Wall heights snapped to the print layer height
- Two independently processed images registered on one footprint
- Arena-style box merging with Numba JIT compilation
- Export to binary STL, Wavefront (.obj) and OpenSCAD (.scad)

Example Usage:
    from shadow_caster import ShadowCasterGenerator, get_preset

    generator = ShadowCasterGenerator(get_preset("default"))
    generator.load_horizontal_image("horizontal.jpg")
    generator.load_vertical_image("vertical.jpg")
    generator.synthesize()
    generator.export_stl("caster.stl")
"""

__version__ = "1.0.0"
__author__ = "Shadow Caster Team"

from .errors import ShadowCasterError, DecodeError, InvalidParameter, ExportError
from .config import ImageConfig, GeometryConfig, resolve_config, get_preset, PRESETS
from .ingestion import quantize, load_image
from .geometry import Box, ShadowCasterGeometry, Bounds, synthesize, compute_bounds
from .mesh import MeshData, merge_boxes
from .exporters import encode_stl, merge_and_encode
from .generator import ShadowCasterGenerator, build_shadow_caster

__all__ = [
    "ShadowCasterGenerator",
    "build_shadow_caster",
    "ImageConfig",
    "GeometryConfig",
    "resolve_config",
    "get_preset",
    "PRESETS",
    "quantize",
    "load_image",
    "Box",
    "ShadowCasterGeometry",
    "Bounds",
    "synthesize",
    "compute_bounds",
    "MeshData",
    "merge_boxes",
    "encode_stl",
    "merge_and_encode",
    "ShadowCasterError",
    "DecodeError",
    "InvalidParameter",
    "ExportError",
]
