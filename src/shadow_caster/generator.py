"""
Main ShadowCasterGenerator Class

This is the primary interface for the shadow caster pipeline.
It orchestrates:
1. Parameter resolution
2. Image loading and dithering (one image per shadow axis)
3. Geometry synthesis (base slab + one wall per pixel)
4. Mesh merging
5. Export to STL / OBJ / OpenSCAD

Example Usage:
    generator = ShadowCasterGenerator(get_preset("default"))
    generator.load_horizontal_image("horizontal.jpg")
    generator.load_vertical_image("vertical.jpg")
    generator.synthesize()
    generator.export_stl()
"""

from contextlib import nullcontext
from pathlib import Path
from typing import Optional, Union, List
import logging
import numpy as np

from .config import ImageConfig, GeometryConfig, resolve_config
from .errors import InvalidParameter
from .geometry import ShadowCasterGeometry, Bounds, synthesize, compute_bounds
from .ingestion import ImageInput, quantize
from .mesh import MeshData, merge_boxes
from .telemetry import MemoryMonitor
from .exporters import STLExporter, OBJExporter, SCADExporter, encode_stl

logger = logging.getLogger(__name__)

HORIZONTAL = "horizontal"
VERTICAL = "vertical"

FORMAT_SUFFIXES = (".stl", ".obj", ".scad")


def with_format(path: Path, suffix: str) -> Path:
    """
    Swap a known format suffix, or append one.

    Generated names contain dots ("0.4wall"), so with_suffix() alone
    would cut them short.
    """
    if path.suffix.lower() in FORMAT_SUFFIXES:
        return path.with_suffix(suffix)
    return path.with_name(path.name + suffix)


class ShadowCasterGenerator:
    """
    High-level interface for building shadow casters.

    Any call that changes the inputs (parameters or images) discards the
    derived geometry and mesh, so an export never sees stale results.

    Attributes:
        config: The resolved geometry config
        geometry: The current boxes (after synthesize())
        mesh: The current merged mesh (after generate_mesh())
    """

    def __init__(
        self,
        params: Optional[ImageConfig] = None,
        monitor: Optional[MemoryMonitor] = None
    ):
        """
        Initialize the ShadowCasterGenerator.

        Args:
            params: Raw parameters (defaults to ImageConfig())
            monitor: Optional memory monitor sampled around each stage
        """
        self._params = params or ImageConfig()
        self._config = resolve_config(self._params)
        self._monitor = monitor

        self._sources = {HORIZONTAL: None, VERTICAL: None}
        self._grids = {HORIZONTAL: None, VERTICAL: None}
        self._geometry: Optional[ShadowCasterGeometry] = None
        self._mesh: Optional[MeshData] = None

    def _invalidate(self):
        self._geometry = None
        self._mesh = None

    def _stage(self, name: str):
        if self._monitor is not None:
            return self._monitor.stage(name)
        return nullcontext()

    def configure(self, **overrides) -> "ShadowCasterGenerator":
        """
        Change parameters.

        Loaded images are re-dithered when the width or color count changes.

        Args:
            **overrides: ImageConfig fields to replace

        Returns:
            self for method chaining
        """
        params = self._params.with_overrides(**overrides)
        config = resolve_config(params)

        requantize = (
            config.width_in_pixels != self._config.width_in_pixels
            or config.number_of_colors != self._config.number_of_colors
        )

        # Nothing changes unless every loaded image re-dithers
        grids = dict(self._grids)
        if requantize:
            for axis, source in self._sources.items():
                if source is not None:
                    grids[axis] = self._quantize(source, axis, config)

        self._params = params
        self._config = config
        self._grids = grids
        self._invalidate()
        return self

    def _quantize(
        self,
        source: ImageInput,
        axis: str,
        config: Optional[GeometryConfig] = None
    ) -> np.ndarray:
        config = config or self._config
        if config.number_of_colors < 2:
            field = "number_of_colors_override" if config.number_of_colors_override else "layer_height"
            raise InvalidParameter(
                field, f"dithering needs at least 2 gray levels, resolved to {config.number_of_colors}"
            )

        with self._stage(f"quantize {axis}"):
            grid = quantize(source, config.width_in_pixels, config.number_of_colors)
        logger.info(
            "Dithered %s image to %dx%d with %d levels",
            axis, grid.shape[1], grid.shape[0], config.number_of_colors
        )
        return grid

    def _load(self, axis: str, source: ImageInput) -> "ShadowCasterGenerator":
        grid = self._quantize(source, axis)
        self._sources[axis] = source
        self._grids[axis] = grid
        self._invalidate()
        return self

    def load_horizontal_image(self, source: ImageInput) -> "ShadowCasterGenerator":
        """
        Load the image cast by the left walls.

        Args:
            source: Path, bytes, file object, PIL image or pixel array

        Returns:
            self for method chaining
        """
        return self._load(HORIZONTAL, source)

    def load_vertical_image(self, source: ImageInput) -> "ShadowCasterGenerator":
        """
        Load the image cast by the up walls.

        Args:
            source: Path, bytes, file object, PIL image or pixel array

        Returns:
            self for method chaining
        """
        return self._load(VERTICAL, source)

    def _load_grid(self, axis: str, grid: np.ndarray) -> "ShadowCasterGenerator":
        grid = np.array(grid, dtype=np.uint8, copy=True)
        if grid.ndim != 2:
            raise InvalidParameter(f"{axis}_grid", f"must be 2D, got shape {grid.shape}")
        grid.flags.writeable = False
        self._sources[axis] = None
        self._grids[axis] = grid
        self._invalidate()
        return self

    def load_horizontal_array(self, grid: np.ndarray) -> "ShadowCasterGenerator":
        """Use an already dithered (H, W) brightness grid for the left walls."""
        return self._load_grid(HORIZONTAL, grid)

    def load_vertical_array(self, grid: np.ndarray) -> "ShadowCasterGenerator":
        """Use an already dithered (H, W) brightness grid for the up walls."""
        return self._load_grid(VERTICAL, grid)

    def load_configured_images(self) -> "ShadowCasterGenerator":
        """
        Load the image files named in the parameters for each enabled axis.

        Returns:
            self for method chaining
        """
        if self._config.do_horiz_image and self._config.horiz_image is not None:
            self.load_horizontal_image(self._config.horiz_image)
        if self._config.do_vert_image and self._config.vert_image is not None:
            self.load_vertical_image(self._config.vert_image)
        return self

    def synthesize(self) -> "ShadowCasterGenerator":
        """
        Build the boxes from the loaded grids.

        Returns:
            self for method chaining
        """
        with self._stage("synthesize"):
            self._geometry = synthesize(
                self._grids[HORIZONTAL],
                self._grids[VERTICAL],
                self._config
            )
        self._mesh = None

        logger.info(
            "Synthesized %d left walls and %d up walls",
            len(self._geometry.left_walls), len(self._geometry.up_walls)
        )
        return self

    def generate_mesh(self) -> "ShadowCasterGenerator":
        """
        Merge the boxes into a single mesh.

        Returns:
            self for method chaining
        """
        if self._geometry is None:
            self.synthesize()

        with self._stage("merge"):
            self._mesh = merge_boxes(self._geometry.boxes)

        logger.debug(
            "Merged %d boxes into %d triangles",
            len(self._geometry.boxes), self._mesh.triangle_count
        )
        return self

    def _ensure_mesh(self) -> MeshData:
        if self._mesh is None:
            self.generate_mesh()
        return self._mesh

    def _output_path(self, output_path: Optional[Union[str, Path]], suffix: str) -> Path:
        if output_path is None:
            return with_format(Path(self._config.output_filename), suffix)
        return Path(output_path)

    def to_stl_bytes(self) -> bytes:
        """Get the binary STL contents."""
        return encode_stl(self._ensure_mesh())

    def export_stl(self, output_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Export to binary STL.

        Args:
            output_path: Output file path (default: the parameter-encoding filename)

        Returns:
            The written path
        """
        path = self._output_path(output_path, ".stl")
        return STLExporter().export(self._ensure_mesh(), path)

    def export_obj(self, output_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Export to Wavefront OBJ.

        Args:
            output_path: Output file path

        Returns:
            The written path
        """
        path = self._output_path(output_path, ".obj")
        return OBJExporter().export(self._ensure_mesh(), path)

    def export_scad(self, output_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Export to an OpenSCAD script.

        Args:
            output_path: Output file path

        Returns:
            The written path
        """
        if self._geometry is None:
            self.synthesize()
        path = self._output_path(output_path, ".scad")
        return SCADExporter().export(
            path,
            self._geometry.base,
            self._geometry.left_walls,
            self._geometry.up_walls
        )

    def export_all(
        self,
        base_path: Optional[Union[str, Path]] = None,
        formats: Optional[List[str]] = None
    ) -> List[Path]:
        """
        Export to multiple formats at once.

        Args:
            base_path: Base file path (without extension)
            formats: List of formats to export (default: stl)

        Returns:
            Written paths
        """
        base_path = self._output_path(base_path, ".stl")
        formats = formats or ["stl"]
        outputs = []

        if "stl" in formats:
            outputs.append(self.export_stl(with_format(base_path, ".stl")))

        if "obj" in formats:
            outputs.append(self.export_obj(with_format(base_path, ".obj")))

        if "scad" in formats:
            outputs.append(self.export_scad(with_format(base_path, ".scad")))

        return outputs

    @property
    def params(self) -> ImageConfig:
        """Get the raw parameters."""
        return self._params

    @property
    def config(self) -> GeometryConfig:
        """Get the resolved geometry config."""
        return self._config

    @property
    def horizontal_grid(self) -> Optional[np.ndarray]:
        return self._grids[HORIZONTAL]

    @property
    def vertical_grid(self) -> Optional[np.ndarray]:
        return self._grids[VERTICAL]

    @property
    def geometry(self) -> Optional[ShadowCasterGeometry]:
        """Get the current boxes."""
        return self._geometry

    @property
    def mesh(self) -> Optional[MeshData]:
        """Get the current mesh data."""
        return self._mesh

    @property
    def bounds(self) -> Optional[Bounds]:
        """Get the bounding box of the current geometry."""
        if self._geometry is None:
            return None
        return compute_bounds(self._geometry.boxes)

    @property
    def box_count(self) -> int:
        """Get the number of boxes."""
        if self._geometry is None:
            return 0
        return 1 + len(self._geometry.left_walls) + len(self._geometry.up_walls)

    @property
    def triangle_count(self) -> int:
        """Get the number of mesh triangles."""
        if self._mesh is None:
            return 0
        return self._mesh.triangle_count

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "horizontal_loaded": self._grids[HORIZONTAL] is not None,
            "vertical_loaded": self._grids[VERTICAL] is not None,
            "synthesized": self._geometry is not None,
            "meshed": self._mesh is not None,
            "number_of_colors": self._config.number_of_colors,
            "max_height": self._config.max_height,
            "output_filename": self._config.output_filename,
        }

        for axis, grid in self._grids.items():
            if grid is not None:
                info[f"{axis}_size"] = (grid.shape[1], grid.shape[0])

        if self._geometry is not None:
            bounds = self.bounds
            info["box_count"] = self.box_count
            info["left_walls"] = len(self._geometry.left_walls)
            info["up_walls"] = len(self._geometry.up_walls)
            info["size_mm"] = tuple(float(v) for v in bounds.size)

        if self._mesh is not None:
            info["vertex_count"] = len(self._mesh.vertices)
            info["triangle_count"] = self._mesh.triangle_count

        return info


def build_shadow_caster(
    params: ImageConfig,
    horizontal: Optional[ImageInput] = None,
    vertical: Optional[ImageInput] = None
) -> bytes:
    """
    Run the whole pipeline and return the binary STL.

    Args:
        params: Raw parameters
        horizontal: Image for the left walls (ignored if that axis is disabled)
        vertical: Image for the up walls (ignored if that axis is disabled)

    Returns:
        STL file contents
    """
    generator = ShadowCasterGenerator(params)
    if horizontal is not None and generator.config.do_horiz_image:
        generator.load_horizontal_image(horizontal)
    if vertical is not None and generator.config.do_vert_image:
        generator.load_vertical_image(vertical)
    return generator.synthesize().to_stl_bytes()
