"""
Configuration Resolution

Two-stage configuration:
1. ImageConfig holds the raw user-facing parameters
2. resolve_config() validates them and derives the geometry constants
   (color count, max wall height, border, output filename) once,
   producing an immutable GeometryConfig

All lengths are millimetres.
"""

from dataclasses import dataclass, fields, asdict, replace
from pathlib import Path
from typing import Optional, Union, Dict, Any
import math

from .errors import InvalidParameter


# Tolerance for floor() on (cell - wall) / layer so that 1.7 / 0.1 is 17, not 16
_FLOOR_EPSILON = 1e-9

ImageSource = Optional[Union[str, Path]]


@dataclass(frozen=True)
class ImageConfig:
    """
    Raw shadow caster parameters as entered by the user.

    Attributes:
        horiz_image: Image cast as the horizontal-axis shadow (left walls)
        vert_image: Image cast as the vertical-axis shadow (up walls)
        width_in_pixels: Target image width; height follows the aspect ratio
        do_horiz_image: Build the left walls
        do_vert_image: Build the up walls
        cell_size: Side of the square footprint of one pixel
        wall_width: Thickness of a wall, included in cell_size
        bottom_thk: Thickness of the base slab
        layer_height: Print layer height; wall heights snap to it
        number_of_colors_override: Gray levels to dither to, 0 = derive from geometry
        plus_walls: Offset each wall by half the open cell width
    """

    horiz_image: ImageSource = None
    vert_image: ImageSource = None
    width_in_pixels: int = 100
    do_horiz_image: bool = True
    do_vert_image: bool = True
    cell_size: float = 2.1
    wall_width: float = 0.4
    bottom_thk: float = 0.8
    layer_height: float = 0.1
    number_of_colors_override: int = 0
    plus_walls: bool = False

    # Keys used by the web front end
    _CAMEL_KEYS = {
        "horizImageFilename": "horiz_image",
        "vertImageFilename": "vert_image",
        "widthInPixels": "width_in_pixels",
        "doHorizImage": "do_horiz_image",
        "doVertImage": "do_vert_image",
        "cellSize": "cell_size",
        "wallWidth": "wall_width",
        "bottomThk": "bottom_thk",
        "layerHeight": "layer_height",
        "numberOfColorsOverride": "number_of_colors_override",
        "shouldDoPlusWalls": "plus_walls",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageConfig":
        """
        Build a config from a mapping.

        Accepts both snake_case field names and the camelCase keys of the
        web front end. Unknown keys raise InvalidParameter.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = cls._CAMEL_KEYS.get(key, key)
            if name not in known:
                raise InvalidParameter(key, "unknown parameter")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Return the parameters as a plain dict."""
        data = asdict(self)
        for key in ("horiz_image", "vert_image"):
            if data[key] is not None:
                data[key] = str(data[key])
        return data

    def with_overrides(self, **overrides) -> "ImageConfig":
        """Return a copy with some parameters replaced."""
        return replace(self, **overrides)


@dataclass(frozen=True)
class GeometryConfig:
    """Validated parameters plus the derived geometry constants."""

    horiz_image: ImageSource
    vert_image: ImageSource
    width_in_pixels: int
    do_horiz_image: bool
    do_vert_image: bool
    cell_size: float
    wall_width: float
    bottom_thk: float
    layer_height: float
    number_of_colors_override: int
    plus_walls: bool
    number_of_colors: int
    max_height: float
    border: float
    output_filename: str


def format_number(value: float) -> str:
    """Format with at most two decimals and no trailing zeros."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def default_filename(
    width_in_pixels: int,
    cell_size: float,
    wall_width: float,
    bottom_thk: float,
    max_height: float,
    extension: str = "stl"
) -> str:
    """Build the output filename that encodes the geometry parameters."""
    return (
        f"{width_in_pixels}px_{format_number(cell_size)}cell_"
        f"{format_number(wall_width)}wall_{format_number(bottom_thk)}bottom_"
        f"{format_number(max_height)}maxHeight.{extension}"
    )


def _require_positive(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParameter(name, f"must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameter(name, f"must be positive, got {value}")


def resolve_config(params: ImageConfig) -> GeometryConfig:
    """
    Validate raw parameters and derive the geometry constants.

    Args:
        params: Raw user parameters

    Returns:
        Immutable GeometryConfig

    Raises:
        InvalidParameter: naming the first field that violates an invariant
    """
    if isinstance(params.width_in_pixels, bool) or not isinstance(params.width_in_pixels, int):
        raise InvalidParameter(
            "width_in_pixels", f"must be an integer, got {params.width_in_pixels!r}"
        )
    if params.width_in_pixels <= 0:
        raise InvalidParameter(
            "width_in_pixels", f"must be positive, got {params.width_in_pixels}"
        )

    for name in ("cell_size", "wall_width", "bottom_thk", "layer_height"):
        _require_positive(name, getattr(params, name))

    if params.wall_width >= params.cell_size:
        raise InvalidParameter(
            "wall_width",
            f"must be smaller than cell_size ({params.wall_width} >= {params.cell_size})"
        )

    override = params.number_of_colors_override
    if isinstance(override, bool) or not isinstance(override, int) or override < 0:
        raise InvalidParameter(
            "number_of_colors_override", f"must be an integer >= 0, got {override!r}"
        )

    if override == 0:
        ratio = (params.cell_size - params.wall_width) / params.layer_height
        number_of_colors = int(math.floor(ratio + _FLOOR_EPSILON))
        if number_of_colors < 1:
            raise InvalidParameter(
                "layer_height",
                "(cell_size - wall_width) / layer_height must allow at least one color level"
            )
    else:
        number_of_colors = override

    max_height = number_of_colors * params.layer_height

    return GeometryConfig(
        horiz_image=params.horiz_image,
        vert_image=params.vert_image,
        width_in_pixels=params.width_in_pixels,
        do_horiz_image=bool(params.do_horiz_image),
        do_vert_image=bool(params.do_vert_image),
        cell_size=float(params.cell_size),
        wall_width=float(params.wall_width),
        bottom_thk=float(params.bottom_thk),
        layer_height=float(params.layer_height),
        number_of_colors_override=override,
        plus_walls=bool(params.plus_walls),
        number_of_colors=number_of_colors,
        max_height=max_height,
        border=float(params.cell_size),
        output_filename=default_filename(
            params.width_in_pixels,
            params.cell_size,
            params.wall_width,
            params.bottom_thk,
            max_height,
        ),
    )


DEFAULT_CONFIG = ImageConfig(
    horiz_image="horizontal.jpg",
    vert_image="vertical.jpg",
)

PRESETS: Dict[str, ImageConfig] = {
    "default": DEFAULT_CONFIG,
    "p2": DEFAULT_CONFIG.with_overrides(
        width_in_pixels=50,
        cell_size=1.0,
        wall_width=0.2,
        bottom_thk=0.4,
        layer_height=0.05,
    ),
    "p3": DEFAULT_CONFIG.with_overrides(
        width_in_pixels=85,
        cell_size=1.1,
        wall_width=0.22,
        bottom_thk=0.6,
        layer_height=0.05,
    ),
    "fuji": DEFAULT_CONFIG.with_overrides(
        horiz_image="great_wave.jpg",
        vert_image="red_fuji.jpg",
        width_in_pixels=100,
        cell_size=1.1,
        wall_width=0.22,
        bottom_thk=0.6,
        layer_height=0.05,
    ),
}


def get_preset(name: str, **overrides) -> ImageConfig:
    """
    Get a named parameter preset.

    Args:
        name: One of PRESETS
        **overrides: Fields to replace on the preset

    Returns:
        ImageConfig
    """
    if name not in PRESETS:
        raise InvalidParameter(
            "preset", f"unknown preset {name!r} (choose from {', '.join(sorted(PRESETS))})"
        )
    preset = PRESETS[name]
    return preset.with_overrides(**overrides) if overrides else preset
