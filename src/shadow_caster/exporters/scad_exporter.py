"""
OpenSCAD Script Exporter

Writes the boxes as an OpenSCAD union of centred cubes. The script can be
rendered to STL by OpenSCAD itself, or edited before printing (for example
to add a frame or a stand around the base).
"""

from pathlib import Path
from typing import Sequence, Union, List
import logging

from ..errors import ExportError
from ..geometry import Box

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    """Compact decimal for SCAD source (4 decimals, no trailing zeros)."""
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _vec(values) -> str:
    return "[" + ", ".join(_fmt(v) for v in values) + "]"


class SCADExporter:
    """Export boxes to an OpenSCAD script."""

    def __init__(self, fragment_size: float = 0.5, fragment_angle: float = 1.0):
        """
        Initialize the exporter.

        Args:
            fragment_size: Value of $fs in the script
            fragment_angle: Value of $fa in the script
        """
        self.fragment_size = fragment_size
        self.fragment_angle = fragment_angle

    def to_text(
        self,
        base: Box,
        left_walls: Sequence[Box] = (),
        up_walls: Sequence[Box] = ()
    ) -> str:
        """
        Render the shadow caster as OpenSCAD source.

        Args:
            base: Base slab
            left_walls: Walls of the horizontal-axis image
            up_walls: Walls of the vertical-axis image

        Returns:
            Script text
        """
        if base is None:
            raise ExportError("Cannot export a shadow caster without a base")

        lines: List[str] = []
        lines.append("// Shadow Caster OpenSCAD Export")
        lines.append(f"// Boxes: {1 + len(left_walls) + len(up_walls)}")
        lines.append("")
        lines.append(f"$fs = {_fmt(self.fragment_size)};")
        lines.append(f"$fa = {_fmt(self.fragment_angle)};")
        lines.append("")
        lines.append("union() {")
        lines.append("  // Base")
        lines.append(self._cube(base))

        for title, walls in (("Left walls", left_walls), ("Up walls", up_walls)):
            if not walls:
                continue
            lines.append("")
            lines.append(f"  // {title}")
            for wall in walls:
                lines.append(self._cube(wall))

        lines.append("}")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _cube(box: Box) -> str:
        return f"  translate({_vec(box.position)}) cube({_vec(box.size)}, center=true);"

    def export(
        self,
        output_path: Union[str, Path],
        base: Box,
        left_walls: Sequence[Box] = (),
        up_walls: Sequence[Box] = ()
    ) -> Path:
        """
        Write the script to a .scad file.

        Returns:
            The written path
        """
        output_path = Path(output_path)
        text = self.to_text(base, left_walls, up_walls)

        with open(output_path, "w") as f:
            f.write(text)

        logger.info("Wrote %s", output_path)
        return output_path
