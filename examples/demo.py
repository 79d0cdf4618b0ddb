#!/usr/bin/env python3
"""
Shadow Caster Demo Script

This script demonstrates the full pipeline by:
1. Creating two synthetic test images (no external images needed)
2. Dithering them and building the walls
3. Exporting to every supported format
4. Printing statistics

Run with: python examples/demo.py
"""

import sys
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shadow_caster import ShadowCasterGenerator, get_preset
from shadow_caster.dither import level_set


def create_test_circle(size: int = 64) -> np.ndarray:
    """
    Create a dark disc with a soft edge on a white background.

    Returns:
        (size, size, 3) uint8 RGB array
    """
    yy, xx = np.mgrid[0:size, 0:size]
    center = (size - 1) / 2
    dist = np.sqrt((xx - center) ** 2 + (yy - center) ** 2) / (size / 2)
    gray = np.clip(dist * 255, 0, 255).astype(np.uint8)
    return np.stack([gray, gray, gray], axis=-1)


def create_test_gradient(size: int = 64) -> np.ndarray:
    """
    Create a left-to-right black-to-white gradient.

    Returns:
        (size, size, 3) uint8 RGB array
    """
    row = np.linspace(0, 255, size).astype(np.uint8)
    gray = np.tile(row, (size, 1))
    return np.stack([gray, gray, gray], axis=-1)


def main():
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    params = get_preset("p2", width_in_pixels=32)

    print("=" * 60)
    print("Shadow Caster Demo")
    print("=" * 60)

    start = time.time()

    generator = ShadowCasterGenerator(params)
    generator.load_horizontal_image(create_test_circle())
    generator.load_vertical_image(create_test_gradient())
    generator.synthesize().generate_mesh()

    config = generator.config
    info = generator.preview()

    print(f"\nGray levels: {config.number_of_colors} -> {level_set(config.number_of_colors)}")
    print(f"Max wall height: {config.max_height:.2f}mm")
    print(f"Boxes: {info['box_count']} ({info['left_walls']} left, {info['up_walls']} up)")
    print(f"Triangles: {info['triangle_count']}")
    print("Size: {:.1f} x {:.1f} x {:.1f}mm".format(*info["size_mm"]))

    outputs = generator.export_all(
        output_dir / config.output_filename,
        formats=["stl", "obj", "scad"]
    )
    for path in outputs:
        print(f"Exported: {path} ({path.stat().st_size:,} bytes)")

    print(f"\nCompleted in {time.time() - start:.2f}s")


if __name__ == "__main__":
    main()
