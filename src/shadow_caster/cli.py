"""
Command-Line Interface for Shadow Caster

Usage:
    shadow-caster horizontal.jpg vertical.jpg
    shadow-caster horizontal.jpg vertical.jpg --preset p3 -o caster --format stl scad
    shadow-caster portrait.png --no-vert --width 60 --stats

"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import ImageConfig, PRESETS, get_preset
from .errors import ShadowCasterError, InvalidParameter
from .generator import ShadowCasterGenerator
from .ingestion import save_intermediate_images
from .telemetry import MemoryMonitor


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shadow-caster",
        description="Shadow Caster - Turn one or two images into a 3D-printable shadow sculpture",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shadow-caster horizontal.jpg vertical.jpg
      Build both shadows with the default 2.1mm cells

  shadow-caster wave.jpg fuji.jpg --preset fuji -o fuji --format stl obj
      Use the fine 1.1mm preset, export STL and OBJ

  shadow-caster face.png --no-vert --width 40 --colors 8
      Single shadow, 40 pixels wide, dithered to 8 gray levels

Presets:
  default  - 100px, 2.1mm cells, 0.4mm walls, 0.1mm layers
  p2       - 50px, 1.0mm cells, 0.2mm walls, 0.05mm layers
  p3       - 85px, 1.1mm cells, 0.22mm walls, 0.05mm layers
  fuji     - 100px, 1.1mm cells, 0.22mm walls, 0.05mm layers
        """
    )

    # Input
    parser.add_argument(
        "horizontal",
        nargs="?",
        help="Image cast by the left walls (horizontal shadow)"
    )

    parser.add_argument(
        "vertical",
        nargs="?",
        help="Image cast by the up walls (vertical shadow)"
    )

    parser.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        default="default",
        help="Parameter preset (default: default)"
    )

    parser.add_argument(
        "--no-horiz",
        action="store_true",
        help="Skip the horizontal shadow (left walls)"
    )

    parser.add_argument(
        "--no-vert",
        action="store_true",
        help="Skip the vertical shadow (up walls)"
    )

    # Geometry settings
    parser.add_argument(
        "-w", "--width",
        type=int,
        help="Image width in pixels / cells (preset default)"
    )

    parser.add_argument(
        "--cell-size",
        type=float,
        help="Side of one pixel cell in mm"
    )

    parser.add_argument(
        "--wall-width",
        type=float,
        help="Wall thickness in mm (must be below the cell size)"
    )

    parser.add_argument(
        "--bottom",
        type=float,
        help="Base slab thickness in mm"
    )

    parser.add_argument(
        "--layer-height",
        type=float,
        help="Print layer height in mm"
    )

    parser.add_argument(
        "--colors",
        type=int,
        default=None,
        help="Gray levels to dither to (0 = derive from geometry)"
    )

    parser.add_argument(
        "--plus-walls",
        action="store_true",
        help="Offset each wall by half the open cell width"
    )

    # Output settings
    parser.add_argument(
        "-o", "--output",
        help="Output base path (default: parameter-encoding filename)"
    )

    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=["stl", "obj", "scad"],
        default=["stl"],
        help="Output format(s) (default: stl)"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Debug logging and tracebacks on error"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print model statistics"
    )

    parser.add_argument(
        "--memory",
        action="store_true",
        help="Log memory usage around each pipeline stage"
    )

    parser.add_argument(
        "--save-intermediate",
        action="store_true",
        help="Also write the resized and dithered images next to each input"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def build_params(args) -> ImageConfig:
    """Turn parsed arguments into raw parameters."""
    overrides = {
        "do_horiz_image": not args.no_horiz,
        "do_vert_image": not args.no_vert,
        "plus_walls": args.plus_walls,
    }

    if args.horizontal:
        overrides["horiz_image"] = args.horizontal
    if args.vertical:
        overrides["vert_image"] = args.vertical

    optional = {
        "width_in_pixels": args.width,
        "cell_size": args.cell_size,
        "wall_width": args.wall_width,
        "bottom_thk": args.bottom,
        "layer_height": args.layer_height,
        "number_of_colors_override": args.colors,
    }
    overrides.update({k: v for k, v in optional.items() if v is not None})

    return get_preset(args.preset, **overrides)


def configure_logging(args):
    """Set up root logging from the verbosity flags."""
    if args.debug or args.memory:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def print_stats(generator: ShadowCasterGenerator):
    """Print a summary of the built model."""
    info = generator.preview()
    config = generator.config
    width, depth, height = info["size_mm"]

    print("\nModel Statistics:")
    for axis in ("horizontal", "vertical"):
        if f"{axis}_size" in info:
            w, h = info[f"{axis}_size"]
            print(f"  {axis.capitalize()} grid: {w} x {h}")
    print(f"  Gray levels: {config.number_of_colors}")
    print(f"  Max wall height: {config.max_height:.2f}mm")
    print(f"  Boxes: {info['box_count']} ({info['left_walls']} left, {info['up_walls']} up)")
    if "triangle_count" in info:
        print(f"  Triangles: {info['triangle_count']}")
    print(f"  Size: {width:.1f} x {depth:.1f} x {height:.1f}mm "
          f"({width / 25.4:.2f} x {depth / 25.4:.2f}in)")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args)

    if args.no_horiz and args.no_vert:
        print("Error: nothing to build, both shadows are disabled", file=sys.stderr)
        return 1

    monitor = MemoryMonitor() if args.memory else None
    start_time = time.time()

    try:
        params = build_params(args)
        generator = ShadowCasterGenerator(params, monitor=monitor)

        if monitor is not None:
            monitor.start()

        for axis, path, enabled in (
            ("horizontal", params.horiz_image, params.do_horiz_image),
            ("vertical", params.vert_image, params.do_vert_image),
        ):
            if not enabled:
                continue
            if path is None or not Path(path).exists():
                print(f"Error: {axis} image not found: {path}", file=sys.stderr)
                return 1
            if args.verbose:
                print(f"Loading {axis}: {path}")

        generator.load_configured_images()

        if args.save_intermediate:
            for path, enabled in (
                (params.horiz_image, params.do_horiz_image),
                (params.vert_image, params.do_vert_image),
            ):
                if enabled:
                    for written in save_intermediate_images(
                        path, generator.config.width_in_pixels, generator.config.number_of_colors
                    ):
                        print(f"Intermediate: {written}")

        if args.verbose:
            print(f"Dithered to {generator.config.number_of_colors} gray levels")

        generator.synthesize().generate_mesh()

        output_base = Path(args.output) if args.output else None
        outputs = generator.export_all(output_base, args.format)

        if args.stats or args.verbose:
            print_stats(generator)

        for path in outputs:
            print(f"Exported: {path}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except InvalidParameter as e:
        print(f"Invalid parameter '{e.field}': {e.args[0]}", file=sys.stderr)
        return 1

    except (ShadowCasterError, OSError) as e:
        print(f"Error ({type(e).__name__}): {e}", file=sys.stderr)
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1

    finally:
        if monitor is not None and monitor.is_monitoring:
            monitor.stop()


if __name__ == "__main__":
    sys.exit(main())
