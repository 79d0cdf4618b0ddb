"""
Unit tests for the Shadow Caster pipeline.
"""

import sys
import struct
import tempfile
import dataclasses
from io import BytesIO
from pathlib import Path
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shadow_caster import ShadowCasterGenerator, build_shadow_caster
from shadow_caster.cli import main as cli_main
from shadow_caster.config import (
    ImageConfig, resolve_config, format_number, get_preset, PRESETS
)
from shadow_caster.dither import dither_image, level_set
from shadow_caster.errors import DecodeError, InvalidParameter
from shadow_caster.exporters import merge_and_encode, stl_size
from shadow_caster.generator import with_format
from shadow_caster.geometry import (
    synthesize, compute_bounds, wall_height, round_to_layer_height, WALL_OVERLAP
)
from shadow_caster.ingestion import quantize, resize_and_grayscale, target_height
from shadow_caster.telemetry import MemoryMonitor


def scenario_config(**overrides) -> ImageConfig:
    """5mm cells, 0.8mm walls, 0.2mm layers, 10 levels (2.0mm max height)."""
    params = dict(
        width_in_pixels=2,
        cell_size=5.0,
        wall_width=0.8,
        bottom_thk=1.0,
        layer_height=0.2,
        number_of_colors_override=10,
    )
    params.update(overrides)
    return ImageConfig(**params)


DIAGONAL = np.array([[0, 255], [255, 0]], dtype=np.uint8)


def png_bytes(array: np.ndarray) -> bytes:
    """Encode a uint8 array as PNG."""
    buffer = BytesIO()
    Image.fromarray(array).save(buffer, format="PNG")
    return buffer.getvalue()


class TestResolveConfig(unittest.TestCase):
    """Tests for parameter resolution."""

    def test_auto_color_count(self):
        """Test that the color count is derived from the open cell width."""
        config = resolve_config(ImageConfig(cell_size=2.1, wall_width=0.4, layer_height=0.1))
        assert config.number_of_colors == 17
        assert np.isclose(config.max_height, 1.7)
        assert config.border == 2.1

    def test_override_color_count(self):
        """Test explicit color count."""
        config = resolve_config(scenario_config())
        assert config.number_of_colors == 10
        assert np.isclose(config.max_height, 2.0)

    def test_idempotent(self):
        """Test resolving twice gives identical configs."""
        params = get_preset("p3")
        assert resolve_config(params) == resolve_config(params)

    def test_output_filename(self):
        """Test the parameter-encoding filename."""
        config = resolve_config(ImageConfig())
        assert config.output_filename == "100px_2.1cell_0.4wall_0.8bottom_1.7maxHeight.stl"

        config = resolve_config(PRESETS["p2"])
        assert config.output_filename == "50px_1cell_0.2wall_0.4bottom_0.8maxHeight.stl"

    def test_format_number(self):
        """Test trailing zero trimming."""
        assert format_number(2.0) == "2"
        assert format_number(2.1) == "2.1"
        assert format_number(1.234) == "1.23"
        assert format_number(100) == "100"

    def test_wall_wider_than_cell(self):
        """Test that walls must fit in a cell."""
        with self.assertRaises(InvalidParameter) as ctx:
            resolve_config(ImageConfig(cell_size=1.0, wall_width=1.0))
        assert ctx.exception.field == "wall_width"

    def test_non_positive_fields(self):
        """Test that every length must be positive."""
        for name in ("cell_size", "wall_width", "bottom_thk", "layer_height"):
            with self.assertRaises(InvalidParameter) as ctx:
                resolve_config(ImageConfig(**{name: 0}))
            assert ctx.exception.field == name

        with self.assertRaises(InvalidParameter) as ctx:
            resolve_config(ImageConfig(width_in_pixels=0))
        assert ctx.exception.field == "width_in_pixels"

        with self.assertRaises(InvalidParameter) as ctx:
            resolve_config(ImageConfig(number_of_colors_override=-1))
        assert ctx.exception.field == "number_of_colors_override"

    def test_no_color_level_fits(self):
        """Test that a layer taller than the open cell is rejected."""
        with self.assertRaises(InvalidParameter) as ctx:
            resolve_config(ImageConfig(cell_size=1.0, wall_width=0.5, layer_height=0.6))
        assert ctx.exception.field == "layer_height"

    def test_frozen(self):
        """Test configs are immutable."""
        config = resolve_config(ImageConfig())
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.cell_size = 3.0

    def test_from_dict_camel_case(self):
        """Test the web front end's parameter keys."""
        params = ImageConfig.from_dict({
            "widthInPixels": 20,
            "cellSize": 5.0,
            "wallWidth": 0.8,
            "doVertImage": False,
            "numberOfColorsOverride": 4,
        })
        assert params.width_in_pixels == 20
        assert params.cell_size == 5.0
        assert not params.do_vert_image
        assert params.number_of_colors_override == 4

        with self.assertRaises(InvalidParameter) as ctx:
            ImageConfig.from_dict({"colour": 3})
        assert ctx.exception.field == "colour"

    def test_presets(self):
        """Test preset lookup and overrides."""
        params = get_preset("fuji", width_in_pixels=40)
        assert params.width_in_pixels == 40
        assert params.cell_size == 1.1

        for name in PRESETS:
            resolve_config(PRESETS[name])

        with self.assertRaises(InvalidParameter) as ctx:
            get_preset("nope")
        assert ctx.exception.field == "preset"


class TestDithering(unittest.TestCase):
    """Tests for error-diffusion quantization."""

    def setUp(self):
        rng = np.random.default_rng(42)
        self.gray = rng.integers(0, 256, size=(32, 32)).astype(np.uint8)

    def test_level_set(self):
        """Test level values, rounded half up."""
        assert level_set(2) == [0, 255]
        assert level_set(3) == [0, 128, 255]
        assert level_set(5) == [0, 64, 128, 191, 255]

    def test_level_membership(self):
        """Test every output value is one of the levels."""
        for n in (2, 3, 5, 17):
            out = dither_image(self.gray, n)
            assert set(np.unique(out).tolist()) <= set(level_set(n))
            assert out.dtype == np.uint8

    def test_deterministic(self):
        """Test identical input gives identical output."""
        assert np.array_equal(dither_image(self.gray, 5), dither_image(self.gray, 5))

    def test_input_not_modified(self):
        """Test the input grid is left untouched."""
        original = self.gray.copy()
        dither_image(self.gray, 4)
        assert np.array_equal(self.gray, original)

    def test_preserves_average(self):
        """Test mid gray dithers to a half-and-half pattern."""
        gray = np.full((32, 32), 128, dtype=np.uint8)
        out = dither_image(gray, 2)
        assert set(np.unique(out).tolist()) == {0, 255}
        assert abs(out.mean() - 128) < 10

    def test_exact_levels_unchanged(self):
        """Test pixels already on a level produce no error."""
        gray = np.array([[0, 255, 0], [255, 0, 255]], dtype=np.uint8)
        assert np.array_equal(dither_image(gray, 2), gray)

    def test_error_bounded(self):
        """Test quantization error does not grow with image size."""
        n = 5
        step = 255 / (n - 1)
        rng = np.random.default_rng(7)
        small = rng.integers(0, 256, size=(16, 16)).astype(np.uint8)
        large = rng.integers(0, 256, size=(96, 96)).astype(np.uint8)

        errors = []
        for gray in (small, large):
            out = dither_image(gray, n)
            diff = np.abs(gray.astype(np.float64) - out.astype(np.float64))
            assert diff.max() <= step + 1
            errors.append(diff.mean())

        assert abs(errors[0] - errors[1]) < step / 4


class TestQuantize(unittest.TestCase):
    """Tests for image loading and quantization."""

    def test_target_height(self):
        """Test aspect-ratio height rounding."""
        assert target_height(3, 4, 3) == 2
        assert target_height(10, 3, 1) == 3
        assert target_height(1, 100, 10) == 1

    def test_grayscale_formula(self):
        """Test luminance weighting."""
        rgb = np.array([[[255, 0, 0], [0, 255, 0], [0, 0, 255]]], dtype=np.uint8)
        gray = resize_and_grayscale(Image.fromarray(rgb), 3)
        assert gray.tolist() == [[76, 150, 29]]

    def test_quantize_png_bytes(self):
        """Test decode, resize and dither from encoded bytes."""
        rgb = np.zeros((20, 40, 3), dtype=np.uint8)
        rgb[:, 20:] = 255
        grid = quantize(png_bytes(rgb), 10, 4)

        assert grid.shape == (5, 10)
        assert set(np.unique(grid).tolist()) <= set(level_set(4))
        assert not grid.flags.writeable

    def test_quantize_deterministic(self):
        """Test identical bytes give identical grids."""
        rng = np.random.default_rng(3)
        data = png_bytes(rng.integers(0, 256, size=(30, 30, 3)).astype(np.uint8))
        assert np.array_equal(quantize(data, 12, 6), quantize(data, 12, 6))

    def test_invalid_parameters(self):
        """Test width and color count validation."""
        rgb = np.zeros((4, 4, 3), dtype=np.uint8)
        with self.assertRaises(InvalidParameter) as ctx:
            quantize(rgb, 0, 4)
        assert ctx.exception.field == "target_width"

        with self.assertRaises(InvalidParameter) as ctx:
            quantize(rgb, 4, 1)
        assert ctx.exception.field == "number_of_colors"

    def test_decode_error(self):
        """Test undecodable data."""
        with self.assertRaises(DecodeError):
            quantize(b"definitely not an image", 4, 4)

    def test_missing_file(self):
        """Test a path that does not exist."""
        with self.assertRaises(FileNotFoundError):
            quantize("/nonexistent/shadow.png", 4, 4)


class TestGeometry(unittest.TestCase):
    """Tests for wall placement and heights."""

    def setUp(self):
        self.config = resolve_config(scenario_config(do_vert_image=False))

    def test_diagonal_scenario(self):
        """Test a 2x2 diagonal grid gives 4 walls of 2 heights."""
        geometry = synthesize(DIAGONAL, None, self.config)

        assert len(geometry.left_walls) == 4
        assert len(geometry.up_walls) == 0

        heights = sorted({round(w.size[2], 6) for w in geometry.left_walls})
        assert len(heights) == 2
        assert np.isclose(heights[0], 0.2)
        assert np.isclose(heights[1], 2.0)

    def test_left_wall_placement(self):
        """Test centre and size of the left walls."""
        geometry = synthesize(DIAGONAL, None, self.config)

        black = geometry.left_walls[0]  # pixel (0, 0)
        assert np.allclose(black.position, (10.0, 15.0, 2.0))
        assert np.allclose(black.size, (0.8 + WALL_OVERLAP, 5.0 + WALL_OVERLAP, 2.0))

        white = geometry.left_walls[1]  # pixel (1, 0)
        assert np.allclose(white.position, (15.0, 15.0, 1.1))
        assert np.allclose(white.size[2], 0.2)

        bottom_left = geometry.left_walls[2]  # pixel (0, 1)
        assert np.allclose(bottom_left.position[:2], (10.0, 10.0))

    def test_up_wall_placement(self):
        """Test up walls are thin along Y."""
        config = resolve_config(scenario_config(do_horiz_image=False))
        geometry = synthesize(None, DIAGONAL, config)

        assert len(geometry.left_walls) == 0
        wall = geometry.up_walls[0]
        assert np.allclose(wall.position, (10.0, 15.0, 2.0))
        assert np.allclose(wall.size, (5.0 + WALL_OVERLAP, 0.8 + WALL_OVERLAP, 2.0))

    def test_plus_walls_offset(self):
        """Test the half-cell offset mode."""
        config = resolve_config(scenario_config(plus_walls=True))
        geometry = synthesize(DIAGONAL, DIAGONAL, config)

        offset = 0.5 * (5.0 - 0.8)
        assert np.isclose(geometry.left_walls[0].position[0], 10.0 + offset)
        assert np.isclose(geometry.left_walls[0].position[1], 15.0)
        assert np.isclose(geometry.up_walls[0].position[0], 10.0)
        assert np.isclose(geometry.up_walls[0].position[1], 15.0 + offset)

    def test_base_slab(self):
        """Test the base covers the grid plus borders."""
        geometry = synthesize(DIAGONAL, None, self.config)
        assert np.allclose(geometry.base.position, (15.0, 15.0, 0.5))
        assert np.allclose(geometry.base.size, (30.0, 30.0, 1.0))

    def test_dual_axis_scenario(self):
        """Test both axes on 2x2 grids."""
        config = resolve_config(scenario_config())
        geometry = synthesize(DIAGONAL, DIAGONAL, config)

        assert len(geometry.left_walls) == 4
        assert len(geometry.up_walls) == 4

        data = merge_and_encode(geometry.boxes)
        assert struct.unpack("<I", data[80:84])[0] == 108
        assert len(data) == 5484

    def test_crop_to_shorter_grid(self):
        """Test rows past the shorter grid are dropped, top-aligned."""
        config = resolve_config(scenario_config())
        tall = np.zeros((3, 2), dtype=np.uint8)
        short = np.full((2, 2), 255, dtype=np.uint8)
        geometry = synthesize(tall, short, config)

        assert len(geometry.left_walls) == 4
        assert len(geometry.up_walls) == 4
        assert np.allclose(geometry.base.size[:2], (30.0, 35.0))

        # Same rows on both axes share Y positions
        left_y = sorted({w.position[1] for w in geometry.left_walls})
        up_y = sorted({w.position[1] for w in geometry.up_walls})
        assert np.allclose(left_y, up_y)

    def test_disabled_grid_widens_base(self):
        """Test a supplied grid on a disabled axis still sizes the base."""
        wide = np.zeros((3, 4), dtype=np.uint8)
        geometry = synthesize(DIAGONAL, wide, self.config)

        assert len(geometry.left_walls) == 4
        assert len(geometry.up_walls) == 0
        assert np.allclose(geometry.base.size[:2], (10.0 + 5.0 * 6, 10.0 + 5.0 * 5))

    def test_box_count(self):
        """Test one wall per pixel per enabled axis."""
        rng = np.random.default_rng(1)
        grid = rng.integers(0, 256, size=(5, 7)).astype(np.uint8)

        config = resolve_config(scenario_config(do_vert_image=False))
        geometry = synthesize(grid, grid, config)
        assert len(geometry.left_walls) == 35
        assert len(geometry.up_walls) == 0
        assert len(geometry.boxes) == 36

    def test_both_axes_disabled(self):
        """Test nothing to build raises instead of returning a bare base."""
        config = resolve_config(scenario_config(do_horiz_image=False, do_vert_image=False))
        with self.assertRaises(InvalidParameter):
            synthesize(DIAGONAL, DIAGONAL, config)

        with self.assertRaises(InvalidParameter):
            synthesize(None, None, resolve_config(scenario_config()))

    def test_malformed_grid(self):
        """Test a grid must be 2D."""
        with self.assertRaises(InvalidParameter) as ctx:
            synthesize(np.zeros((2, 2, 3), dtype=np.uint8), None, self.config)
        assert ctx.exception.field == "horiz_grid"

    def test_height_monotonic(self):
        """Test darker pixels never get shorter walls."""
        config = resolve_config(ImageConfig())
        heights = [wall_height(v, config) for v in range(256)]
        assert all(a >= b for a, b in zip(heights, heights[1:]))

    def test_heights_on_layer_grid(self):
        """Test every wall height is a whole number of layers."""
        config = resolve_config(ImageConfig())
        for v in range(0, 256, 5):
            layers = wall_height(v, config) / config.layer_height
            assert np.isclose(layers, round(layers))

    def test_round_to_layer_height(self):
        """Test snapping to the layer grid."""
        assert np.isclose(round_to_layer_height(0.16, 0.1), 0.2)
        assert np.isclose(round_to_layer_height(0.14, 0.1), 0.1)
        assert np.isclose(round_to_layer_height(0.24, 0.1), 0.2)

        # Exact halves round up; 0.15 / 0.1 is just below 1.5 in floating point
        assert round_to_layer_height(0.25, 0.5) == 0.5
        assert round_to_layer_height(0.75, 0.5) == 1.0
        assert np.isclose(round_to_layer_height(0.15, 0.1), 0.1)
        assert np.isclose(round_to_layer_height(0.5, 0.05), 0.5)

    def test_bounds(self):
        """Test bounds enclose every box."""
        geometry = synthesize(DIAGONAL, None, self.config)
        bounds = compute_bounds(geometry.boxes)

        assert np.allclose(bounds.min, (0.0, 0.0, 0.0))
        assert np.allclose(bounds.max, (30.0, 30.0, 3.0))
        assert np.allclose(bounds.center, (15.0, 15.0, 1.5))
        assert np.allclose(bounds.size, (30.0, 30.0, 3.0))

        with self.assertRaises(InvalidParameter):
            compute_bounds([])


class TestShadowCasterGenerator(unittest.TestCase):
    """Integration tests for ShadowCasterGenerator."""

    def setUp(self):
        yy, xx = np.mgrid[0:16, 0:16]
        gradient = (xx * 16).astype(np.uint8)
        self.rgb = np.stack([gradient] * 3, axis=-1)
        self.params = scenario_config(width_in_pixels=8)

    def test_basic_pipeline(self):
        """Test images to mesh."""
        generator = ShadowCasterGenerator(self.params)
        generator.load_horizontal_image(self.rgb)
        generator.load_vertical_image(self.rgb)
        generator.synthesize().generate_mesh()

        assert generator.horizontal_grid.shape == (8, 8)
        assert generator.box_count == 1 + 64 + 64
        assert generator.triangle_count == 12 * generator.box_count
        assert len(generator.to_stl_bytes()) == stl_size(12 * generator.box_count)

    def test_new_input_discards_geometry(self):
        """Test stale geometry never survives an input change."""
        generator = ShadowCasterGenerator(self.params)
        generator.load_horizontal_image(self.rgb).load_vertical_image(self.rgb)
        generator.synthesize().generate_mesh()

        generator.load_vertical_array(DIAGONAL)
        assert generator.geometry is None
        assert generator.mesh is None

    def test_configure_requantizes(self):
        """Test changing the width re-dithers loaded images."""
        generator = ShadowCasterGenerator(self.params)
        generator.load_horizontal_image(self.rgb)
        generator.configure(width_in_pixels=4, do_vert_image=False)

        assert generator.horizontal_grid.shape == (4, 4)
        generator.synthesize()
        assert len(generator.geometry.left_walls) == 16

    def test_failed_configure_keeps_state(self):
        """Test a rejected configure leaves config and grids untouched."""
        generator = ShadowCasterGenerator(self.params)
        generator.load_horizontal_image(self.rgb).load_vertical_image(self.rgb)
        config = generator.config
        horizontal, vertical = generator.horizontal_grid, generator.vertical_grid

        with self.assertRaises(InvalidParameter) as ctx:
            generator.configure(number_of_colors_override=1)
        assert ctx.exception.field == "number_of_colors_override"

        assert generator.config is config
        assert generator.config.number_of_colors == 10
        assert generator.horizontal_grid is horizontal
        assert generator.vertical_grid is vertical

        generator.synthesize()
        assert len(generator.geometry.left_walls) == 64

    def test_single_level_reports_source_field(self):
        """Test one resolved gray level names the parameter that caused it."""
        params = scenario_config(width_in_pixels=8, number_of_colors_override=1)
        with self.assertRaises(InvalidParameter) as ctx:
            ShadowCasterGenerator(params).load_horizontal_image(self.rgb)
        assert ctx.exception.field == "number_of_colors_override"

        # (1.0 - 0.5) / 0.3 floors to a single level
        params = ImageConfig(width_in_pixels=8, cell_size=1.0, wall_width=0.5, layer_height=0.3)
        assert resolve_config(params).number_of_colors == 1
        with self.assertRaises(InvalidParameter) as ctx:
            ShadowCasterGenerator(params).load_horizontal_image(self.rgb)
        assert ctx.exception.field == "layer_height"

    def test_export_all(self):
        """Test writing every format."""
        generator = ShadowCasterGenerator(self.params)
        generator.load_horizontal_array(DIAGONAL).load_vertical_array(DIAGONAL)

        with tempfile.TemporaryDirectory() as tmp:
            outputs = generator.export_all(Path(tmp) / "caster", ["stl", "obj", "scad"])
            assert [p.name for p in outputs] == ["caster.stl", "caster.obj", "caster.scad"]
            assert outputs[0].stat().st_size == 5484

    def test_preview(self):
        """Test the state summary."""
        generator = ShadowCasterGenerator(self.params)
        info = generator.preview()
        assert not info["synthesized"]

        generator.load_horizontal_array(DIAGONAL).load_vertical_array(DIAGONAL)
        generator.generate_mesh()
        info = generator.preview()
        assert info["box_count"] == 9
        assert info["triangle_count"] == 108
        assert np.allclose(info["size_mm"], (30.0, 30.0, 3.0))

    def test_build_shadow_caster(self):
        """Test the one-call pipeline."""
        data = build_shadow_caster(self.params, self.rgb, self.rgb)
        assert len(data) == stl_size(12 * (1 + 64 + 64))

    def test_memory_monitor(self):
        """Test telemetry samples each stage."""
        monitor = MemoryMonitor().start()
        generator = ShadowCasterGenerator(self.params, monitor=monitor)
        generator.load_horizontal_array(DIAGONAL).load_vertical_array(DIAGONAL)
        generator.synthesize()
        samples = monitor.stop()

        labels = [s.label for s in samples]
        assert labels[0] == "baseline"
        assert "before synthesize" in labels
        assert "after synthesize" in labels
        assert labels[-1] == "final"

    def test_with_format(self):
        """Test suffix handling for names containing dots."""
        assert with_format(Path("a_0.4wall"), ".stl").name == "a_0.4wall.stl"
        assert with_format(Path("a_0.4wall.stl"), ".obj").name == "a_0.4wall.obj"


class TestCLI(unittest.TestCase):
    """Tests for the command-line interface."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        rng = np.random.default_rng(5)
        for name in ("horizontal.png", "vertical.png"):
            rgb = rng.integers(0, 256, size=(20, 20, 3)).astype(np.uint8)
            Image.fromarray(rgb).save(self.dir / name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_build_two_images(self):
        """Test a full CLI run."""
        out = self.dir / "caster"
        code = cli_main([
            str(self.dir / "horizontal.png"),
            str(self.dir / "vertical.png"),
            "--width", "5",
            "-o", str(out),
            "--format", "stl", "scad",
        ])
        assert code == 0
        assert (self.dir / "caster.stl").stat().st_size == stl_size(12 * (1 + 25 + 25))
        assert (self.dir / "caster.scad").exists()

    def test_single_axis(self):
        """Test skipping the vertical shadow."""
        out = self.dir / "single"
        code = cli_main([
            str(self.dir / "horizontal.png"),
            "--no-vert",
            "--width", "4",
            "-o", str(out),
        ])
        assert code == 0
        assert (self.dir / "single.stl").stat().st_size == stl_size(12 * (1 + 16))

    def test_save_intermediate(self):
        """Test writing the resized and dithered images."""
        code = cli_main([
            str(self.dir / "horizontal.png"),
            "--no-vert",
            "--width", "5",
            "--save-intermediate",
            "-o", str(self.dir / "single"),
        ])
        assert code == 0

        gray = Image.open(self.dir / "horizontal.png_5.png")
        assert gray.size == (5, 5)
        assert gray.mode == "L"

        dithered = np.asarray(Image.open(self.dir / "horizontal.png_5_dithered_17.png"))
        assert set(np.unique(dithered).tolist()) <= set(level_set(17))
        assert not (self.dir / "vertical.png_5.png").exists()

    def test_both_disabled(self):
        """Test nothing to build."""
        assert cli_main(["--no-horiz", "--no-vert"]) == 1

    def test_invalid_parameter(self):
        """Test walls wider than cells are reported."""
        code = cli_main([
            str(self.dir / "horizontal.png"),
            str(self.dir / "vertical.png"),
            "--cell-size", "1", "--wall-width", "2",
            "-o", str(self.dir / "bad"),
        ])
        assert code == 1
        assert not (self.dir / "bad.stl").exists()

    def test_missing_image(self):
        """Test a missing input file."""
        code = cli_main([str(self.dir / "missing.png"), "--no-vert"])
        assert code == 1


if __name__ == "__main__":
    unittest.main(verbosity=2)
