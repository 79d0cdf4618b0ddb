#!/usr/bin/env python3
"""
Shadow Caster Web Interface

A simple Gradio-based web UI for turning two images into a printable
shadow sculpture.

Run with: python app.py
Then open http://localhost:7860 in your browser
"""

import sys
from pathlib import Path
import tempfile
import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import gradio as gr
from shadow_caster import ShadowCasterGenerator, InvalidParameter, ShadowCasterError, PRESETS
from shadow_caster.config import ImageConfig


def build_model(
    horizontal_image,
    vertical_image,
    width_in_pixels: int,
    cell_size: float,
    wall_width: float,
    bottom_thk: float,
    layer_height: float,
    colors: int,
    do_horiz: bool,
    do_vert: bool,
    plus_walls: bool,
    export_scad: bool
):
    """
    Build the shadow caster from the uploaded images.

    Returns preview path, stats text, and file paths for downloads.
    """
    if not do_horiz and not do_vert:
        return None, "Enable at least one shadow.", None, None

    if (do_horiz and horizontal_image is None) or (do_vert and vertical_image is None):
        return None, "Please upload an image for every enabled shadow.", None, None

    params = ImageConfig(
        width_in_pixels=int(width_in_pixels),
        do_horiz_image=do_horiz,
        do_vert_image=do_vert,
        cell_size=float(cell_size),
        wall_width=float(wall_width),
        bottom_thk=float(bottom_thk),
        layer_height=float(layer_height),
        number_of_colors_override=int(colors),
        plus_walls=plus_walls,
    )

    try:
        generator = ShadowCasterGenerator(params)
        if do_horiz:
            generator.load_horizontal_image(np.asarray(horizontal_image, dtype=np.uint8))
        if do_vert:
            generator.load_vertical_image(np.asarray(vertical_image, dtype=np.uint8))
        generator.synthesize().generate_mesh()
    except InvalidParameter as e:
        raise gr.Error(f"Invalid parameter '{e.field}': {e.args[0]}")
    except ShadowCasterError as e:
        raise gr.Error(f"{type(e).__name__}: {e}")

    info = generator.preview()
    config = generator.config
    width, depth, height = info["size_mm"]

    stats_text = f"""## Shadow Caster Ready

| Metric | Value |
|--------|-------|
| Gray Levels | {config.number_of_colors} |
| Max Wall Height | {config.max_height:.2f} mm |
| Left Walls | {info['left_walls']:,} |
| Up Walls | {info['up_walls']:,} |
| Triangles | {info['triangle_count']:,} |
| Size | {width:.1f} x {depth:.1f} x {height:.1f} mm |

**File:** `{config.output_filename}`
"""

    # Create temp directory for exports
    export_dir = Path(tempfile.mkdtemp(prefix="shadow_caster_"))

    # OBJ for the preview, STL for printing
    preview_path = str(generator.export_obj(export_dir / "preview.obj"))
    stl_path = str(generator.export_stl(export_dir / config.output_filename))

    scad_path = None
    if export_scad:
        scad_path = str(generator.export_scad(export_dir / Path(config.output_filename).with_suffix(".scad")))

    return preview_path, stats_text, stl_path, scad_path


def apply_preset(name: str):
    """Fill the geometry controls from a preset."""
    preset = PRESETS[name]
    return (
        preset.width_in_pixels,
        preset.cell_size,
        preset.wall_width,
        preset.bottom_thk,
        preset.layer_height,
        preset.number_of_colors_override,
    )


defaults = PRESETS["default"]

# Build the Gradio interface
with gr.Blocks(title="Shadow Caster") as app:

    gr.Markdown("""
    # Shadow Caster
    ### Turn two pictures into one printable shadow sculpture

    Upload an image for each light direction, adjust the settings, and download your STL!
    """)

    with gr.Row():
        # Left column - Input
        with gr.Column(scale=1):
            gr.Markdown("### Images")

            horizontal_input = gr.Image(label="Horizontal shadow (left walls)", type="numpy", image_mode="RGB")
            vertical_input = gr.Image(label="Vertical shadow (up walls)", type="numpy", image_mode="RGB")

            with gr.Row():
                do_horiz = gr.Checkbox(value=True, label="Horizontal")
                do_vert = gr.Checkbox(value=True, label="Vertical")

            gr.Markdown("### Settings")

            preset = gr.Dropdown(choices=sorted(PRESETS), value="default", label="Preset")

            width_in_pixels = gr.Slider(
                minimum=5,
                maximum=200,
                value=defaults.width_in_pixels,
                step=1,
                label="Width (pixels)"
            )

            cell_size = gr.Number(value=defaults.cell_size, label="Cell Size (mm)")
            wall_width = gr.Number(value=defaults.wall_width, label="Wall Width (mm)")
            bottom_thk = gr.Number(value=defaults.bottom_thk, label="Base Thickness (mm)")
            layer_height = gr.Number(value=defaults.layer_height, label="Layer Height (mm)")

            colors = gr.Slider(
                minimum=0,
                maximum=32,
                value=defaults.number_of_colors_override,
                step=1,
                label="Gray Levels (0 = auto)"
            )

            plus_walls = gr.Checkbox(value=False, label="Offset walls by half a cell")
            export_scad = gr.Checkbox(value=False, label="Also export OpenSCAD")

            generate_btn = gr.Button("Build Shadow Caster", variant="primary")

        # Middle column - 3D Preview
        with gr.Column(scale=2):
            gr.Markdown("### 3D Preview")
            gr.Markdown("*Click and drag to rotate, scroll to zoom*")

            model_preview = gr.Model3D(
                label="3D Model Preview",
                clear_color=[0.1, 0.1, 0.1, 1.0]
            )

            stats_output = gr.Markdown(
                value="Upload images and click 'Build' to see results."
            )

        # Right column - Downloads
        with gr.Column(scale=1):
            gr.Markdown("### Downloads")

            stl_output = gr.File(label="STL (slicer)")
            scad_output = gr.File(label="SCAD (OpenSCAD)")

            gr.Markdown("""
            ---
            **Tips:**
            - Light the print from a low angle
            - Wall width must stay below the cell size
            - Fewer gray levels = shorter walls
            """)

    inputs = [
        horizontal_input,
        vertical_input,
        width_in_pixels,
        cell_size,
        wall_width,
        bottom_thk,
        layer_height,
        colors,
        do_horiz,
        do_vert,
        plus_walls,
        export_scad,
    ]
    outputs = [model_preview, stats_output, stl_output, scad_output]

    # Wire up events
    preset.change(
        fn=apply_preset,
        inputs=[preset],
        outputs=[width_in_pixels, cell_size, wall_width, bottom_thk, layer_height, colors]
    )

    # Only the most recent request is rendered if settings change mid-build
    generate_btn.click(fn=build_model, inputs=inputs, outputs=outputs, trigger_mode="always_last")
    for control in (width_in_pixels, colors, do_horiz, do_vert, plus_walls):
        control.change(fn=build_model, inputs=inputs, outputs=outputs, trigger_mode="always_last")


if __name__ == "__main__":
    print("\n" + "="*60)
    print("Shadow Caster Web Interface")
    print("="*60)
    print("\nStarting server...")
    print("Open http://localhost:7860 in your browser\n")

    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False
    )
