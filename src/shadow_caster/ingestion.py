"""
Image Ingestion and Quantization Module

This module handles:
- Decoding images from paths, bytes, file objects, PIL images or arrays
- Aspect-preserving resize to the target pixel width
- Luminance grayscale conversion
- Dithering to the gray levels that become wall heights
"""

from io import BytesIO
from pathlib import Path
from typing import List, Union, BinaryIO
import logging
import math
import numpy as np
from PIL import Image, UnidentifiedImageError

from .dither import dither_image
from .errors import DecodeError, InvalidParameter

logger = logging.getLogger(__name__)

ImageInput = Union[str, Path, bytes, bytearray, BinaryIO, Image.Image, np.ndarray]

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def load_image(source: ImageInput) -> Image.Image:
    """
    Decode an image.

    Args:
        source: File path, encoded bytes, binary file object, PIL image,
            or a (H, W), (H, W, 3) or (H, W, 4) uint8 array

    Returns:
        Decoded PIL image in RGB mode

    Raises:
        FileNotFoundError: if a path does not exist
        DecodeError: if the data is not a readable image
    """
    if isinstance(source, Image.Image):
        img = source
    elif isinstance(source, np.ndarray):
        img = _image_from_array(source)
    else:
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Image not found: {path}")
            stream = path
        elif isinstance(source, (bytes, bytearray)):
            stream = BytesIO(bytes(source))
        else:
            stream = source

        try:
            img = Image.open(stream)
            img.load()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise DecodeError(f"Cannot decode image: {e}") from e

    if img.width <= 0 or img.height <= 0:
        raise DecodeError(f"Image has no pixels: {img.size}")

    if img.mode != "RGB":
        img = img.convert("RGB")

    return img


def _image_from_array(array: np.ndarray) -> Image.Image:
    """Wrap a uint8 pixel array as a PIL image."""
    if not (array.ndim == 2 or (array.ndim == 3 and array.shape[2] in (3, 4))):
        raise DecodeError(f"Unsupported pixel array shape: {array.shape}")
    return Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8))


def target_height(target_width: int, original_width: int, original_height: int) -> int:
    """Height that keeps the aspect ratio at the given width (at least 1)."""
    return max(1, int(math.floor(target_width * original_height / original_width + 0.5)))


def resize_and_grayscale(image: Image.Image, target_width: int) -> np.ndarray:
    """
    Resize to the target width and convert to grayscale.

    Uses LANCZOS resampling, which is deterministic for a given input.
    Gray is round(0.299 R + 0.587 G + 0.114 B).

    Args:
        image: RGB PIL image
        target_width: Output width in pixels

    Returns:
        (H, W) uint8 grayscale array
    """
    new_w = target_width
    new_h = target_height(target_width, image.width, image.height)

    if image.mode != "RGB":
        image = image.convert("RGB")
    if image.size != (new_w, new_h):
        image = image.resize((new_w, new_h), Image.Resampling.LANCZOS)

    rgb = np.asarray(image, dtype=np.float64)
    gray = np.floor(rgb @ LUMA_WEIGHTS + 0.5)
    return np.clip(gray, 0, 255).astype(np.uint8)


def quantize(
    image: ImageInput,
    target_width: int,
    number_of_colors: int
) -> np.ndarray:
    """
    Produce the dithered brightness grid for one shadow axis.

    Args:
        image: Anything load_image() accepts
        target_width: Grid width in pixels (> 0)
        number_of_colors: Number of gray levels (>= 2)

    Returns:
        Read-only (H, W) uint8 BrightnessGrid

    Raises:
        InvalidParameter: for a bad width or color count
        DecodeError: if the image cannot be decoded
    """
    if isinstance(target_width, bool) or not isinstance(target_width, (int, np.integer)):
        raise InvalidParameter("target_width", f"must be an integer, got {target_width!r}")
    if target_width <= 0:
        raise InvalidParameter("target_width", f"must be positive, got {target_width}")
    if isinstance(number_of_colors, bool) or not isinstance(number_of_colors, (int, np.integer)):
        raise InvalidParameter(
            "number_of_colors", f"must be an integer, got {number_of_colors!r}"
        )
    if number_of_colors < 2:
        raise InvalidParameter(
            "number_of_colors", f"must be at least 2, got {number_of_colors}"
        )

    img = load_image(image)
    gray = resize_and_grayscale(img, int(target_width))
    grid = dither_image(gray, int(number_of_colors))
    grid.flags.writeable = False

    logger.debug(
        "Quantized %dx%d image to %dx%d grid with %d levels",
        img.width, img.height, grid.shape[1], grid.shape[0], number_of_colors
    )
    return grid


def save_intermediate_images(
    path: Union[str, Path],
    target_width: int,
    number_of_colors: int
) -> List[Path]:
    """
    Write the resized grayscale and dithered versions of an image file.

    Files land next to the input as "<name>_<width>.png" and
    "<name>_<width>_dithered_<colors>.png", for checking what the walls
    will be built from.

    Returns:
        The two written paths
    """
    path = Path(path)
    gray = resize_and_grayscale(load_image(path), int(target_width))
    dithered = quantize(path, target_width, number_of_colors)

    gray_path = path.with_name(f"{path.name}_{target_width}.png")
    dithered_path = path.with_name(
        f"{path.name}_{target_width}_dithered_{number_of_colors}.png"
    )
    Image.fromarray(gray).save(gray_path)
    Image.fromarray(np.ascontiguousarray(dithered)).save(dithered_path)

    logger.info("Wrote intermediate images %s and %s", gray_path, dithered_path)
    return [gray_path, dithered_path]
