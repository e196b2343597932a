import base64
import io
import os
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from comictranslator.models import Rectangle
from utils.exceptions import ImageProcessingError, InputError
from utils.logging import log_message

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".bmp")


def pil_to_cv2(pil_image):
    """
    Convert PIL Image to OpenCV format (numpy array)

    Args:
        pil_image (PIL.Image): PIL Image object

    Returns:
        numpy.ndarray: OpenCV image in BGR format
    """
    rgb_image = np.array(pil_image)
    if len(rgb_image.shape) == 3:
        if rgb_image.shape[2] == 3:  # RGB
            return cv2.cvtColor(rgb_image, cv2.COLOR_RGB2BGR)
        elif rgb_image.shape[2] == 4:  # RGBA
            return cv2.cvtColor(rgb_image, cv2.COLOR_RGBA2BGRA)
    return rgb_image


def cv2_to_pil(cv2_image):
    """
    Convert OpenCV image to PIL Image

    Args:
        cv2_image (numpy.ndarray): OpenCV image in BGR or BGRA format

    Returns:
        PIL.Image: PIL Image object
    """
    if len(cv2_image.shape) == 3:
        if cv2_image.shape[2] == 3:  # BGR
            rgb_image = cv2.cvtColor(cv2_image, cv2.COLOR_BGR2RGB)
            return Image.fromarray(rgb_image)
        elif cv2_image.shape[2] == 4:  # BGRA
            rgba_image = cv2.cvtColor(cv2_image, cv2.COLOR_BGRA2RGBA)
            return Image.fromarray(rgba_image)
    return Image.fromarray(cv2_image)


def load_image(image_path: Union[str, Path]) -> Image.Image:
    """
    Load a page as an RGB PIL image.

    Raises:
        InputError: If the file is missing or cannot be decoded
    """
    image_path = Path(image_path)
    if not image_path.is_file():
        raise InputError(f"Input image not found: {image_path}")
    try:
        with Image.open(image_path) as image:
            image.load()
            return image.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise InputError(f"Unreadable image {image_path}: {e}") from e


def crop_region(image: Image.Image, region: Rectangle) -> Optional[Image.Image]:
    """Crop ``region`` from the image, clipped to the image bounds.

    Returns None when nothing of the region lies inside the image.
    """
    x1, y1, x2, y2 = region.clip(image.width, image.height).to_int_box()
    if x2 <= x1 or y2 <= y1:
        return None
    return image.crop((x1, y1, x2, y2))


def save_image_with_compression(image, output_path, png_compression=6, verbose=False):
    """
    Save an image as PNG with the given compression level.

    Args:
        image (PIL.Image): Image to save
        output_path (str or Path): Path to save the image; a non-PNG suffix is replaced
        png_compression (int): PNG compression level (0-9, higher is more compression)
        verbose (bool): Whether to print verbose logging

    Returns:
        Path: The path the image was written to

    Raises:
        ImageProcessingError: If image saving fails
    """
    output_path = Path(output_path)
    if output_path.suffix.lower() != ".png":
        log_message(
            f"Warning: Output extension '{output_path.suffix}' is not PNG. Saving as PNG.",
            always_print=True,
        )
        output_path = output_path.with_suffix(".png")

    compress_level = max(0, min(png_compression, 9))
    log_message(
        f"Saving PNG image with compression level {compress_level} to {output_path}",
        verbose=verbose,
    )
    try:
        os.makedirs(output_path.parent, exist_ok=True)
        image.save(str(output_path), format="PNG", compress_level=compress_level)
        return output_path
    except Exception as e:
        log_message(f"Error saving image to {output_path}: {e}", always_print=True)
        raise ImageProcessingError(f"Failed to save image to {output_path}") from e


def draw_debug_boxes(
    image: Image.Image,
    regions: Iterable[Rectangle],
    color: Tuple[int, int, int] = (255, 0, 0),
    thickness: int = 2,
) -> Image.Image:
    """Return a copy of the image with each region outlined (for debug output)."""
    canvas = pil_to_cv2(image.convert("RGB"))
    bgr = (color[2], color[1], color[0])
    for region in regions:
        x1, y1, x2, y2 = region.to_int_box()
        cv2.rectangle(canvas, (x1, y1), (x2, y2), bgr, thickness)
    return cv2_to_pil(canvas)


def encode_image_base64(image: Image.Image) -> str:
    """PNG-encode an image as a base64 string for API requests."""
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("utf-8")
