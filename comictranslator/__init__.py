"""
ComicTranslator Core Package

This package contains the core functionality for translating text in comic pages.
It uses YOLO for speech bubble detection, EasyOCR for text localization and
recognition, LaMa for text removal and Skia/HarfBuzz for rendering.
"""

from .image.assignment import assign_regions
from .image.image_utils import cv2_to_pil, pil_to_cv2, save_image_with_compression
from .image.merging import MergeStrategy, merge_boxes
from .image.segmentation import extract_regions
from .pipeline import batch_translate_images, translate_and_render, translate_page
from .text.layout_engine import layout_text

__version__ = "1.0.0"
__version_info__ = (1, 0, 0)
__description__ = "A tool for translating comic pages"
__all__ = [
    "translate_and_render",
    "translate_page",
    "batch_translate_images",
    "merge_boxes",
    "MergeStrategy",
    "extract_regions",
    "assign_regions",
    "layout_text",
    "pil_to_cv2",
    "cv2_to_pil",
    "save_image_with_compression",
]
