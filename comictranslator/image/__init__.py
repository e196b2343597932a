"""
Image processing and analysis modules for ComicTranslator.

This subpackage contains modules for:
- Speech bubble detection (YOLO) and box merging
- Text heatmap segmentation and recognition (EasyOCR)
- Region assignment
- Tiled inpainting for text removal (LaMa)
- General image utilities
"""

from .assignment import assign_regions, find_unassigned
from .detection import YoloBubbleDetector, detect_speech_bubbles
from .image_utils import (crop_region, cv2_to_pil, draw_debug_boxes, load_image,
                          pil_to_cv2, save_image_with_compression)
from .inpainting import LamaInpainter, rasterize_mask, remove_masked_content
from .merging import (MergeStrategy, merge_boxes, merge_contained_boxes,
                      merge_overlapping_boxes)
from .ocr_detection import EasyOcrSession, find_text_regions, recognize_regions
from .segmentation import extract_regions, segment_heatmap, upsample_heatmap

__all__ = [
    "assign_regions",
    "find_unassigned",
    "YoloBubbleDetector",
    "detect_speech_bubbles",
    "crop_region",
    "cv2_to_pil",
    "draw_debug_boxes",
    "load_image",
    "pil_to_cv2",
    "save_image_with_compression",
    "LamaInpainter",
    "rasterize_mask",
    "remove_masked_content",
    "MergeStrategy",
    "merge_boxes",
    "merge_contained_boxes",
    "merge_overlapping_boxes",
    "EasyOcrSession",
    "find_text_regions",
    "recognize_regions",
    "extract_regions",
    "segment_heatmap",
    "upsample_heatmap",
]
