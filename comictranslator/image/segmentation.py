from typing import List, Tuple

import cv2
import numpy as np
import torch
import torch.nn.functional as F

from comictranslator.models import TextMaskRegion
from utils.logging import log_message

# Components this small (in either dimension) are treated as noise
DEFAULT_MIN_REGION_SIZE = 5


def upsample_heatmap(heatmap: np.ndarray, height: int, width: int) -> np.ndarray:
    """
    Bilinearly resize a model-resolution heatmap to image resolution.

    Corner samples map onto corner pixels (``align_corners=True``), so region
    coordinates extracted afterwards are already in image pixel space.

    Args:
        heatmap: 2D float array at model resolution
        height: Target height in pixels
        width: Target width in pixels

    Returns:
        np.ndarray: float32 array of shape (height, width)
    """
    heatmap = np.asarray(heatmap, dtype=np.float32)
    if heatmap.ndim != 2:
        raise ValueError(f"Heatmap must be 2D, got shape {heatmap.shape}")
    if heatmap.shape == (height, width):
        return heatmap

    tensor = torch.from_numpy(np.ascontiguousarray(heatmap))[None, None]
    with torch.no_grad():
        resized = F.interpolate(
            tensor, size=(height, width), mode="bilinear", align_corners=True
        )
    return resized[0, 0].numpy()


def extract_regions(
    heatmap: np.ndarray,
    threshold: float,
    padding: Tuple[float, float] = (0, 0),
    min_size: int = DEFAULT_MIN_REGION_SIZE,
    verbose: bool = False,
) -> List[TextMaskRegion]:
    """
    Split a heatmap into text regions by thresholding and 8-connected labelling.

    Cells strictly above ``threshold`` form the foreground. Each connected
    component becomes one region whose bounding box uses inclusive max
    coordinates and whose confidence is the mean activation of its cells.
    Components with ``x2 - x1 <= min_size`` or ``y2 - y1 <= min_size`` are
    dropped. Regions come back in raster order of their first cell.

    Args:
        heatmap: 2D float array, already at image resolution
        threshold: Activation that a cell must exceed to count as text
        padding: (padding_x, padding_y) to enlarge each region by; the tight
            box is kept as ``original`` when non-zero
        min_size: Noise floor in pixels
        verbose: Whether to print detailed logs

    Returns:
        List[TextMaskRegion]: Regions found in the heatmap
    """
    heatmap = np.asarray(heatmap, dtype=np.float32)
    if heatmap.ndim != 2:
        raise ValueError(f"Heatmap must be 2D, got shape {heatmap.shape}")

    foreground = (heatmap > threshold).astype(np.uint8)
    if not foreground.any():
        return []

    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(
        foreground, connectivity=8, ltype=cv2.CV_32S
    )

    flat_labels = labels.ravel()
    sums = np.bincount(
        flat_labels, weights=heatmap.ravel().astype(np.float64), minlength=num_labels
    )
    # Label 0 is the background; order components by their first raster cell
    found_labels, first_index = np.unique(flat_labels, return_index=True)
    raster_order = [
        int(label) for _, label in sorted(zip(first_index, found_labels)) if label != 0
    ]

    padding_x, padding_y = padding
    regions: List[TextMaskRegion] = []
    discarded = 0
    for label in raster_order:
        left, top, width, height, area = stats[label]
        x1, y1 = int(left), int(top)
        x2, y2 = x1 + int(width) - 1, y1 + int(height) - 1
        if (x2 - x1) <= min_size or (y2 - y1) <= min_size:
            discarded += 1
            continue

        region = TextMaskRegion(
            float(x1),
            float(y1),
            float(x2),
            float(y2),
            confidence=float(sums[label] / area),
        )
        if padding_x or padding_y:
            region = region.enlarged(padding_x, padding_y)
        regions.append(region)

    log_message(
        f"Heatmap segmentation: {len(regions)} regions, {discarded} below noise floor",
        verbose=verbose,
    )
    return regions


def segment_heatmap(
    heatmap: np.ndarray,
    image_size: Tuple[int, int],
    threshold: float,
    padding: Tuple[float, float] = (0, 0),
    min_size: int = DEFAULT_MIN_REGION_SIZE,
    verbose: bool = False,
) -> List[TextMaskRegion]:
    """Upsample a model heatmap to ``image_size`` (width, height) and extract regions."""
    width, height = image_size
    full_resolution = upsample_heatmap(heatmap, height, width)
    return extract_regions(
        full_resolution, threshold, padding=padding, min_size=min_size, verbose=verbose
    )
