from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
import torch
from PIL import Image

from comictranslator.ml.assets import ModelSource, materialize_model_asset
from comictranslator.ml.sessions import ModelSession
from comictranslator.models import Rectangle
from utils.exceptions import CollaboratorError, ModelError
from utils.logging import log_message

# Tiling Parameters
DEFAULT_TILE_SIZE = 512  # LaMa works on fixed 512x512 inputs
MASK_VALUE = 255


def rasterize_mask(size: Tuple[int, int], regions: Sequence[Rectangle]) -> np.ndarray:
    """
    Rasterize mask regions into one full-resolution binary mask.

    Rectangles are filled with hard edges (no anti-aliasing) and clipped to the
    image. Tiles crop this single mask so fills line up across tile borders.

    Args:
        size: (width, height) of the image
        regions: Regions to mask

    Returns:
        np.ndarray: uint8 mask of shape (height, width), 255 where masked
    """
    width, height = size
    mask = np.zeros((height, width), dtype=np.uint8)
    for region in regions:
        x1, y1, x2, y2 = region.clip(width, height).to_int_box()
        if x2 > x1 and y2 > y1:
            mask[y1:y2, x1:x2] = MASK_VALUE
    return mask


def _inpaint_tile(
    inpainter, image_tile: np.ndarray, mask_tile: np.ndarray, tile_size: int
) -> np.ndarray:
    """Resize a tile to the model size, inpaint it and resize the result back."""
    tile_h, tile_w = image_tile.shape[:2]
    needs_resize = (tile_w, tile_h) != (tile_size, tile_size)

    model_image = image_tile
    model_mask = mask_tile
    if needs_resize:
        model_image = cv2.resize(
            image_tile, (tile_size, tile_size), interpolation=cv2.INTER_LINEAR
        )
        model_mask = cv2.resize(
            mask_tile, (tile_size, tile_size), interpolation=cv2.INTER_NEAREST
        )

    try:
        result = inpainter.inpaint(model_image, model_mask)
    except CollaboratorError:
        raise
    except Exception as e:
        raise CollaboratorError(f"Inpainting failed: {e}") from e

    result = np.asarray(result)
    if result.shape != (tile_size, tile_size, 3):
        raise CollaboratorError(
            f"Inpainter returned shape {result.shape}, expected {(tile_size, tile_size, 3)}"
        )
    result = result.astype(np.uint8, copy=False)

    if needs_resize:
        result = cv2.resize(result, (tile_w, tile_h), interpolation=cv2.INTER_LINEAR)
    return result


def remove_masked_content(
    image: Image.Image,
    regions: Sequence[Rectangle],
    inpainter,
    tile_size: int = DEFAULT_TILE_SIZE,
    masked_only: bool = True,
    verbose: bool = False,
) -> Image.Image:
    """
    Remove the content under ``regions`` by inpainting the image tile by tile.

    The image is split into a grid of ``tile_size`` tiles (the last row and
    column may be smaller). Tiles with nothing masked are copied through
    untouched. Every other tile, and its crop of the mask, is resized to
    exactly ``tile_size`` x ``tile_size``, inpainted, resized back and pasted at
    its original offset.

    Args:
        image: Page to clean
        regions: Regions whose content should be removed
        inpainter: Object with ``inpaint(image_tile, mask_tile) -> image_tile``
            working on (tile_size, tile_size, 3) uint8 RGB arrays
        tile_size: Side length the inpainter expects
        masked_only: Take only masked pixels from the inpainted tile; the rest
            of the tile keeps its original pixels
        verbose: Whether to print detailed logs

    Returns:
        PIL.Image: Cleaned RGB image of the same size

    Raises:
        CollaboratorError: If the inpainter fails or returns an unexpected shape
    """
    source = np.array(image.convert("RGB"))
    height, width = source.shape[:2]
    mask = rasterize_mask((width, height), regions)
    output = source.copy()

    if not mask.any():
        log_message("Nothing to inpaint", verbose=verbose)
        return Image.fromarray(output)

    inpainted_tiles = 0
    for top in range(0, height, tile_size):
        for left in range(0, width, tile_size):
            bottom = min(top + tile_size, height)
            right = min(left + tile_size, width)
            mask_tile = mask[top:bottom, left:right]
            if not mask_tile.any():
                continue

            image_tile = source[top:bottom, left:right]
            result = _inpaint_tile(inpainter, image_tile, mask_tile, tile_size)
            if masked_only:
                result = np.where(mask_tile[..., None] > 0, result, image_tile)
            output[top:bottom, left:right] = result
            inpainted_tiles += 1

    log_message(
        f"Inpainted {inpainted_tiles} tiles of {tile_size}px for {len(regions)} regions",
        verbose=verbose,
    )
    return Image.fromarray(output)


class LamaInpainter(ModelSession):
    """Inpainter backed by a TorchScript export of the LaMa model."""

    name = "LaMa inpainter"

    def __init__(
        self,
        model_source: ModelSource,
        device: Optional[torch.device] = None,
        verbose: bool = False,
    ):
        super().__init__(device=device, verbose=verbose)
        try:
            model_path = self._resources.enter_context(
                materialize_model_asset(model_source, suffix=".pt", verbose=verbose)
            )
            self.model = torch.jit.load(str(model_path), map_location="cpu")
            self.model.to(self.device).eval()
        except Exception as e:
            self._resources.close()
            raise ModelError(f"Failed to load LaMa model: {e}") from e
        log_message(f"Loaded LaMa model on {self.device}", verbose=verbose)

    def _release(self):
        self.model = None

    def inpaint(self, image_tile: np.ndarray, mask_tile: np.ndarray) -> np.ndarray:
        """
        Inpaint one tile.

        Args:
            image_tile: (H, W, 3) uint8 RGB array
            mask_tile: (H, W) uint8 array, non-zero where content is removed

        Returns:
            np.ndarray: (H, W, 3) uint8 RGB array
        """
        image = torch.from_numpy(image_tile).permute(2, 0, 1).float().div(255.0)
        mask = torch.from_numpy((mask_tile > 0).astype(np.float32))
        image = image.unsqueeze(0).to(self.device)
        mask = mask.unsqueeze(0).unsqueeze(0).to(self.device)

        with self._lock:
            if self.model is None:
                raise CollaboratorError("LaMa inpainter is closed")
            with torch.no_grad():
                output = self.model(image, mask)

        if output.ndim != 4 or output.shape[1] != 3:
            raise CollaboratorError(
                f"LaMa returned tensor of shape {tuple(output.shape)}"
            )
        result = output[0].permute(1, 2, 0).detach().cpu().numpy()
        return np.clip(result * 255.0, 0, 255).astype(np.uint8)
