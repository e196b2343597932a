from typing import List, Optional, Sequence

import cv2
import easyocr
import numpy as np
import torch
from easyocr.imgproc import normalizeMeanVariance, resize_aspect_ratio
from PIL import Image

from comictranslator.image.image_utils import crop_region
from comictranslator.image.segmentation import segment_heatmap
from comictranslator.ml.sessions import ModelSession
from comictranslator.models import RecognizedText, TextMaskRegion
from utils.exceptions import CollaboratorError, ModelError
from utils.logging import log_message


class EasyOcrSession(ModelSession):
    """
    One EasyOCR reader used both as text heatmap source and word recognizer.

    The CRAFT detector inside the reader produces the per-pixel text score map
    that the segmenter turns into mask regions; the reader's recognizer decodes
    cropped regions into strings. Both share the session lock because they
    share the reader.
    """

    name = "EasyOCR reader"

    def __init__(
        self,
        languages: Sequence[str] = ("en",),
        canvas_size: int = 2560,
        mag_ratio: float = 1.0,
        model_dir: Optional[str] = None,
        device: Optional[torch.device] = None,
        verbose: bool = False,
    ):
        super().__init__(device=device, verbose=verbose)
        self.languages = list(languages)
        self.canvas_size = canvas_size
        self.mag_ratio = mag_ratio
        try:
            self.reader = easyocr.Reader(
                self.languages,
                gpu=self.device.type == "cuda",
                model_storage_directory=model_dir,
                verbose=False,
            )
        except Exception as e:
            raise ModelError(f"Error loading EasyOCR reader: {e}") from e
        log_message(
            f"Loaded EasyOCR reader for {', '.join(self.languages)}", verbose=verbose
        )

    def _release(self):
        self.reader = None

    def text_heatmap(self, image: Image.Image) -> np.ndarray:
        """
        Per-pixel text probability for the page at model resolution.

        The returned map covers the whole page (padding added by the model's
        resize is cropped off) but is smaller than the page; callers upsample it.

        Raises:
            CollaboratorError: If the detector fails
        """
        image_np = np.array(image.convert("RGB"))
        resized, _, size_heatmap = resize_aspect_ratio(
            image_np,
            self.canvas_size,
            interpolation=cv2.INTER_LINEAR,
            mag_ratio=self.mag_ratio,
        )
        batch = torch.from_numpy(normalizeMeanVariance(resized))
        batch = batch.permute(2, 0, 1).unsqueeze(0)

        with self._lock:
            if self.reader is None:
                raise CollaboratorError(f"{self.name} is closed")
            try:
                batch = batch.to(self.reader.device)
                with torch.no_grad():
                    scores, _ = self.reader.detector(batch)
            except Exception as e:
                raise CollaboratorError(f"Text heatmap inference failed: {e}") from e

        if scores.ndim != 4 or scores.shape[-1] < 1:
            raise CollaboratorError(
                f"Text detector returned tensor of shape {tuple(scores.shape)}"
            )
        score_text = scores[0, :, :, 0].detach().cpu().numpy()
        heatmap_w, heatmap_h = size_heatmap
        return score_text[: max(heatmap_h, 1), : max(heatmap_w, 1)]

    def recognize(self, crop: Image.Image) -> str:
        """
        Decode the text in a cropped region.

        Raises:
            CollaboratorError: If recognition fails
        """
        crop_np = np.array(crop.convert("RGB"))
        with self._lock:
            if self.reader is None:
                raise CollaboratorError(f"{self.name} is closed")
            try:
                lines = self.reader.recognize(crop_np, detail=0)
            except Exception as e:
                raise CollaboratorError(f"Text recognition failed: {e}") from e

        if not isinstance(lines, list):
            raise CollaboratorError(
                f"Recognizer returned {type(lines).__name__}, expected a list"
            )
        return " ".join(str(line).strip() for line in lines if str(line).strip())


def find_text_regions(
    image: Image.Image,
    heatmap_model,
    threshold: float,
    padding=(0, 0),
    min_size: int = 5,
    verbose: bool = False,
) -> List[TextMaskRegion]:
    """
    Locate text regions on the page from the heatmap model's score map.

    Raises:
        CollaboratorError: If the heatmap model fails or returns a non-2D map
    """
    try:
        heatmap = np.asarray(heatmap_model.text_heatmap(image))
    except CollaboratorError:
        raise
    except Exception as e:
        raise CollaboratorError(f"Text heatmap failed: {e}") from e

    if heatmap.ndim != 2 or heatmap.size == 0:
        raise CollaboratorError(f"Text heatmap has unexpected shape {heatmap.shape}")

    regions = segment_heatmap(
        heatmap,
        image.size,
        threshold,
        padding=padding,
        min_size=min_size,
        verbose=verbose,
    )
    log_message(f"Found {len(regions)} text regions", verbose=verbose)
    return regions


def recognize_regions(
    image: Image.Image,
    regions: Sequence[TextMaskRegion],
    recognizer,
    language: str = "",
    verbose: bool = False,
) -> List[RecognizedText]:
    """
    Recognize each text region as one word block.

    Regions with no visible area or no decoded text are skipped.

    Raises:
        CollaboratorError: If the recognizer fails
    """
    words: List[RecognizedText] = []
    for region in regions:
        crop = crop_region(image, region)
        if crop is None:
            continue
        try:
            text = recognizer.recognize(crop)
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError(f"Text recognition failed: {e}") from e
        if not isinstance(text, str):
            raise CollaboratorError(
                f"Recognizer returned {type(text).__name__}, expected str"
            )
        text = text.strip()
        if not text:
            continue
        words.append(
            RecognizedText(
                region.x1, region.y1, region.x2, region.y2, text=text, language=language
            )
        )

    log_message(
        f"Recognized {len(words)}/{len(regions)} text regions", verbose=verbose
    )
    return words
