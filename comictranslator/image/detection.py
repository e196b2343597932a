from typing import List, Optional, Sequence

import torch
from PIL import Image
from ultralytics import YOLO

from comictranslator.image.image_utils import pil_to_cv2
from comictranslator.image.merging import MergeStrategy, merge_boxes
from comictranslator.ml.assets import ModelSource, materialize_model_asset
from comictranslator.ml.sessions import ModelSession
from comictranslator.models import DetectedBox
from utils.exceptions import CollaboratorError, ModelError
from utils.logging import log_message


class YoloBubbleDetector(ModelSession):
    """Speech bubble detector backed by an ultralytics YOLO model."""

    name = "YOLO bubble detector"

    def __init__(
        self,
        model_source: ModelSource,
        confidence: float = 0.1,
        input_size: int = 1024,
        device: Optional[torch.device] = None,
        verbose: bool = False,
    ):
        super().__init__(device=device, verbose=verbose)
        self.confidence = confidence
        self.input_size = input_size
        try:
            model_path = self._resources.enter_context(
                materialize_model_asset(model_source, suffix=".pt", verbose=verbose)
            )
            self.model = YOLO(str(model_path))
            self.model_name = model_path.name
        except Exception as e:
            self._resources.close()
            raise ModelError(f"Error loading YOLO model: {e}") from e
        log_message(f"Loaded YOLO model: {self.model_name}", verbose=verbose)

    def _release(self):
        self.model = None

    def detect(self, image: Image.Image) -> List[DetectedBox]:
        """
        Detect speech bubbles in a page.

        Args:
            image: RGB page

        Returns:
            List[DetectedBox]: Detections in model output order

        Raises:
            CollaboratorError: If inference fails
        """
        image_cv = pil_to_cv2(image.convert("RGB"))
        with self._lock:
            if self.model is None:
                raise CollaboratorError(f"{self.name} is closed")
            try:
                results = self.model(
                    image_cv,
                    conf=self.confidence,
                    imgsz=self.input_size,
                    device=self.device,
                    verbose=False,
                )[0]
            except Exception as e:
                raise CollaboratorError(
                    f"YOLO inference failed ({self.model_name}): {e}"
                ) from e

        if results.boxes is None or len(results.boxes) == 0:
            log_message(f"No detections from {self.model_name}", verbose=self.verbose)
            return []

        detections = []
        xyxy = results.boxes.xyxy.tolist()
        confidences = results.boxes.conf.tolist()
        class_ids = results.boxes.cls.tolist()
        for (x1, y1, x2, y2), conf, cls_id in zip(xyxy, confidences, class_ids):
            detections.append(
                DetectedBox(
                    float(x1),
                    float(y1),
                    float(x2),
                    float(y2),
                    confidence=float(conf),
                    class_id=int(cls_id),
                )
            )
        log_message(
            f"{self.model_name} detected {len(detections)} bubbles", verbose=self.verbose
        )
        return detections


def detect_speech_bubbles(
    image: Image.Image,
    detectors: Sequence,
    merge_threshold: float,
    merge_strategy=MergeStrategy.OVERLAP,
    verbose: bool = False,
) -> List[DetectedBox]:
    """
    Run every detector on the page and merge their detections into one bubble set.

    Args:
        image: RGB page
        detectors: Objects with ``detect(image) -> List[DetectedBox]``
        merge_threshold: Ratio threshold passed to the merger
        merge_strategy: MergeStrategy (or its value) used for deduplication
        verbose: Whether to print detailed logs

    Raises:
        CollaboratorError: If any detector fails
    """
    detections: List[DetectedBox] = []
    for detector in detectors:
        try:
            detections.extend(detector.detect(image))
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError(f"Bubble detection failed: {e}") from e

    bubbles = merge_boxes(detections, merge_threshold, merge_strategy, verbose=verbose)
    log_message(
        f"Detected {len(bubbles)} speech bubbles ({len(detections)} raw detections)",
        always_print=True,
    )
    return bubbles
