"""
Pytest configuration and global fixtures.

The fakes here stand in for the model-backed collaborators so the pipeline can
be exercised without model weights.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from comictranslator.config import (ComicTranslatorConfig, DetectionConfig,
                                    InpaintingConfig, RenderingConfig,
                                    SegmentationConfig)
from comictranslator.models import DetectedBox
from comictranslator.pipeline import Collaborators


class FakeDetector:
    def __init__(self, boxes=(), error=None):
        self.boxes = list(boxes)
        self.error = error

    def detect(self, image):
        if self.error is not None:
            raise self.error
        return list(self.boxes)


class FakeHeatmapModel:
    """Returns a fixed heatmap at image resolution with one block of text."""

    def __init__(self, block=(50, 40, 150, 60), value=1.0):
        self.block = block
        self.value = value

    def text_heatmap(self, image):
        heatmap = np.zeros((image.height, image.width), dtype=np.float32)
        x1, y1, x2, y2 = self.block
        heatmap[y1:y2, x1:x2] = self.value
        return heatmap


class FakeRecognizer:
    def __init__(self, text="hello world"):
        self.text = text
        self.calls = 0

    def recognize(self, crop):
        self.calls += 1
        return self.text


class FakeInpainter:
    """Fills every tile with white and records the tile shapes it saw."""

    def __init__(self, fill=255, shape=None):
        self.fill = fill
        self.shape = shape
        self.calls = []

    def inpaint(self, image_tile, mask_tile):
        self.calls.append((image_tile.shape, mask_tile.shape))
        shape = self.shape or image_tile.shape
        return np.full(shape, self.fill, dtype=np.uint8)


class FakeMetrics:
    """Monospace metrics: each character is 0.45 em wide, lines are 1.2 em."""

    def text_width(self, text, font_size):
        return len(text) * font_size * 0.45

    def line_height(self, font_size):
        return font_size * 1.2

    def ascent(self, font_size):
        return font_size * 0.8


class FakeRenderer:
    def __init__(self):
        self.metrics = FakeMetrics()
        self.layouts = []

    def draw(self, image, layouts):
        self.layouts.extend(layouts)
        return image.copy()


class FakeTranslator:
    def translate(self, text, source_language, target_language):
        return text.upper()


@pytest.fixture
def fake_metrics():
    return FakeMetrics()


@pytest.fixture
def model_files(tmp_path):
    """Create placeholder model files so path validation passes."""
    detector = tmp_path / "models" / "detector.pt"
    lama = tmp_path / "models" / "lama.pt"
    detector.parent.mkdir()
    detector.write_bytes(b"detector")
    lama.write_bytes(b"lama")
    return {"detector": str(detector), "inpainting": str(lama)}


@pytest.fixture
def make_config(model_files):
    """Build a CPU pipeline config, overriding nested sections as needed."""

    def _make(**overrides):
        params = {
            "detection": DetectionConfig(model_paths=(model_files["detector"],)),
            "inpainting": InpaintingConfig(model_path=model_files["inpainting"]),
            "segmentation": SegmentationConfig(padding_x=5, padding_y=5),
            "rendering": RenderingConfig(),
            "device": "cpu",
        }
        params.update(overrides)
        return ComicTranslatorConfig(**params)

    return _make


@pytest.fixture
def make_collaborators():
    def _make(**overrides):
        params = {
            "detectors": [FakeDetector([DetectedBox(20, 20, 180, 80, confidence=0.9)])],
            "heatmap_model": FakeHeatmapModel(),
            "recognizer": FakeRecognizer(),
            "inpainter": FakeInpainter(),
            "renderer": FakeRenderer(),
        }
        params.update(overrides)
        return Collaborators(**params)

    return _make


@pytest.fixture
def page_image():
    """A 200x100 page with dark text pixels inside the bubble and a dot outside."""
    image = Image.new("RGB", (200, 100), color="white")
    pixels = image.load()
    for x in range(60, 140):
        for y in range(45, 55):
            pixels[x, y] = (0, 0, 0)
    pixels[5, 5] = (10, 20, 30)
    return image


@pytest.fixture
def page_path(tmp_path, page_image):
    path = tmp_path / "page.png"
    page_image.save(path)
    return path
