import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

import torch

from comictranslator.device import resolve_device
from comictranslator.validation import (MERGE_STRATEGIES, OVERFLOW_POLICIES,
                                        RECOGNITION_MODES, validate_choice,
                                        validate_color, validate_font_path,
                                        validate_font_size_range,
                                        validate_model_path,
                                        validate_model_paths,
                                        validate_non_negative,
                                        validate_positive,
                                        validate_positive_int,
                                        validate_unit_interval)
from utils.exceptions import ValidationError


@dataclass(frozen=True)
class DetectionConfig:
    """Configuration for speech bubble detection and box merging."""

    model_paths: Tuple[str, ...]
    confidence: float = 0.1
    input_size: int = 1024
    merge_strategy: str = "overlap"
    merge_threshold: float = 0.9

    def __post_init__(self):
        if isinstance(self.model_paths, str):
            object.__setattr__(self, "model_paths", (self.model_paths,))
        else:
            object.__setattr__(self, "model_paths", tuple(self.model_paths))
        validate_model_paths(self.model_paths, "Detector")
        validate_unit_interval(self.confidence, "Detection confidence")
        validate_positive_int(self.input_size, "Detection input size")
        validate_choice(self.merge_strategy, MERGE_STRATEGIES, "merge strategy")
        validate_unit_interval(self.merge_threshold, "Merge threshold")


@dataclass(frozen=True)
class SegmentationConfig:
    """Configuration for the text heatmap and its segmentation into regions."""

    languages: Tuple[str, ...] = ("en",)
    canvas_size: int = 2560
    mag_ratio: float = 1.0
    threshold: float = 0.4
    padding_x: int = 15
    padding_y: int = 15
    min_region_size: int = 5
    model_dir: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "languages", tuple(self.languages))
        if not self.languages:
            raise ValidationError("At least one OCR language is required.")
        validate_positive_int(self.canvas_size, "Canvas size")
        validate_positive(self.mag_ratio, "Magnification ratio")
        validate_unit_interval(self.threshold, "Segmentation threshold")
        validate_non_negative(self.padding_x, "Horizontal padding")
        validate_non_negative(self.padding_y, "Vertical padding")
        validate_non_negative(self.min_region_size, "Minimum region size")


@dataclass(frozen=True)
class RecognitionConfig:
    """Configuration for reading the text inside bubbles."""

    mode: str = "ocr"
    vlm_url: str = "http://localhost:11434/v1"
    vlm_model: str = "qwen2.5vl:7b"
    vlm_api_key: Optional[str] = None
    temperature: float = 0.1
    timeout: int = 480

    def __post_init__(self):
        validate_choice(self.mode, RECOGNITION_MODES, "recognition mode")
        if self.mode == "vlm" and not self.vlm_url:
            raise ValidationError("A vision model URL is required for 'vlm' mode.")
        validate_positive_int(self.timeout, "Recognition timeout")


@dataclass(frozen=True)
class TranslationConfig:
    """Configuration for text translation through an OpenAI-compatible endpoint."""

    enabled: bool = False
    base_url: str = "http://localhost:11434/v1"
    api_key: Optional[str] = None
    model_name: str = "qwen2.5:7b"
    input_language: str = "Japanese"
    output_language: str = "English"
    temperature: float = 0.1
    timeout: int = 480

    def __post_init__(self):
        if not self.api_key:
            object.__setattr__(
                self, "api_key", os.environ.get("OPENAI_COMPATIBLE_API_KEY", "")
            )
        if self.enabled and not self.base_url:
            raise ValidationError("A base URL is required when translation is enabled.")
        validate_positive_int(self.timeout, "Translation timeout")


@dataclass(frozen=True)
class InpaintingConfig:
    """Configuration for text removal."""

    model_path: str
    tile_size: int = 512
    masked_only: bool = True

    def __post_init__(self):
        validate_model_path(self.model_path, "Inpainting")
        validate_positive_int(self.tile_size, "Tile size")


@dataclass(frozen=True)
class RenderingConfig:
    """Configuration for rendering text back into the page."""

    font_path: Optional[str] = None
    max_font_size: int = 40
    min_font_size: int = 8
    font_size_step: int = 1
    line_spacing: float = 1.0
    text_color: Tuple[int, ...] = (0, 0, 0)
    outline_width: float = 0.0
    overflow_policy: str = "clip"

    def __post_init__(self):
        object.__setattr__(self, "text_color", tuple(self.text_color))
        validate_font_path(self.font_path)
        validate_font_size_range(self.min_font_size, self.max_font_size)
        validate_positive_int(self.font_size_step, "Font size step")
        validate_positive(self.line_spacing, "Line spacing")
        validate_color(self.text_color)
        validate_non_negative(self.outline_width, "Outline width")
        validate_choice(self.overflow_policy, OVERFLOW_POLICIES, "overflow policy")


@dataclass(frozen=True)
class OutputConfig:
    """Configuration for saving output images."""

    png_compression: int = 6
    save_cleaned: bool = False
    debug_dir: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.png_compression, int) or not 0 <= self.png_compression <= 9:
            raise ValidationError("PNG compression must be an integer between 0 and 9.")


@dataclass(frozen=True)
class ComicTranslatorConfig:
    """Main configuration for the ComicTranslator pipeline."""

    detection: DetectionConfig
    inpainting: InpaintingConfig
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    rendering: RenderingConfig = field(default_factory=RenderingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False
    device: Optional[torch.device] = None
    max_workers: int = 1

    def __post_init__(self):
        # Autodetect device if not specified
        object.__setattr__(self, "device", resolve_device(self.device))
        validate_positive_int(self.max_workers, "Worker count")
