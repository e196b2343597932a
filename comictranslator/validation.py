from pathlib import Path
from typing import Iterable, Tuple, Union

from utils.exceptions import ValidationError

MERGE_STRATEGIES = ("overlap", "containment")
RECOGNITION_MODES = ("ocr", "vlm")
OVERFLOW_POLICIES = ("clip", "skip")


def validate_model_path(path: Union[str, Path], label: str) -> Path:
    """Checks that a model file path is set and exists.

    Raises:
        ValidationError: If the path is empty
        FileNotFoundError: If the file does not exist
    """
    if not path:
        raise ValidationError(f"{label} model path is required.")
    model_path = Path(path)
    if not model_path.is_file():
        raise FileNotFoundError(f"{label} model not found: {model_path}")
    return model_path


def validate_model_paths(paths: Iterable[Union[str, Path]], label: str) -> None:
    paths = tuple(paths)
    if not paths:
        raise ValidationError(f"At least one {label} model path is required.")
    for path in paths:
        validate_model_path(path, label)


def validate_positive(value, label: str) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{label} must be a positive number, got {value!r}.")


def validate_positive_int(value, label: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{label} must be a positive integer, got {value!r}.")


def validate_non_negative(value, label: str) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{label} must not be negative, got {value!r}.")


def validate_unit_interval(value, label: str) -> None:
    """Checks that a threshold or confidence lies in [0, 1]."""
    if (
        not isinstance(value, (int, float))
        or isinstance(value, bool)
        or not 0.0 <= value <= 1.0
    ):
        raise ValidationError(f"{label} must be between 0 and 1, got {value!r}.")


def validate_choice(value: str, choices: Tuple[str, ...], label: str) -> None:
    if value not in choices:
        raise ValidationError(
            f"Invalid {label} '{value}'. Expected one of: {', '.join(choices)}."
        )


def validate_font_size_range(min_font_size: int, max_font_size: int) -> None:
    validate_positive_int(max_font_size, "Max font size")
    validate_positive_int(min_font_size, "Min font size")
    if min_font_size > max_font_size:
        raise ValidationError(
            f"Min font size ({min_font_size}) cannot exceed max font size ({max_font_size})."
        )


def validate_color(color) -> None:
    if (
        not isinstance(color, tuple)
        or len(color) not in (3, 4)
        or not all(isinstance(c, int) and 0 <= c <= 255 for c in color)
    ):
        raise ValidationError(
            f"Text color must be an (R, G, B[, A]) tuple of 0-255 integers, got {color!r}."
        )


def validate_font_path(font_path: Union[str, Path, None]) -> None:
    if font_path is None:
        return
    path = Path(font_path)
    if not path.is_file():
        raise FileNotFoundError(f"Font file not found: {path}")
    if path.suffix.lower() not in (".ttf", ".otf"):
        raise ValidationError(f"Font file must be .ttf or .otf: {path}")


def validate_batch_input_path(input_dir: Union[str, Path]) -> Path:
    """Checks that a batch input directory exists.

    Raises:
        ValidationError: If the path is not a directory
    """
    path = Path(input_dir)
    if not path.is_dir():
        raise ValidationError(f"Input path '{path}' is not a directory.")
    return path
