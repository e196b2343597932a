import argparse
import sys
import time
from pathlib import Path

import torch

from comictranslator.config import (ComicTranslatorConfig, DetectionConfig,
                                    InpaintingConfig, OutputConfig,
                                    RecognitionConfig, RenderingConfig,
                                    SegmentationConfig, TranslationConfig)
from comictranslator.pipeline import batch_translate_images, translate_and_render
from comictranslator.validation import validate_batch_input_path
from utils.exceptions import ValidationError
from utils.logging import log_message


def parse_color(value: str) -> tuple:
    """Parse "R,G,B[,A]" or "#RRGGBB[AA]" into a tuple of 0-255 ints."""
    text = value.strip()
    try:
        if text.startswith("#"):
            digits = text[1:]
            if len(digits) not in (6, 8):
                raise ValueError(digits)
            return tuple(int(digits[i : i + 2], 16) for i in range(0, len(digits), 2))
        return tuple(int(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid color '{value}' (use R,G,B[,A] or #RRGGBB)"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Remove and re-render the text in comic speech bubbles"
    )
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to input image or directory (if using --batch)",
    )
    parser.add_argument(
        "--output",
        type=str,
        required=False,
        help="Path to save the rendered image or directory (if using --batch)",
    )
    parser.add_argument(
        "--batch",
        action="store_true",
        help="Process all images in the input directory (outputs are named 0000.png, 0001.png, ...)",
    )
    # --- Models ---
    parser.add_argument(
        "--detector-model",
        dest="detector_models",
        action="append",
        required=True,
        help="Path to a YOLO bubble detection model (repeat to merge several detectors)",
    )
    parser.add_argument(
        "--inpainting-model",
        type=str,
        required=True,
        help="Path to the TorchScript LaMa model",
    )
    parser.add_argument(
        "--font",
        type=str,
        required=True,
        help="Path to the .ttf/.otf font used for rendering",
    )
    parser.add_argument(
        "--ocr-model-dir",
        type=str,
        default=None,
        help="Directory holding (or receiving) the EasyOCR model files",
    )
    # --- Detection ---
    parser.add_argument(
        "--conf", type=float, default=0.1, help="Detection confidence threshold"
    )
    parser.add_argument(
        "--detector-input-size", type=int, default=1024, help="Detector input size"
    )
    parser.add_argument(
        "--merge-strategy",
        type=str,
        default="overlap",
        choices=["overlap", "containment"],
        help="How duplicate detections are merged",
    )
    parser.add_argument(
        "--merge-threshold", type=float, default=0.9, help="Merge ratio threshold"
    )
    # --- Segmentation ---
    parser.add_argument(
        "--languages",
        type=str,
        default="en",
        help="Comma separated EasyOCR language codes (e.g. 'en' or 'ja,en')",
    )
    parser.add_argument(
        "--text-threshold",
        type=float,
        default=0.4,
        help="Heatmap activation above which a pixel counts as text",
    )
    parser.add_argument(
        "--padding", type=int, default=15, help="Pixels added around each text region"
    )
    # --- Recognition ---
    parser.add_argument(
        "--recognition-mode",
        type=str,
        default="ocr",
        choices=["ocr", "vlm"],
        help="Read text with EasyOCR ('ocr') or a vision-language model ('vlm')",
    )
    parser.add_argument(
        "--vlm-url",
        type=str,
        default="http://localhost:11434/v1",
        help="OpenAI-compatible base URL of the vision-language model",
    )
    parser.add_argument(
        "--vlm-model", type=str, default="qwen2.5vl:7b", help="Vision-language model"
    )
    # --- Translation ---
    parser.add_argument(
        "--translate", action="store_true", help="Translate text before rendering"
    )
    parser.add_argument(
        "--llm-url",
        type=str,
        default="http://localhost:11434/v1",
        help="OpenAI-compatible base URL of the translation model",
    )
    parser.add_argument(
        "--llm-model", type=str, default="qwen2.5:7b", help="Translation model"
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key for the endpoints (overrides OPENAI_COMPATIBLE_API_KEY env var)",
    )
    parser.add_argument(
        "--input-language", type=str, default="Japanese", help="Source language"
    )
    parser.add_argument(
        "--output-language", type=str, default="English", help="Target language"
    )
    # --- Rendering ---
    parser.add_argument(
        "--max-font-size", type=int, default=40, help="Largest font size to try"
    )
    parser.add_argument(
        "--min-font-size", type=int, default=8, help="Smallest font size to try"
    )
    parser.add_argument(
        "--line-spacing", type=float, default=1.0, help="Line spacing multiplier"
    )
    parser.add_argument(
        "--text-color",
        type=parse_color,
        default=(0, 0, 0),
        help="Text color as R,G,B[,A] or #RRGGBB[AA]",
    )
    parser.add_argument(
        "--outline-width", type=float, default=0.0, help="Text outline width"
    )
    parser.add_argument(
        "--overflow-policy",
        type=str,
        default="clip",
        choices=["clip", "skip"],
        help="What to do when text does not fit at the minimum size",
    )
    # --- Inpainting & Output ---
    parser.add_argument(
        "--tile-size", type=int, default=512, help="Inpainting tile size"
    )
    parser.add_argument(
        "--png-compression", type=int, default=6, help="PNG compression level (0-9)"
    )
    parser.add_argument(
        "--save-cleaned",
        action="store_true",
        help="Also save the text-removed page next to the output",
    )
    parser.add_argument(
        "--debug-dir",
        type=str,
        default=None,
        help="Directory for bubble/region debug overlays",
    )
    parser.add_argument(
        "--workers", type=int, default=1, help="Pages processed in parallel (--batch)"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--cpu", action="store_true", help="Force CPU usage")
    return parser


def build_config(args) -> ComicTranslatorConfig:
    target_device = torch.device("cpu") if args.cpu else None
    api_key = args.api_key

    return ComicTranslatorConfig(
        detection=DetectionConfig(
            model_paths=tuple(args.detector_models),
            confidence=args.conf,
            input_size=args.detector_input_size,
            merge_strategy=args.merge_strategy,
            merge_threshold=args.merge_threshold,
        ),
        inpainting=InpaintingConfig(
            model_path=args.inpainting_model, tile_size=args.tile_size
        ),
        segmentation=SegmentationConfig(
            languages=tuple(
                code.strip() for code in args.languages.split(",") if code.strip()
            ),
            threshold=args.text_threshold,
            padding_x=args.padding,
            padding_y=args.padding,
            model_dir=args.ocr_model_dir,
        ),
        recognition=RecognitionConfig(
            mode=args.recognition_mode,
            vlm_url=args.vlm_url,
            vlm_model=args.vlm_model,
            vlm_api_key=api_key,
        ),
        translation=TranslationConfig(
            enabled=args.translate,
            base_url=args.llm_url,
            api_key=api_key,
            model_name=args.llm_model,
            input_language=args.input_language,
            output_language=args.output_language,
        ),
        rendering=RenderingConfig(
            font_path=args.font,
            max_font_size=args.max_font_size,
            min_font_size=args.min_font_size,
            line_spacing=args.line_spacing,
            text_color=args.text_color,
            outline_width=args.outline_width,
            overflow_policy=args.overflow_policy,
        ),
        output=OutputConfig(
            png_compression=args.png_compression,
            save_cleaned=args.save_cleaned,
            debug_dir=args.debug_dir,
        ),
        verbose=args.verbose,
        device=target_device,
        max_workers=args.workers,
    )


def main():
    parser = build_parser()
    args = parser.parse_args()

    try:
        config = build_config(args)
    except (ValidationError, FileNotFoundError) as e:
        parser.error(str(e))

    log_message(f"Using {config.device.type.upper()} device.", always_print=True)

    # --- Execute ---
    if args.batch:
        try:
            input_path = validate_batch_input_path(args.input)
        except ValidationError as e:
            log_message(f"Error: --batch requires a directory: {e}", always_print=True)
            sys.exit(1)

        output_dir = Path(args.output) if args.output else None
        if output_dir is not None and output_dir.exists() and not output_dir.is_dir():
            log_message(
                f"Error: Specified --output '{output_dir}' is not a directory.",
                always_print=True,
            )
            sys.exit(1)

        results = batch_translate_images(input_path, config, output_dir)
        if results["error_count"] > 0:
            sys.exit(1)
    else:
        input_path = Path(args.input)
        if not input_path.is_file():
            log_message(
                f"Error: Input '{args.input}' is not a valid file.", always_print=True
            )
            sys.exit(1)

        if args.output:
            output_path = Path(args.output)
        else:
            timestamp = time.strftime("%Y%m%d_%H%M%S")
            output_path = Path("./output") / f"{input_path.stem}_translated_{timestamp}.png"
            log_message(
                f"--output not specified, using default: {output_path}",
                always_print=True,
            )

        try:
            log_message(f"Processing {input_path}...", always_print=True)
            result = translate_and_render(input_path, config, output_path)
            log_message(
                f"Translation complete. Result saved to {result.output_path}",
                always_print=True,
            )
        except Exception as e:
            log_message(f"Error processing {input_path}: {e}", always_print=True)
            sys.exit(1)


if __name__ == "__main__":
    main()
