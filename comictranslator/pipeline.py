import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from PIL import Image

from comictranslator.config import ComicTranslatorConfig
from comictranslator.image.assignment import assign_regions, find_unassigned
from comictranslator.image.detection import YoloBubbleDetector, detect_speech_bubbles
from comictranslator.image.image_utils import (IMAGE_EXTENSIONS, draw_debug_boxes,
                                               load_image,
                                               save_image_with_compression)
from comictranslator.image.inpainting import LamaInpainter, remove_masked_content
from comictranslator.image.ocr_detection import (EasyOcrSession,
                                                 find_text_regions,
                                                 recognize_regions)
from comictranslator.models import Assignment, RecognizedText, TextMaskRegion
from comictranslator.services.recognition import (VisionLanguageRecognizer,
                                                  extract_bubble_texts,
                                                  group_words_into_bubbles)
from comictranslator.services.translation import (LanguageModelTranslator,
                                                  translate_texts)
from comictranslator.text.drawing_engine import (HarfBuzzFontMetrics,
                                                 SkiaTextRenderer,
                                                 load_font_resources)
from comictranslator.text.layout_engine import (LayoutOverflow, TextLayout,
                                                describe_overflow, layout_text)
from utils.exceptions import ValidationError
from utils.logging import log_message


@dataclass
class Collaborators:
    """Model-backed components one pipeline run calls into.

    detectors: objects with ``detect(image)``
    heatmap_model: object with ``text_heatmap(image)``
    recognizer: ``recognize(crop)`` in ocr mode, ``extract(crop)`` in vlm mode
    inpainter: object with ``inpaint(image_tile, mask_tile)``
    renderer: object with ``metrics`` and ``draw(image, layouts)``
    translator: optional object with ``translate(text, source, target)``
    """

    detectors: Sequence[Any]
    heatmap_model: Any
    recognizer: Any
    inpainter: Any
    renderer: Any
    translator: Optional[Any] = None


@dataclass
class PageResult:
    image_path: Path
    output_path: Path
    bubble_count: int = 0
    text_count: int = 0
    region_count: int = 0
    overflows: List[LayoutOverflow] = field(default_factory=list)
    cleaned_path: Optional[Path] = None


@contextmanager
def load_collaborators(config: ComicTranslatorConfig) -> Iterator[Collaborators]:
    """
    Load every model the pipeline needs and release them on exit.

    Sessions are entered on one ExitStack, so models loaded before a failure
    are released too, and a release failure never replaces the error that
    caused the unwind.

    Raises:
        ValidationError: If no font is configured
        ModelError: If a model fails to load
        FontError: If the font cannot be loaded
    """
    if not config.rendering.font_path:
        raise ValidationError("A font file (rendering.font_path) is required.")

    verbose = config.verbose
    device = config.device
    with ExitStack() as stack:
        detectors = [
            stack.enter_context(
                YoloBubbleDetector(
                    path,
                    confidence=config.detection.confidence,
                    input_size=config.detection.input_size,
                    device=device,
                    verbose=verbose,
                )
            )
            for path in config.detection.model_paths
        ]

        seg_cfg = config.segmentation
        ocr = stack.enter_context(
            EasyOcrSession(
                languages=seg_cfg.languages,
                canvas_size=seg_cfg.canvas_size,
                mag_ratio=seg_cfg.mag_ratio,
                model_dir=seg_cfg.model_dir,
                device=device,
                verbose=verbose,
            )
        )

        rec_cfg = config.recognition
        if rec_cfg.mode == "vlm":
            recognizer = VisionLanguageRecognizer(
                base_url=rec_cfg.vlm_url,
                model_name=rec_cfg.vlm_model,
                api_key=rec_cfg.vlm_api_key,
                temperature=rec_cfg.temperature,
                timeout=rec_cfg.timeout,
                verbose=verbose,
            )
        else:
            recognizer = ocr

        inpainter = stack.enter_context(
            LamaInpainter(config.inpainting.model_path, device=device, verbose=verbose)
        )

        render_cfg = config.rendering
        fonts = load_font_resources(render_cfg.font_path)
        renderer = SkiaTextRenderer(
            fonts,
            HarfBuzzFontMetrics(fonts, line_spacing=render_cfg.line_spacing),
            text_color=render_cfg.text_color,
            outline_width=render_cfg.outline_width,
            verbose=verbose,
        )

        translator = None
        tr_cfg = config.translation
        if tr_cfg.enabled:
            translator = LanguageModelTranslator(
                base_url=tr_cfg.base_url,
                model_name=tr_cfg.model_name,
                api_key=tr_cfg.api_key,
                temperature=tr_cfg.temperature,
                timeout=tr_cfg.timeout,
                verbose=verbose,
            )

        log_message("All models loaded", verbose=verbose)
        yield Collaborators(
            detectors=detectors,
            heatmap_model=ocr,
            recognizer=recognizer,
            inpainter=inpainter,
            renderer=renderer,
            translator=translator,
        )


def _recognize_texts(
    image: Image.Image,
    bubbles,
    mask_regions: Sequence[TextMaskRegion],
    config: ComicTranslatorConfig,
    collaborators: Collaborators,
) -> List[RecognizedText]:
    verbose = config.verbose
    if config.recognition.mode == "vlm":
        return extract_bubble_texts(
            image, bubbles, collaborators.recognizer, verbose=verbose
        )

    words = recognize_regions(
        image,
        mask_regions,
        collaborators.recognizer,
        language=config.translation.input_language,
        verbose=verbose,
    )
    return group_words_into_bubbles(
        bubbles, words, language=config.translation.input_language, verbose=verbose
    )


def _layout_assignments(
    assignments: Sequence[Assignment[RecognizedText, TextMaskRegion]],
    image_size,
    config: ComicTranslatorConfig,
    metrics,
    result: PageResult,
) -> List[TextLayout]:
    render_cfg = config.rendering
    width, height = image_size
    layouts: List[TextLayout] = []

    for assignment in assignments:
        text = assignment.parent.text
        if not assignment.children:
            # Nothing to draw into; every word is reported as overflow
            result.overflows.append(
                LayoutOverflow(
                    text=text,
                    regions=(),
                    font_size=render_cfg.min_font_size,
                    overflow_words=tuple(text.split()),
                )
            )
            log_message(
                f"Warning: no text regions for '{text[:40]}'; not rendered",
                always_print=True,
            )
            continue

        regions = [child.clip(width, height) for child in assignment.children]
        layout = layout_text(
            text,
            regions,
            metrics,
            max_font_size=render_cfg.max_font_size,
            min_font_size=render_cfg.min_font_size,
            step=render_cfg.font_size_step,
            verbose=config.verbose,
        )
        if not layout.fits:
            overflow = describe_overflow(layout)
            result.overflows.append(overflow)
            log_message(
                f"Text overflow at size {overflow.font_size} "
                f"({len(overflow.overflow_words)} words did not fit, policy '{render_cfg.overflow_policy}'): "
                f"'{text[:40]}'",
                always_print=True,
            )
            if render_cfg.overflow_policy == "skip":
                continue
        layouts.append(layout)

    return layouts


def translate_page(
    image_path: Union[str, Path],
    output_path: Union[str, Path],
    config: ComicTranslatorConfig,
    collaborators: Collaborators,
) -> PageResult:
    """
    Translate one page and write the result as PNG.

    Args:
        image_path: Page to process
        output_path: Where to write the rewritten page
        config: Pipeline configuration
        collaborators: Loaded models (see ``load_collaborators``)

    Returns:
        PageResult: Counts, output paths and any text overflows

    Raises:
        InputError: If the page cannot be read
        CollaboratorError: If a model or language model call fails
        ImageProcessingError: If an output image cannot be written
    """
    start_time = time.time()
    image_path = Path(image_path)
    output_path = Path(output_path)
    verbose = config.verbose

    image = load_image(image_path)
    log_message(
        f"Processing image: {image_path.name} ({image.width}x{image.height})",
        verbose=verbose,
    )
    result = PageResult(image_path=image_path, output_path=output_path)

    # --- Detection ---
    bubbles = detect_speech_bubbles(
        image,
        collaborators.detectors,
        config.detection.merge_threshold,
        config.detection.merge_strategy,
        verbose=verbose,
    )
    result.bubble_count = len(bubbles)

    seg_cfg = config.segmentation
    mask_regions = find_text_regions(
        image,
        collaborators.heatmap_model,
        seg_cfg.threshold,
        padding=(seg_cfg.padding_x, seg_cfg.padding_y),
        min_size=seg_cfg.min_region_size,
        verbose=verbose,
    )

    if config.output.debug_dir:
        debug_dir = Path(config.output.debug_dir)
        save_image_with_compression(
            draw_debug_boxes(image, bubbles, color=(255, 0, 0)),
            debug_dir / f"{output_path.stem}_bubbles.png",
            verbose=verbose,
        )
        save_image_with_compression(
            draw_debug_boxes(image, mask_regions, color=(0, 200, 0)),
            debug_dir / f"{output_path.stem}_masks.png",
            verbose=verbose,
        )

    # --- Recognition & Translation ---
    texts = _recognize_texts(image, bubbles, mask_regions, config, collaborators)
    if collaborators.translator is not None and texts:
        texts = translate_texts(
            texts,
            collaborators.translator,
            config.translation.input_language,
            config.translation.output_language,
            verbose=verbose,
        )
    result.text_count = len(texts)

    # --- Text Removal ---
    assignments = assign_regions(texts, mask_regions, verbose=verbose)
    regions_to_clean = [child for a in assignments for child in a.children]
    result.region_count = len(regions_to_clean)
    unassigned = find_unassigned(assignments, mask_regions)
    if unassigned:
        log_message(
            f"{len(unassigned)} text regions outside recognized text left untouched",
            verbose=verbose,
        )

    cleaned = remove_masked_content(
        image,
        regions_to_clean,
        collaborators.inpainter,
        tile_size=config.inpainting.tile_size,
        masked_only=config.inpainting.masked_only,
        verbose=verbose,
    )
    if config.output.save_cleaned:
        result.cleaned_path = save_image_with_compression(
            cleaned,
            output_path.with_name(f"{output_path.stem}_cleaned.png"),
            png_compression=config.output.png_compression,
            verbose=verbose,
        )

    # --- Rendering ---
    layouts = _layout_assignments(
        assignments, image.size, config, collaborators.renderer.metrics, result
    )
    final_image = collaborators.renderer.draw(cleaned, layouts)

    result.output_path = save_image_with_compression(
        final_image,
        output_path,
        png_compression=config.output.png_compression,
        verbose=verbose,
    )

    log_message(
        f"Processed {image_path.name}: {result.bubble_count} bubbles, "
        f"{result.text_count} texts, {len(result.overflows)} overflows "
        f"in {time.time() - start_time:.2f}s",
        verbose=verbose,
    )
    return result


def translate_and_render(
    image_path: Union[str, Path],
    config: ComicTranslatorConfig,
    output_path: Union[str, Path],
) -> PageResult:
    """Load the models, translate a single page and release the models."""
    with load_collaborators(config) as collaborators:
        return translate_page(image_path, output_path, config, collaborators)


def _empty_results() -> Dict[str, Any]:
    return {
        "success_count": 0,
        "error_count": 0,
        "errors": {},
        "overflows": {},
        "outputs": [],
    }


def batch_translate_images(
    input_dir: Union[str, Path],
    config: ComicTranslatorConfig,
    output_dir: Optional[Union[str, Path]] = None,
    collaborators: Optional[Collaborators] = None,
    progress_callback: Optional[Callable[[float, str], None]] = None,
) -> Dict[str, Any]:
    """
    Process all images in a directory.

    Images are sorted by file name and the n-th image is written as
    ``{n:04d}.png``, so output names never depend on completion order. With
    ``config.max_workers > 1`` pages run in a thread pool; model calls are
    serialized per model by the sessions themselves.

    Args:
        input_dir (str or Path): Directory containing images to process
        config (ComicTranslatorConfig): Configuration object containing all settings.
        output_dir (str or Path, optional): Directory to save translated images.
                                            If None, uses ./output/<timestamp>.
        collaborators (Collaborators, optional): Already loaded models; loaded
                                                 (and released) here if None.
        progress_callback (callable, optional): Function to call with progress updates (0.0-1.0, message).

    Returns:
        dict: Processing results with keys:
            - "success_count": Number of successfully processed images
            - "error_count": Number of images that failed to process
            - "errors": Dictionary mapping filenames to error messages
            - "overflows": Dictionary mapping filenames to their LayoutOverflow lists
            - "outputs": Output path per input image in sorted order (None on failure)
    """
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        log_message(f"Input path '{input_dir}' is not a directory", always_print=True)
        return _empty_results()

    if output_dir:
        output_dir = Path(output_dir)
    else:
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        output_dir = Path("./output") / timestamp
    os.makedirs(output_dir, exist_ok=True)

    image_files = sorted(
        (
            f
            for f in input_dir.iterdir()
            if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
        ),
        key=lambda f: f.name,
    )
    if not image_files:
        log_message(f"No image files found in '{input_dir}'", always_print=True)
        return _empty_results()

    if collaborators is None:
        with load_collaborators(config) as loaded:
            return _run_batch(image_files, output_dir, config, loaded, progress_callback)
    return _run_batch(image_files, output_dir, config, collaborators, progress_callback)


def _run_batch(
    image_files: List[Path],
    output_dir: Path,
    config: ComicTranslatorConfig,
    collaborators: Collaborators,
    progress_callback: Optional[Callable[[float, str], None]],
) -> Dict[str, Any]:
    total_images = len(image_files)
    start_batch_time = time.time()
    log_message(f"Starting batch processing: {total_images} images", always_print=True)
    if progress_callback:
        progress_callback(0.0, f"Starting batch processing of {total_images} images...")

    def _process(index: int):
        img_path = image_files[index]
        output_path = output_dir / f"{index:04d}.png"
        log_message(
            f"Processing {index + 1}/{total_images}: {img_path.name}", always_print=True
        )
        try:
            return translate_page(img_path, output_path, config, collaborators)
        except Exception as e:
            log_message(f"Error processing {img_path.name}: {e}", always_print=True)
            return e

    outcomes: List[Any] = [None] * total_images
    workers = min(config.max_workers, total_images)
    if workers <= 1:
        for index in range(total_images):
            outcomes[index] = _process(index)
            if progress_callback:
                progress_callback(
                    (index + 1) / total_images,
                    f"Completed {index + 1}/{total_images} images",
                )
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(_process, i): i for i in range(total_images)}
            for completed, future in enumerate(as_completed(futures), start=1):
                outcomes[futures[future]] = future.result()
                if progress_callback:
                    progress_callback(
                        completed / total_images,
                        f"Completed {completed}/{total_images} images",
                    )

    results = _empty_results()
    for img_path, outcome in zip(image_files, outcomes):
        if isinstance(outcome, Exception):
            results["error_count"] += 1
            results["errors"][img_path.name] = str(outcome)
            results["outputs"].append(None)
            continue
        results["success_count"] += 1
        results["outputs"].append(outcome.output_path)
        if outcome.overflows:
            results["overflows"][img_path.name] = outcome.overflows

    if progress_callback:
        progress_callback(1.0, "Processing complete")

    total_batch_time = time.time() - start_batch_time
    seconds_per_image = total_batch_time / total_images if total_images > 0 else 0
    log_message(
        f"Batch complete: {results['success_count']}/{total_images} images in "
        f"{total_batch_time:.2f}s ({seconds_per_image:.2f}s/image)",
        always_print=True,
    )
    if results["error_count"] > 0:
        log_message(f"Failed: {results['error_count']} images", always_print=True)
        for filename, error_msg in results["errors"].items():
            log_message(f"  - {filename}: {error_msg}", always_print=True)
    if results["overflows"]:
        log_message(
            f"Text overflow on {len(results['overflows'])} images", always_print=True
        )

    return results
