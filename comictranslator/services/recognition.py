import json
import re
from typing import Dict, List, Optional, Sequence

from PIL import Image

from comictranslator.image.assignment import assign_regions
from comictranslator.image.image_utils import crop_region, encode_image_base64
from comictranslator.models import DetectedBox, RecognizedText
from comictranslator.text.text_processing import join_words, normalize_text
from utils.endpoints import call_openai_compatible_endpoint
from utils.exceptions import CollaboratorError
from utils.logging import log_message

_JSON_BLOCK_RE = re.compile(r"```json(.*?)```", re.DOTALL)


def _build_extraction_prompt() -> str:
    return """
## ROLE
You are an expert comic text transcriber.

## OBJECTIVE
Transcribe every piece of text visible in the provided speech bubble image. Do not translate.

## CORE RULES
- Keep the original punctuation and casing. Collapse multi-line text into a single line.
- Ignore bubble borders, tails, watermarks and page numbers.
- Group text that belongs to the same sentence or balloon into one entry.

## OUTPUT SCHEMA
Return a JSON array inside a ```json fenced block, one object per text entry:
```json
[{"text": "<transcribed text>", "language": "<language name>"}]
```
Return an empty array if there is no legible text. Do not add anything else.
"""  # noqa


def parse_extracted_texts(response: Optional[str]) -> List[Dict[str, str]]:
    """
    Parse the fenced JSON payload returned by the vision model.

    The payload must be a JSON array of objects with a string ``text`` (and
    optionally ``language``). Anything else (no fenced block, invalid JSON, a
    wrong shape) yields an empty list. Entries with blank text are skipped.
    """
    if not response:
        return []
    match = _JSON_BLOCK_RE.search(response)
    if match is None:
        log_message("No JSON block in vision model response", always_print=True)
        return []

    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        log_message(f"Malformed JSON from vision model: {e}", always_print=True)
        return []

    if not isinstance(payload, list) or not all(
        isinstance(entry, dict) and isinstance(entry.get("text"), str)
        for entry in payload
    ):
        log_message("Unexpected JSON shape from vision model", always_print=True)
        return []

    entries = []
    for entry in payload:
        text = entry["text"].strip()
        if not text:
            continue
        language = entry.get("language")
        entries.append(
            {"text": text, "language": language if isinstance(language, str) else ""}
        )
    return entries


class VisionLanguageRecognizer:
    """Reads bubble text with a vision-language model behind an OpenAI-compatible API."""

    name = "vision language recognizer"

    def __init__(
        self,
        base_url: str,
        model_name: str,
        api_key: Optional[str] = None,
        temperature: float = 0.1,
        timeout: int = 480,
        verbose: bool = False,
    ):
        self.base_url = base_url
        self.model_name = model_name
        self.api_key = api_key
        self.temperature = temperature
        self.timeout = timeout
        self.verbose = verbose

    def extract(self, crop: Image.Image) -> List[Dict[str, str]]:
        """
        Transcribe the text in a bubble crop.

        Returns:
            List[Dict[str, str]]: ``{"text", "language"}`` entries; empty when
                the model's answer cannot be parsed

        Raises:
            TranslationError: If the endpoint call fails
        """
        response = call_openai_compatible_endpoint(
            base_url=self.base_url,
            api_key=self.api_key,
            model_name=self.model_name,
            prompt=_build_extraction_prompt(),
            images_b64=[encode_image_base64(crop)],
            generation_config={"temperature": self.temperature},
            debug=self.verbose,
            timeout=self.timeout,
        )
        return parse_extracted_texts(response)


def group_words_into_bubbles(
    bubbles: Sequence[DetectedBox],
    words: Sequence[RecognizedText],
    language: str = "",
    verbose: bool = False,
) -> List[RecognizedText]:
    """
    Merge recognized word blocks into one normalized text block per bubble.

    Words go to the bubble they overlap the most. Bubbles that receive no words
    are dropped; each remaining bubble yields a RecognizedText anchored to the
    bubble rectangle.
    """
    texts: List[RecognizedText] = []
    for assignment in assign_regions(bubbles, words, verbose=verbose):
        if not assignment.children:
            continue
        text = normalize_text(join_words(assignment.children))
        if not text:
            continue
        bubble = assignment.parent
        texts.append(
            RecognizedText(
                bubble.x1, bubble.y1, bubble.x2, bubble.y2, text=text, language=language
            )
        )
    log_message(f"Grouped words into {len(texts)} text blocks", verbose=verbose)
    return texts


def extract_bubble_texts(
    image: Image.Image,
    bubbles: Sequence[DetectedBox],
    recognizer,
    verbose: bool = False,
) -> List[RecognizedText]:
    """
    Ask the vision recognizer for the text of each bubble.

    The entries returned for one bubble are joined into a single RecognizedText
    anchored to that bubble, so every bubble keeps one text block to render.

    Raises:
        CollaboratorError: If the recognizer call fails
    """
    texts: List[RecognizedText] = []
    for index, bubble in enumerate(bubbles):
        crop = crop_region(image, bubble)
        if crop is None:
            continue
        try:
            entries = recognizer.extract(crop)
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError(f"Bubble text extraction failed: {e}") from e

        log_message(f"Bubble {index}: {len(entries)} text entries", verbose=verbose)
        if not entries:
            continue
        texts.append(
            RecognizedText(
                bubble.x1,
                bubble.y1,
                bubble.x2,
                bubble.y2,
                text=" ".join(entry["text"] for entry in entries),
                language=entries[0].get("language", ""),
            )
        )
    return texts
