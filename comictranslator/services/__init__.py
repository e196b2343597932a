"""
External service integration modules for ComicTranslator.

This subpackage contains modules for:
- Bubble transcription with vision-language models
- Text translation through language models
"""

from .recognition import (VisionLanguageRecognizer, extract_bubble_texts,
                          group_words_into_bubbles, parse_extracted_texts)
from .translation import LanguageModelTranslator, translate_texts

__all__ = [
    "VisionLanguageRecognizer",
    "extract_bubble_texts",
    "group_words_into_bubbles",
    "parse_extracted_texts",
    "LanguageModelTranslator",
    "translate_texts",
]
