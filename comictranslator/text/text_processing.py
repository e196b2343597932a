import re
from typing import List, Sequence

from comictranslator.models import RecognizedText

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r" +([!?.])")
# A sentence ends at a run of terminal punctuation; trailing text without one
# is its own sentence.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+")


def tokenize(text: str) -> List[str]:
    """Whitespace-delimited words of ``text``."""
    return text.split()


def _sentence_case(sentence: str) -> str:
    lowered = sentence.lower()
    for index, char in enumerate(lowered):
        if char.isalpha():
            return lowered[:index] + char.upper() + lowered[index + 1 :]
    return lowered


def normalize_text(text: str) -> str:
    """
    Clean up OCR output for rendering.

    Hyphenated line breaks ("- ") are joined, whitespace is collapsed, spaces
    before ``! ? .`` are removed, and every sentence is lowercased with its
    first letter capitalized, so shouted comic lettering reads naturally.

    Examples:
        >>> normalize_text("  WOW   !!   OKAY   ?  ")
        'Wow!! Okay?'
    """
    if not text or not text.strip():
        return ""

    cleaned = text.replace("- ", "").strip()
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    cleaned = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", cleaned)

    sentences = []
    for match in _SENTENCE_RE.finditer(cleaned):
        sentence = match.group().strip()
        if sentence:
            sentences.append(_sentence_case(sentence))
    return " ".join(sentences)


def join_words(words: Sequence[RecognizedText]) -> str:
    """Join word blocks in reading order (top to bottom, then left to right)."""
    ordered = sorted(words, key=lambda word: (word.y1, word.x1))
    return " ".join(word.text for word in ordered if word.text)
