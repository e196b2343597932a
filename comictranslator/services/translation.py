from typing import List, Optional, Sequence

from comictranslator.models import RecognizedText
from utils.endpoints import call_openai_compatible_endpoint
from utils.exceptions import CollaboratorError, TranslationError
from utils.logging import log_message


def _build_system_prompt_translation(source_language: str, target_language: str) -> str:
    return f"""
## ROLE
You are an expert manga/comic translator.

## OBJECTIVE
Translate the {source_language} text you are given into natural, fluent {target_language}.

## CORE RULES
- Preserve the tone of spoken dialogue; keep it short enough to fit a speech bubble.
- Keep interjections and sound effects expressive rather than literal.
- If the text is already in {target_language}, return it unchanged.

## OUTPUT SCHEMA
Return only the translated text on a single line, with no quotes, labels or explanations.
"""  # noqa


class LanguageModelTranslator:
    """Translates text blocks through an OpenAI-compatible chat endpoint."""

    name = "language model translator"

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

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        """
        Translate one block of text.

        Raises:
            TranslationError: If the endpoint fails or returns no content
        """
        if not text.strip():
            return text
        response = call_openai_compatible_endpoint(
            base_url=self.base_url,
            api_key=self.api_key,
            model_name=self.model_name,
            prompt=text,
            generation_config={"temperature": self.temperature},
            system_prompt=_build_system_prompt_translation(
                source_language, target_language
            ),
            debug=self.verbose,
            timeout=self.timeout,
        )
        if not response:
            raise TranslationError(f"Empty translation for text: {text[:50]!r}")
        return " ".join(response.split())


def translate_texts(
    texts: Sequence[RecognizedText],
    translator,
    source_language: str,
    target_language: str,
    verbose: bool = False,
) -> List[RecognizedText]:
    """
    Replace the text of every block with its translation.

    Raises:
        CollaboratorError: If the translator fails for any block
    """
    translated: List[RecognizedText] = []
    for index, block in enumerate(texts):
        try:
            result = translator.translate(block.text, source_language, target_language)
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError(f"Translation failed: {e}") from e
        if not isinstance(result, str):
            raise CollaboratorError(
                f"Translator returned {type(result).__name__}, expected str"
            )
        log_message(f"Text {index}: '{block.text}' -> '{result}'", verbose=verbose)
        translated.append(block.with_text(result, language=target_language))
    return translated
