import json
import time
from typing import Any, Dict, List, Optional, Sequence

import requests

from utils.exceptions import TranslationError, ValidationError
from utils.logging import log_message

# Status codes worth retrying: rate limits and transient server errors
RETRYABLE_STATUS_CODES = (429, 502, 503, 504)
MAX_RETRY_DELAY = 16.0


def _build_messages(
    prompt: str, images_b64: Sequence[str], system_prompt: Optional[str]
) -> List[Dict[str, Any]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    if not images_b64:
        messages.append({"role": "user", "content": prompt})
        return messages

    user_content = [
        {
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{image_b64}"},
        }
        for image_b64 in images_b64
    ]
    user_content.append({"type": "text", "text": prompt})
    messages.append({"role": "user", "content": user_content})
    return messages


def _extract_content(result: Dict[str, Any], debug: bool) -> Optional[str]:
    choices = result.get("choices") or []
    if not choices:
        if "error" in result:
            error_msg = result.get("error", {}).get("message", "Unknown error")
            raise TranslationError(f"OpenAI-Compatible API returned error: {error_msg}")
        log_message("No choices in OpenAI-Compatible response", always_print=True)
        return None

    choice = choices[0]
    if choice.get("finish_reason") in ("content_filter", "safety"):
        log_message("Response blocked by content filter", always_print=True)
        return None

    message = choice.get("message")
    if not message or "content" not in message:
        log_message("No message content in response", verbose=debug)
        return ""
    content = message["content"]
    return content.strip() if content else ""


def call_openai_compatible_endpoint(
    base_url: str,
    api_key: Optional[str],
    model_name: str,
    prompt: str,
    images_b64: Sequence[str] = (),
    generation_config: Optional[Dict[str, Any]] = None,
    system_prompt: Optional[str] = None,
    debug: bool = False,
    timeout: int = 480,
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> Optional[str]:
    """
    Calls an OpenAI-Compatible Chat Completions endpoint (Ollama, LM Studio, vLLM...).

    Args:
        base_url (str): Base URL of the endpoint (e.g., "http://localhost:11434/v1").
        api_key (Optional[str]): The API key, if required by the endpoint.
        model_name (str): The model ID to use.
        prompt (str): User prompt text.
        images_b64 (Sequence[str]): Base64 encoded PNG images sent before the prompt.
        generation_config (Dict[str, Any]): temperature, top_p, max_tokens.
        system_prompt (Optional[str]): Optional system message.
        debug (bool): Whether to print debugging information.
        timeout (int): Request timeout in seconds.
        max_retries (int): Maximum number of retries for transient errors.
        base_delay (float): Initial delay for retries in seconds.

    Returns:
        Optional[str]: The text content of the first choice, or None if the
                       response was filtered or carried no choices.

    Raises:
        ValidationError: If base_url or prompt is missing.
        TranslationError: If the call fails after retries or the response cannot be processed.
    """
    if not base_url:
        raise ValidationError("Base URL is required for OpenAI-Compatible endpoint")
    if not prompt:
        raise ValidationError("A prompt is required for OpenAI-Compatible endpoint")

    generation_config = generation_config or {}
    url = f"{base_url.rstrip('/')}/chat/completions"
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    payload = {
        "model": model_name,
        "messages": _build_messages(prompt, images_b64, system_prompt),
        "max_tokens": generation_config.get("max_tokens", 2048),
        "temperature": generation_config.get("temperature"),
        "top_p": generation_config.get("top_p"),
    }
    payload = {k: v for k, v in payload.items() if v is not None}

    for attempt in range(max_retries + 1):
        current_delay = min(base_delay * (2**attempt), MAX_RETRY_DELAY)
        try:
            log_message(
                f"OpenAI-Compatible API request to {url} (attempt {attempt + 1}/{max_retries + 1})",
                verbose=debug,
            )
            response = requests.post(url, headers=headers, json=payload, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            error_text = e.response.text[:500] if e.response is not None else str(e)
            if status_code in RETRYABLE_STATUS_CODES and attempt < max_retries:
                log_message(
                    f"Status {status_code}, retrying in {current_delay:.1f}s",
                    verbose=debug,
                )
                time.sleep(current_delay)
                continue
            error_reason = f"Status {status_code}: {error_text}"
            if status_code == 400:
                error_reason += " (Check model name and payload)"
            elif status_code == 401:
                error_reason += " (Check API key if provided)"
            raise TranslationError(
                f"OpenAI-Compatible API HTTP Error: {error_reason}"
            ) from e
        except requests.exceptions.RequestException as e:
            if attempt < max_retries:
                log_message(
                    f"Connection error, retrying in {current_delay:.1f}s: {e}",
                    verbose=debug,
                )
                time.sleep(current_delay)
                continue
            raise TranslationError(
                f"OpenAI-Compatible API Connection Error after retries: {e}"
            ) from e

        try:
            return _extract_content(response.json(), debug)
        except (json.JSONDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise TranslationError(
                f"Error processing OpenAI-Compatible API response: {e}"
            ) from e

    raise TranslationError(
        f"Failed to get response from OpenAI-Compatible API ({url}) after {max_retries + 1} attempts."
    )
