"""
OpenAI client wrapper shared by photo analysis, story writing and stylization.

Every call walks a list of model names in order and falls back to the next
one when a model is unavailable. Responses that should be JSON are parsed
leniently: code fences are stripped and, failing that, fields are pulled out
with regular expressions.
"""

import json
import logging
import os
import re
import threading

from openai import OpenAI

from config import Config

logger = logging.getLogger(__name__)

_client = None
_client_lock = threading.Lock()

VISION_SYSTEM_PROMPT = (
    "You are an expert photo analyzer. Respond with clean JSON only, "
    "no markdown formatting, no explanation, no code blocks."
)

# Defaults used when a vision response has to be scraped field by field
VISION_FIELD_DEFAULTS = {
    'petType': 'pet',
    'petBreed': '',
    'location': 'unknown',
    'activity': 'posing',
    'people': '',
    'objects': '',
    'holiday': '',
    'occasion': '',
    'season': '',
    'mood': '',
    'sceneDescription': 'A pet in an everyday scene',
}

_CODE_FENCE_RE = re.compile(r'```(?:json)?\s*([^`]+)```', re.DOTALL)
_CODE_FENCE_OBJECT_RE = re.compile(r'```(?:json)?\s*(\{[^`]+\})```', re.DOTALL)


class ModelFallbackError(Exception):
    """Raised when every model in a fallback chain failed."""


def mask_api_key(api_key):
    """Show only the first 5 and last 4 characters of a key."""
    if not api_key:
        return 'MISSING'
    return f"{api_key[:5]}...{api_key[-4:]}"


def get_openai_client():
    """Return the shared OpenAI client, creating it on first use."""
    global _client
    with _client_lock:
        if _client is None:
            api_key = os.environ.get('OPENAI_API_KEY') or Config.OPENAI_API_KEY
            if not api_key:
                raise ValueError("OPENAI_API_KEY environment variable is not set. Please set it before making API calls.")
            logger.info("Initializing OpenAI client with API key: %s", mask_api_key(api_key))
            _client = OpenAI(api_key=api_key)
        return _client


def strip_code_fence(content):
    """Return the body of a ```json ... ``` block, or the content unchanged."""
    if '```' in content:
        match = _CODE_FENCE_RE.search(content)
        if match and match.group(1):
            return match.group(1).strip()
    return content


def is_model_unavailable_error(error):
    """True for errors that mean 'try another model' rather than a real failure."""
    message = str(error)
    return '404' in message or 'not supported' in message


def extract_field(text, field, default_value):
    """
    Pull a single field value out of a loosely formatted response.

    JSON-looking patterns are tried first ("field": "value", "field": value),
    then free-text ones (field: "value", field: value).
    """
    if not text:
        return default_value

    name = re.escape(field)
    json_patterns = [
        re.compile(rf'"{name}"\s*:\s*"([^"]*)"', re.IGNORECASE),
        re.compile(rf'"{name}"\s*:\s*([^",\s]+)', re.IGNORECASE),
    ]
    for pattern in json_patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()

    general_patterns = [
        re.compile(rf'{name}[:\s]+"([^"]*)"', re.IGNORECASE),
        re.compile(rf'{name}[:\s]+([^,\n.]*)', re.IGNORECASE),
    ]
    for pattern in general_patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()

    return default_value


def parse_vision_response(raw_content):
    """
    Turn a vision model reply into an analysis dict.

    Returns:
        dict: Parsed JSON when possible, otherwise the defaults overlaid
        with whatever could be recovered from the text.
    """
    try:
        return json.loads(strip_code_fence(raw_content))
    except (json.JSONDecodeError, TypeError) as parse_error:
        logger.warning("Failed to parse vision response as JSON: %s", parse_error)
        logger.debug("Raw response: %s", raw_content)

    extracted = {
        key: VISION_FIELD_DEFAULTS[key]
        for key in ('petType', 'location', 'activity', 'people', 'objects',
                    'holiday', 'occasion', 'sceneDescription')
    }

    if '```' in raw_content:
        match = _CODE_FENCE_OBJECT_RE.search(raw_content)
        if match:
            try:
                extracted.update(json.loads(match.group(1).strip()))
                logger.info("Extracted JSON from code block successfully")
                return extracted
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse JSON from code block: %s", e)

    logger.info("Falling back to text field extraction")
    return {
        field: extract_field(raw_content, field, default) or default
        for field, default in VISION_FIELD_DEFAULTS.items()
    }


def analyze_image_with_vision(image_base64, prompt, models=None):
    """
    Ask a vision model to describe an image and return the parsed JSON.

    Args:
        image_base64: Raw base64 JPEG data (no data-URL prefix)
        prompt: Analysis instructions
        models: Model names to try in order (defaults to Config.VISION_MODELS)

    Raises:
        ModelFallbackError: If every model raised
    """
    client = get_openai_client()
    models = models or Config.VISION_MODELS
    logger.info("Starting vision analysis, image base64 length: %d", len(image_base64))

    for model in models:
        try:
            logger.info("Attempting vision analysis with model: %s", model)
            response = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": VISION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"}
                            }
                        ]
                    }
                ],
                max_tokens=1000,
                temperature=0.2
            )
        except Exception as e:
            logger.error("Model %s failed: %s", model, e)
            continue

        raw_content = response.choices[0].message.content or ""
        logger.info("Model %s responded (%d chars)", model, len(raw_content))
        return parse_vision_response(raw_content)

    raise ModelFallbackError('All models failed for vision analysis')


def complete_with_fallback(messages, max_tokens, temperature, models=None):
    """
    Run a chat completion over a model chain.

    Only "model unavailable" errors (404 / not supported) move on to the
    next model; anything else is raised straight away.

    Returns:
        tuple: (content, model) from the first model that answered

    Raises:
        ModelFallbackError: If every model was unavailable
    """
    client = get_openai_client()
    models = models or Config.STORY_MODELS

    for model in models:
        try:
            logger.info("Attempting completion with model: %s", model)
            response = client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature
            )
            return response.choices[0].message.content or "", model
        except Exception as e:
            logger.warning("Model %s failed: %s", model, e)
            if not is_model_unavailable_error(e):
                raise

    raise ModelFallbackError('All models failed for completion')
