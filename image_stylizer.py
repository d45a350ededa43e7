"""
Redraw pet photos in a children's-book art style.

Two paths are available:
- stylize_image(): prompt-based generation
- stylize_with_variation(): variation of the actual photo, falling back to
  prompt-based generation when the variation endpoint refuses
"""

import base64
import logging
import time

import requests

from config import Config
from image_utils import decode_data_url, prepare_variation_png
from openai_service import get_openai_client
from photo_analysis import run_in_batches, strip_data_url

logger = logging.getLogger(__name__)

STYLE_OPTIONS = {
    'CARTOON': 'cartoon',
    'WATERCOLOR': 'watercolor',
    'GHIBLI': 'ghibli',
    'FLAT_ILLUSTRATION': 'flat-illustration',
}

ORIGINAL_STYLE = 'original'

STYLE_PROMPTS = {
    'cartoon': "Transform this pet photo into a cute cartoon children's book illustration. Style of Disney or Pixar animation. Keep the pet's expression and position the same.",
    'watercolor': "Transform this pet photo into a soft watercolor children's book illustration with gentle colors and outlines. Keep the pet's position and expression the same.",
    'ghibli': 'Transform this pet photo into a Studio Ghibli style illustration, as if from "My Neighbor Totoro" or "Kiki\'s Delivery Service". Keep the pet\'s position and expression the same.',
    'flat-illustration': "Transform this pet photo into a modern, flat vector-style illustration with simple shapes and bright colors. Keep the pet's position and expression the same.",
}

DEFAULT_STYLE_PROMPT = "Transform this pet photo into a cute children's book illustration. Keep the pet's position and expression the same."


class StylizationError(Exception):
    """Raised when both the variation and the generation path failed."""

    def __init__(self, message, fallback_error=None):
        super().__init__(message)
        self.fallback_error = fallback_error


def is_valid_style(style):
    return style in STYLE_OPTIONS.values()


def build_style_prompt(style, pet_info=None, scene_description=None):
    """Style instructions plus the pet's name/type and, when known, the scene."""
    pet_info = pet_info or {}
    prompt = STYLE_PROMPTS.get(style, DEFAULT_STYLE_PROMPT)
    if scene_description:
        prompt += f" Scene: {scene_description}"
    if pet_info.get('name') or pet_info.get('type'):
        named = f" named {pet_info['name']}" if pet_info.get('name') else ''
        prompt += f" The {pet_info.get('type') or 'pet'}{named} should be the main focus."
    return prompt


def download_image_from_url(url):
    """Download an image and return its raw bytes."""
    response = requests.get(url, timeout=30)
    response.raise_for_status()
    return response.content


def _image_result_to_base64(image_data):
    if getattr(image_data, 'b64_json', None):
        return image_data.b64_json
    if getattr(image_data, 'url', None):
        logger.info("Image API returned a URL, downloading result")
        return base64.b64encode(download_image_from_url(image_data.url)).decode('utf-8')
    raise ValueError('Image API returned invalid response structure')


def _image_kwargs(model):
    # gpt-image models always answer with base64 and reject response_format
    if model.startswith('gpt-image'):
        return {}
    return {'response_format': 'b64_json'}


def generate_styled_image(prompt, model=None):
    """Run the image-generation endpoint and return base64 image data."""
    model = model or Config.IMAGE_MODEL
    client = get_openai_client()
    response = client.images.generate(
        model=model,
        prompt=prompt,
        n=1,
        size="1024x1024",
        **_image_kwargs(model)
    )
    if not response.data:
        raise ValueError('Image API returned no images')
    return _image_result_to_base64(response.data[0])


def stylize_image(image_base64, style, pet_info=None, scene_description=None):
    """
    Redraw a photo in the given style using prompt-based generation.

    Returns:
        str: base64 image data
    """
    logger.info("Attempting image stylization with style: %s", style)
    prompt = build_style_prompt(style, pet_info, scene_description)
    try:
        return generate_styled_image(prompt)
    except Exception as e:
        logger.error("Error stylizing image: %s", e)
        raise StylizationError(f"Failed to stylize image: {e}") from e


def stylize_with_variation(image_base64, style, pet_info=None, scene_description=None):
    """
    Ask for a variation of the photo itself, then fall back to generation.

    Returns:
        dict: {'stylizedImage': data URL, 'method': 'variation' | 'generation'}

    Raises:
        StylizationError: If both paths failed
    """
    image_bytes = decode_data_url(image_base64)
    png_bytes = prepare_variation_png(image_bytes)

    try:
        logger.info("Attempting image variation...")
        client = get_openai_client()
        response = client.images.create_variation(
            image=('input-image.png', png_bytes, 'image/png'),
            n=1,
            size='1024x1024',
            response_format='b64_json'
        )
        if not response.data:
            raise ValueError('Variation API returned invalid response structure')
        b64 = _image_result_to_base64(response.data[0])
        logger.info("Variation request successful")
        return {'stylizedImage': f"data:image/png;base64,{b64}", 'method': 'variation'}
    except Exception as variation_error:
        logger.error("Variation API error: %s", variation_error)
        try:
            logger.info("Falling back to generation...")
            b64 = generate_styled_image(build_style_prompt(style, pet_info, scene_description))
            return {'stylizedImage': f"data:image/png;base64,{b64}", 'method': 'generation'}
        except Exception as generation_error:
            logger.error("Generation also failed: %s", generation_error)
            raise StylizationError(
                f"Failed to stylize image: {variation_error}",
                fallback_error=str(generation_error)
            ) from generation_error


def _failed(image, error):
    return {
        'id': image.get('id'),
        'error': f"Failed to stylize: {error}",
        'originalImage': image.get('base64'),
        'stylizedImage': None
    }


def stylize_images(images, style, pet_info=None, batch_size=None):
    """
    Stylize [{id, base64}] images with prompt-based generation, batch_size at a time.

    Per-image failures are reported in the result instead of raised.
    """
    batch_size = batch_size or Config.STYLIZE_BATCH_SIZE

    def worker(image):
        try:
            b64 = stylize_image(strip_data_url(image['base64']), style, pet_info, image.get('sceneDescription'))
            return {
                'id': image.get('id'),
                'originalImage': image['base64'],
                'stylizedImage': f"data:image/png;base64,{b64}"
            }
        except Exception as e:
            logger.error("Error stylizing image %s: %s", image.get('id'), e)
            return _failed(image, e)

    return run_in_batches(images, worker, batch_size)


def stylize_images_sequentially(images, style, pet_info=None, delay_seconds=None, sleep=time.sleep):
    """
    Stylize images one at a time through the variation path, pausing
    delay_seconds between requests to stay under the provider's rate limit.
    """
    delay_seconds = Config.STYLIZE_DELAY_SECONDS if delay_seconds is None else delay_seconds
    results = []
    for index, image in enumerate(images):
        if index > 0 and delay_seconds > 0:
            sleep(delay_seconds)
        try:
            outcome = stylize_with_variation(image['base64'], style, pet_info, image.get('sceneDescription'))
            results.append({
                'id': image.get('id'),
                'originalImage': image['base64'],
                'stylizedImage': outcome['stylizedImage'],
                'method': outcome['method']
            })
        except Exception as e:
            logger.error("Error stylizing image %s: %s", image.get('id'), e)
            results.append(_failed(image, e))
    return results
