"""
Pillow helpers for photo compression, data URLs and provider payload limits.
"""

import base64
import binascii
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Variation endpoint only accepts square PNGs under 4MB
VARIATION_MAX_BYTES = 4 * 1024 * 1024
VARIATION_SIZES = (1024, 768, 512)


class ImageProcessingError(Exception):
    """Raised when image bytes cannot be decoded or re-encoded."""


def open_image(image_bytes):
    """Decode bytes into a PIL image, honoring EXIF orientation."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageProcessingError(f"Could not decode image: {e}") from e
    return ImageOps.exif_transpose(img)


def fit_within(width, height, max_width, max_height):
    """Scale (width, height) down to fit the box, keeping aspect ratio."""
    if width > max_width:
        height = round(height * max_width / width)
        width = max_width
    if height > max_height:
        width = round(width * max_height / height)
        height = max_height
    return width, height


def compress_image(image_bytes, max_width=800, max_height=800, quality=70):
    """
    Shrink a photo to fit within max_width x max_height and re-encode as JPEG.

    Returns:
        bytes: JPEG data
    """
    img = open_image(image_bytes)
    new_size = fit_within(img.width, img.height, max_width, max_height)
    if new_size != img.size:
        img = img.resize(new_size, Image.LANCZOS)

    if img.mode != 'RGB':
        # Flatten transparency onto white before dropping the alpha channel
        background = Image.new('RGB', img.size, (255, 255, 255))
        rgba = img.convert('RGBA')
        background.paste(rgba, mask=rgba.split()[-1])
        img = background

    output = io.BytesIO()
    img.save(output, format='JPEG', quality=quality, optimize=True)
    return output.getvalue()


def guess_mime_type(image_bytes):
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img_format = img.format.lower() if img.format else 'jpeg'
    except (UnidentifiedImageError, OSError):
        img_format = 'jpeg'
    return f"image/{img_format}"


def to_data_url(image_bytes, mime_type='image/jpeg'):
    img_base64 = base64.b64encode(image_bytes).decode('utf-8')
    return f"data:{mime_type};base64,{img_base64}"


def decode_data_url(data):
    """
    Decode a data URL or bare base64 string to bytes.

    Raises:
        ImageProcessingError: If the payload is not valid base64
    """
    if not data:
        raise ImageProcessingError("Empty image data")
    if 'base64,' in data:
        data = data.split('base64,', 1)[1]
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError(f"Invalid base64 image data: {e}") from e


def make_square_png(image_bytes, size=1024, background=(255, 255, 255)):
    """Letterbox an image into a size x size PNG on a solid background."""
    img = open_image(image_bytes).convert('RGBA')
    img.thumbnail((size, size), Image.LANCZOS)
    canvas_img = Image.new('RGBA', (size, size), background + (255,))
    offset = ((size - img.width) // 2, (size - img.height) // 2)
    canvas_img.paste(img, offset, img)

    output = io.BytesIO()
    canvas_img.convert('RGB').save(output, format='PNG', optimize=True)
    return output.getvalue()


def prepare_variation_png(image_bytes, max_bytes=VARIATION_MAX_BYTES):
    """
    Produce a square PNG small enough for the variation endpoint.

    Tries 1024, 768 then 512 pixels.

    Raises:
        ImageProcessingError: If even the smallest size is over max_bytes
    """
    logger.info("Image buffer size: %dKB", round(len(image_bytes) / 1024))
    for size in VARIATION_SIZES:
        png_bytes = make_square_png(image_bytes, size=size)
        logger.info("Processed %dpx square image size: %dKB", size, round(len(png_bytes) / 1024))
        if len(png_bytes) < max_bytes:
            return png_bytes
    raise ImageProcessingError(f"Image is still over {max_bytes} bytes at {VARIATION_SIZES[-1]}px")
