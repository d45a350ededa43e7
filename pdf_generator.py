"""
Storybook PDF layout with reportlab.

Layout: a cover page (first image + title) followed by one page per story
page, each with its image in the upper part, the text centered below and a
page number in the bottom right corner.
"""

import io
import logging

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4, A5, LETTER, landscape, portrait
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from image_utils import ImageProcessingError, decode_data_url

logger = logging.getLogger(__name__)

PAGE_SIZES = {
    'a4': A4,
    'a5': A5,
    'letter': LETTER,
}

FONT_VARIANTS = {
    'helvetica': ('Helvetica', 'Helvetica-Bold'),
    'times': ('Times-Roman', 'Times-Bold'),
    'courier': ('Courier', 'Courier-Bold'),
}

DEFAULT_BOOK_OPTIONS = {
    'page_size': 'a5',
    'orientation': 'portrait',
    'margin': 15,  # mm
    'font_name': 'helvetica',
    'title_font_size': 24,
    'text_font_size': 12,
    'cover_background': '#f0f9ff',  # Light blue
    'page_background': '#ffffff',
}

MAX_IMAGE_HEIGHT_RATIO = 0.6
TEXT_POSITION_RATIO = 0.75


def wrap_text(text, font_name, font_size, max_width):
    """Greedy word wrap using the font's real string widths."""
    lines = []
    for paragraph in text.splitlines() or ['']:
        current_line = ""
        for word in paragraph.split():
            test_line = current_line + (" " if current_line else "") + word
            if stringWidth(test_line, font_name, font_size) <= max_width or not current_line:
                current_line = test_line
            else:
                lines.append(current_line)
                current_line = word
        if current_line:
            lines.append(current_line)
    return lines


def load_image(image):
    """
    Accept raw bytes or a (data URL / base64) string and return an ImageReader.

    Raises:
        ImageProcessingError: If the image cannot be read
    """
    image_bytes = image if isinstance(image, (bytes, bytearray)) else decode_data_url(image)
    try:
        reader = ImageReader(io.BytesIO(image_bytes))
        reader.getSize()
        return reader
    except Exception as e:
        raise ImageProcessingError(f"Could not read image for PDF: {e}") from e


def _resolve_options(book_options):
    options = dict(DEFAULT_BOOK_OPTIONS)
    options.update({k: v for k, v in (book_options or {}).items() if v is not None})
    base_size = PAGE_SIZES.get(str(options['page_size']).lower(), A5)
    if options['orientation'] == 'landscape':
        options['pagesize'] = landscape(base_size)
    else:
        options['pagesize'] = portrait(base_size)
    options['fonts'] = FONT_VARIANTS.get(options['font_name'].lower(), FONT_VARIANTS['helvetica'])
    return options


def _fill_background(c, hex_color, page_width, page_height):
    c.setFillColor(HexColor(hex_color))
    c.rect(0, 0, page_width, page_height, fill=1, stroke=0)


def _draw_fitted_image(c, image, top_offset, page_width, page_height, content_width):
    """Draw an image at content width (max 60% page height), centered, top_offset from the top."""
    reader = load_image(image)
    img_w, img_h = reader.getSize()
    img_ratio = img_h / img_w

    width = content_width
    height = width * img_ratio
    if height > page_height * MAX_IMAGE_HEIGHT_RATIO:
        height = page_height * MAX_IMAGE_HEIGHT_RATIO
        width = height / img_ratio

    x = (page_width - width) / 2
    y = page_height - top_offset - height
    c.drawImage(reader, x, y, width=width, height=height, mask='auto')


def _draw_centered_lines(c, lines, font, font_size, start_y, line_height, page_width):
    c.setFillColorRGB(0, 0, 0)
    c.setFont(font, font_size)
    for j, line in enumerate(lines):
        c.drawCentredString(page_width / 2, start_y - j * line_height, line)


def generate_storybook(story, images, book_options=None, output_path=None):
    """
    Render a story and its images into a PDF.

    Args:
        story: {title, pages: [{text}]}
        images: Image per page (bytes, data URL or None). images[0] is also
            used on the cover.
        book_options: Overrides for DEFAULT_BOOK_OPTIONS
        output_path: Optional path to also write the PDF to

    Returns:
        bytes: The PDF document
    """
    options = _resolve_options(book_options)
    page_width, page_height = options['pagesize']
    margin = options['margin'] * mm
    content_width = page_width - 2 * margin
    text_font, title_font = options['fonts']
    images = list(images or [])
    pages = story.get('pages') or []

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(page_width, page_height))
    c.setTitle(story.get('title') or 'Storybook')

    # Cover page
    _fill_background(c, options['cover_background'], page_width, page_height)
    if images and images[0]:
        try:
            _draw_fitted_image(c, images[0], margin + 10 * mm, page_width, page_height, content_width)
        except ImageProcessingError as e:
            logger.error("Error adding cover image: %s", e)

    title_size = options['title_font_size']
    title_lines = wrap_text(story.get('title') or '', title_font, title_size, content_width)
    _draw_centered_lines(
        c, title_lines, title_font, title_size,
        start_y=page_height * (1 - TEXT_POSITION_RATIO),
        line_height=title_size * 1.2,
        page_width=page_width
    )

    text_size = options['text_font_size']
    for i, page in enumerate(pages):
        image = images[i] if i < len(images) else None
        text = (page.get('text') or '').strip()
        if not image and not text:
            continue

        c.showPage()
        _fill_background(c, options['page_background'], page_width, page_height)

        if image:
            try:
                _draw_fitted_image(c, image, margin, page_width, page_height, content_width)
            except ImageProcessingError as e:
                logger.error("Error adding image for page %d: %s", i + 1, e)

        if text:
            _draw_centered_lines(
                c, wrap_text(text, text_font, text_size, content_width), text_font, text_size,
                start_y=page_height * (1 - TEXT_POSITION_RATIO),
                line_height=text_size * 1.4,
                page_width=page_width
            )

        c.setFont(text_font, 10)
        c.setFillColorRGB(150 / 255, 150 / 255, 150 / 255)
        c.drawRightString(page_width - margin, margin, f"{i + 1}")

    c.save()
    pdf_bytes = buffer.getvalue()

    if output_path:
        with open(output_path, 'wb') as f:
            f.write(pdf_bytes)
        logger.info("PDF saved to: %s", output_path)

    return pdf_bytes
