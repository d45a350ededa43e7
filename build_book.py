"""
Build a pet storybook PDF from a folder of photos without the web interface.

Runs the same steps as the web flow: compress, analyze, group into themes,
write the story, optionally stylize, and lay out the PDF.

Usage:
    python build_book.py photos/ --pet-name Luna --style watercolor -o luna.pdf
"""

import argparse
import logging
import os
import sys
import uuid

from config import Config
from image_stylizer import ORIGINAL_STYLE, STYLE_OPTIONS, stylize_images
from image_utils import ImageProcessingError, compress_image, to_data_url
from pdf_generator import generate_storybook
from photo_analysis import analyze_photos, group_photos_by_theme
from story_generator import generate_story_with_fallback

logger = logging.getLogger('build_book')

PHOTO_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif', '.webp')


def load_photos(photo_dir):
    """Compress every image in photo_dir (sorted by name) into {id, base64} records."""
    photos = []
    for filename in sorted(os.listdir(photo_dir)):
        if not filename.lower().endswith(PHOTO_EXTENSIONS):
            continue
        path = os.path.join(photo_dir, filename)
        with open(path, 'rb') as f:
            image_bytes = f.read()
        try:
            compressed = compress_image(
                image_bytes,
                max_width=Config.PHOTO_MAX_DIMENSION,
                max_height=Config.PHOTO_MAX_DIMENSION,
                quality=Config.PHOTO_JPEG_QUALITY
            )
        except ImageProcessingError as e:
            logger.warning("Skipping %s: %s", filename, e)
            continue
        photos.append({'id': str(uuid.uuid4()), 'base64': to_data_url(compressed)})
    return photos


def build_book(photo_dir, pet_name, pet_type='dog', owner_name='', style=ORIGINAL_STYLE,
               theme_index=0, output_path='storybook.pdf'):
    """
    Run the full pipeline and write the PDF.

    Returns:
        dict: {title, theme, pages, output_path}
    """
    photos = load_photos(photo_dir)
    if not photos:
        raise ValueError(f"No usable photos found in {photo_dir}")
    logger.info("Loaded %d photos from %s", len(photos), photo_dir)

    analyzed = analyze_photos(photos, batch_size=Config.ANALYSIS_BATCH_SIZE)
    themes = group_photos_by_theme(analyzed)
    if not 0 <= theme_index < len(themes):
        raise ValueError(f"Theme index {theme_index} out of range (found {len(themes)} themes)")
    theme = themes[theme_index]
    logger.info("Using theme %r (%d photos)", theme['name'], len(theme['photos']))

    pet_info = {'name': pet_name, 'type': pet_type}
    story = generate_story_with_fallback(theme, pet_info, {'name': owner_name})

    images = [photo['originalImage'] for photo in theme['photos']]
    if style != ORIGINAL_STYLE:
        style_requests = [
            {'id': p['id'], 'base64': p['originalImage'], 'sceneDescription': p.get('sceneDescription')}
            for p in theme['photos']
        ]
        results = stylize_images(style_requests, style, pet_info)
        images = [r.get('stylizedImage') or original for r, original in zip(results, images)]

    generate_storybook(story, images, output_path=output_path)
    return {
        'title': story.get('title'),
        'theme': theme['name'],
        'pages': len(story.get('pages') or []),
        'output_path': output_path
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Turn a folder of pet photos into a storybook PDF.')
    parser.add_argument('photo_dir', help='Directory containing the pet photos')
    parser.add_argument('--pet-name', required=True)
    parser.add_argument('--pet-type', default='dog')
    parser.add_argument('--owner-name', default='')
    parser.add_argument('--style', default=ORIGINAL_STYLE,
                        choices=[ORIGINAL_STYLE] + list(STYLE_OPTIONS.values()))
    parser.add_argument('--theme', type=int, default=0, help='Index of the theme to use (default: first)')
    parser.add_argument('-o', '--output', default='storybook.pdf')
    return parser.parse_args(argv)


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    args = parse_args(argv)
    try:
        result = build_book(
            args.photo_dir, args.pet_name, args.pet_type, args.owner_name,
            args.style, args.theme, args.output
        )
    except Exception as e:
        logger.error("Storybook build failed: %s", e, exc_info=True)
        return 1
    logger.info("Wrote %r (%d pages, theme %s) to %s",
                result['title'], result['pages'], result['theme'], result['output_path'])
    return 0


if __name__ == '__main__':
    sys.exit(main())
