from flask import Flask, request, render_template_string, jsonify, send_file, redirect
import os
import io
import json
import uuid
import re
import logging
from logging.handlers import RotatingFileHandler
from logging import Handler, LogRecord

from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename
from better_profanity import profanity

from config import Config
from image_utils import ImageProcessingError, compress_image, guess_mime_type, to_data_url
from image_stylizer import (
    ORIGINAL_STYLE, STYLE_OPTIONS, StylizationError, is_valid_style,
    stylize_images, stylize_images_sequentially, stylize_with_variation,
)
from openai_service import mask_api_key
from pdf_generator import generate_storybook
from photo_analysis import analyze_photos, group_photos_by_theme
from story_generator import (
    DEFAULT_EDIT_STYLE, edit_story_style_with_fallback,
    generate_story_with_fallback, validate_story,
)
import session_store
from templates import (
    ANALYSIS_TEMPLATE, BOOK_PREVIEW_TEMPLATE, DEBUG_TEMPLATE,
    STORY_EDITOR_TEMPLATE, UPLOAD_TEMPLATE,
)

profanity.load_censor_words()

app = Flask(__name__)
app.config.from_object(Config)

# Initialize database
from models import db, Log
db.init_app(app)

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class DBHandler(Handler):
    """
    Custom logging handler that writes log records to the database.
    This handler receives log records and stores them in the logs table.
    """

    def __init__(self, app_instance):
        """
        Initialize the database handler.

        Args:
            app_instance: Flask application instance for database context
        """
        super().__init__()
        self.app = app_instance

    def emit(self, record: LogRecord):
        """
        Emit a log record to the database.

        Args:
            record: LogRecord instance containing log information
        """
        try:
            # Storybook session id, when passed via extra={'session_id': ...}
            session_id = getattr(record, 'session_id', None)
            message = self.format(record)

            with self.app.app_context():
                db.session.add(Log(session_id=session_id, level=record.levelname, message=message))
                db.session.commit()
        except Exception:
            # Never let a logging failure take down a request
            self.handleError(record)


def setup_logging(app_instance):
    """
    Configure Python's logging module with file, console and database handlers.

    Args:
        app_instance: Flask application instance
    """
    logs_dir = app_instance.config['LOG_DIR']
    os.makedirs(logs_dir, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(logging.INFO)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Rotates when file reaches 10MB, keeps 5 backup files
    file_handler = RotatingFileHandler(
        filename=os.path.join(logs_dir, 'app.log'),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if app_instance.config['LOG_TO_DATABASE']:
        db_handler = DBHandler(app_instance)
        db_handler.setLevel(logging.INFO)
        db_handler.setFormatter(formatter)
        logger.addHandler(db_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.info("Logging system initialized")
    return logger

app_logger = setup_logging(app)

# ============================================================================
# UPLOAD VALIDATION
# ============================================================================

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
PET_TYPES = ['dog', 'cat', 'rabbit', 'bird', 'hamster', 'horse', 'other']


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def validate_pet_name(name):
    """
    Validate the pet's name.

    Rules:
    1. Length: 1-30 characters after trimming
    2. Characters: letters, spaces, hyphens and apostrophes, starting with a letter
    3. Profanity: Must not contain profane words

    Returns:
        tuple: (is_valid: bool, error_message: str)
    """
    if not name or not name.strip():
        return False, "Please enter your pet's name"

    name = name.strip()

    if len(name) > 30:
        return False, "Name must be no more than 30 characters long"

    if not re.match(r"^[A-Za-z][A-Za-z '\-]*$", name):
        return False, "Name must contain only letters, spaces, hyphens or apostrophes"

    if profanity.contains_profanity(name):
        return False, "Name contains inappropriate language"

    return True, ""


def prepare_photo(file_storage):
    """
    Read and compress one uploaded photo.

    Returns:
        dict: {id, base64} with a data URL, or None if the photo is unusable
    """
    image_bytes = file_storage.read()
    if not image_bytes:
        return None

    try:
        compressed = compress_image(
            image_bytes,
            max_width=app.config['PHOTO_MAX_DIMENSION'],
            max_height=app.config['PHOTO_MAX_DIMENSION'],
            quality=app.config['PHOTO_JPEG_QUALITY']
        )
        data_url = to_data_url(compressed, 'image/jpeg')
    except ImageProcessingError as e:
        app_logger.warning(f"Error compressing {file_storage.filename}, keeping original: {e}")
        data_url = to_data_url(image_bytes, guess_mime_type(image_bytes))

    return {'id': str(uuid.uuid4()), 'base64': data_url}


def fit_photos_to_storage(photos):
    """
    Keep the photo list inside the session storage budget.

    Returns:
        tuple: (photos, warning). photos is None when nothing fits.
    """
    limit = app.config['SESSION_STORAGE_LIMIT_BYTES']
    if len(json.dumps(photos)) <= limit:
        return photos, None

    keep = app.config['SESSION_FALLBACK_PHOTO_COUNT']
    app_logger.error(f"Photos exceed session storage ({limit} bytes), trying first {keep}")
    if len(photos) <= keep:
        return None, None

    reduced = photos[:keep]
    if len(json.dumps(reduced)) > limit:
        app_logger.error(f"First {keep} photos still exceed session storage ({limit} bytes)")
        return None, None
    return reduced, f"Only the first {keep} photos could be processed due to storage limitations."


def error_response(message, status):
    return jsonify({'success': False, 'error': message}), status


def theme_images(theme):
    """Photos of a theme in the shape the stylizer expects."""
    return [
        {
            'id': photo.get('id'),
            'base64': photo.get('originalImage'),
            'sceneDescription': photo.get('sceneDescription')
        }
        for photo in (theme or {}).get('photos', [])
        if photo.get('originalImage')
    ]


def page_images(theme, stylized_images, style, fallback_to_original):
    """
    Image for each theme photo in the requested style.

    Pages without a stylized image get the original photo when
    fallback_to_original is set, otherwise None.
    """
    styled = {}
    if style != ORIGINAL_STYLE:
        styled = {
            img['id']: img.get('stylizedImage')
            for img in (stylized_images or {}).get(style, [])
        }

    images = []
    for photo in (theme or {}).get('photos', []):
        original = photo.get('originalImage')
        if style == ORIGINAL_STYLE:
            images.append(original)
        else:
            image = styled.get(photo.get('id'))
            images.append(image or (original if fallback_to_original else None))
    return images


@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(e):
    return error_response('Upload too large. Please try again with fewer or smaller photos.', 413)

# ============================================================================
# PAGES
# ============================================================================

@app.route('/')
@app.route('/upload', methods=['GET'])
def index():
    return render_template_string(UPLOAD_TEMPLATE, pet_types=PET_TYPES)


@app.route('/analysis')
def analysis_page():
    photos = session_store.get_value('photos')
    pet_info = session_store.get_value('pet_info')
    if not photos or not pet_info:
        return redirect('/upload')
    return render_template_string(ANALYSIS_TEMPLATE, pet_name=pet_info.get('name'), photo_count=len(photos))


@app.route('/story-editor')
def story_editor_page():
    theme = session_store.get_value('selected_theme')
    pet_info = session_store.get_value('pet_info')
    if not theme or not pet_info:
        return redirect('/upload')
    return render_template_string(STORY_EDITOR_TEMPLATE, theme_name=theme.get('name'), pet_name=pet_info.get('name'))


@app.route('/book-preview')
def book_preview_page():
    story = session_store.get_value('story')
    theme = session_store.get_value('selected_theme')
    if not story or not theme:
        return redirect('/upload')

    style = request.args.get('style', ORIGINAL_STYLE)
    if style != ORIGINAL_STYLE and not is_valid_style(style):
        style = ORIGINAL_STYLE

    stylized = session_store.get_value('stylized_images', {})
    images = page_images(theme, stylized, style, fallback_to_original=False)
    pages = [
        {'text': page.get('text', ''), 'image': images[i] if i < len(images) else None}
        for i, page in enumerate(story.get('pages', []))
    ]
    styles = [(ORIGINAL_STYLE, 'Original Photos')] + [
        (value, value.replace('-', ' ').title()) for value in STYLE_OPTIONS.values()
    ]
    return render_template_string(
        BOOK_PREVIEW_TEMPLATE,
        story=story,
        pages=pages,
        styles=styles,
        selected_style=style,
        cached_styles=[s for s, imgs in stylized.items() if imgs]
    )


@app.route('/debug')
def debug_page():
    photos = session_store.get_value('photos', [])
    analyzed = {p.get('id'): p for p in session_store.get_value('analyzed_photos', [])}
    rows = []
    for photo in photos:
        analysis = {k: v for k, v in analyzed.get(photo['id'], {}).items() if k != 'originalImage'}
        rows.append({'image': photo['base64'], 'analysis': json.dumps(analysis, indent=2) if analysis else 'Not analyzed yet'})
    return render_template_string(DEBUG_TEMPLATE, rows=rows)

# ============================================================================
# UPLOAD
# ============================================================================

@app.route('/upload', methods=['POST'])
def upload_photos():
    """Validate the pet details, compress the photos and start a session."""
    try:
        pet_name = request.form.get('pet_name', '').strip()
        pet_type = request.form.get('pet_type', '').strip() or 'dog'
        owner_name = request.form.get('owner_name', '').strip()
        files = [f for f in request.files.getlist('photos') if f and f.filename]

        if not files:
            return error_response('Please upload at least one photo', 400)

        is_valid, message = validate_pet_name(pet_name)
        if not is_valid:
            return error_response(message, 400)

        photos = []
        for file_storage in files:
            filename = secure_filename(file_storage.filename)
            if not allowed_file(filename):
                return error_response(f'{file_storage.filename} is not a supported image type', 400)

            file_storage.stream.seek(0, os.SEEK_END)
            size = file_storage.stream.tell()
            file_storage.stream.seek(0)
            if size > app.config['MAX_PHOTO_BYTES']:
                return error_response(f'{file_storage.filename} is larger than 10MB', 400)

            photo = prepare_photo(file_storage)
            if photo is None:
                app_logger.warning(f"Skipping unreadable photo {filename}")
                continue
            photos.append(photo)

        if not photos:
            return error_response('Failed to process any photos', 400)

        photos, warning = fit_photos_to_storage(photos)
        if photos is None:
            return error_response('Failed to process photos. Please try again with fewer or smaller photos.', 413)

        pet_session = session_store.start_new_session()
        session_store.set_values(
            pet_info={'name': pet_name, 'type': pet_type},
            owner_info={'name': owner_name},
            photos=photos
        )
        app_logger.info(f"Stored {len(photos)} photos for {pet_name}", extra={'session_id': pet_session.session_id})

        response = {
            'success': True,
            'session_id': pet_session.session_id,
            'photo_count': len(photos),
            'redirect': '/analysis'
        }
        if warning:
            response['warning'] = warning
        return jsonify(response)

    except RequestEntityTooLarge:
        raise
    except Exception as e:
        app_logger.error(f"Error preparing upload: {str(e)}", exc_info=True)
        return error_response('Failed to process photos. Please try again with fewer or smaller photos.', 500)

# ============================================================================
# ANALYSIS
# ============================================================================

@app.route('/api/analyze-photos', methods=['POST'])
def api_analyze_photos():
    """Analyze photos (from the body or the session) and group them into themes."""
    try:
        data = request.get_json(silent=True) or {}
        photos = data['photos'] if 'photos' in data else session_store.get_value('photos')

        if not photos or not isinstance(photos, list) or not all(
            isinstance(p, dict) and isinstance(p.get('base64'), str) for p in photos
        ):
            return error_response('No photos provided or invalid format', 400)

        analyzed_photos = analyze_photos(photos, batch_size=app.config['ANALYSIS_BATCH_SIZE'])
        themes = group_photos_by_theme(analyzed_photos)

        if session_store.get_current_session() is not None:
            session_store.set_values(
                analyzed_photos=analyzed_photos,
                themes=themes,
                selected_theme=themes[0] if themes else None,
                story=None,
                stylized_images=None
            )

        return jsonify({
            'success': True,
            'analyzedPhotos': analyzed_photos,
            'themes': themes
        })
    except Exception as e:
        app_logger.error(f"Error in analyze-photos API: {str(e)}", exc_info=True)
        return error_response(f'Failed to analyze photos: {str(e)}', 500)


@app.route('/api/select-theme', methods=['POST'])
def api_select_theme():
    data = request.get_json(silent=True) or {}
    theme_id = data.get('theme_id')
    themes = session_store.get_value('themes', [])
    theme = next((t for t in themes if t.get('id') == theme_id), None)
    if theme is None:
        return error_response('Theme not found', 404)

    # A new theme invalidates the story and any stylized images
    session_store.set_values(selected_theme=theme, story=None, stylized_images=None)
    return jsonify({'success': True, 'theme': {'id': theme['id'], 'name': theme['name']}})

# ============================================================================
# STORY
# ============================================================================

@app.route('/api/generate-story', methods=['POST'])
def api_generate_story():
    """Write (or return the cached) story for the selected theme."""
    try:
        data = request.get_json(silent=True) or {}
        theme = data.get('theme') or session_store.get_value('selected_theme')
        if not theme:
            return error_response('No theme provided', 400)

        pet_info = data.get('petInfo') or session_store.get_value('pet_info', {})
        owner_info = data.get('ownerInfo') or session_store.get_value('owner_info', {})
        has_session = session_store.get_current_session() is not None

        cached_story = session_store.get_value('story')
        if cached_story and not data.get('regenerate') and 'theme' not in data:
            return jsonify({'success': True, 'story': cached_story, 'cached': True})

        app_logger.info(
            f"Generating story for theme {theme.get('name')!r} "
            f"({len(theme.get('photos') or [])} photos, holiday={theme.get('holiday')}, occasion={theme.get('occasion')})"
        )
        story = generate_story_with_fallback(theme, pet_info, owner_info)
        app_logger.info(f"Story generation successful: {story.get('title')!r}, {len(story.get('pages') or [])} pages")

        if has_session:
            session_store.set_values(story=story)

        return jsonify({'success': True, 'story': story, 'cached': False})
    except Exception as e:
        app_logger.error(f"Error in generate-story API: {str(e)}", exc_info=True)
        return error_response(f'Failed to generate story: {str(e)}', 500)


@app.route('/api/generate-story', methods=['PUT'])
def api_edit_story():
    """Rewrite a passage in a different style."""
    try:
        data = request.get_json(silent=True) or {}
        story_text = data.get('storyText')
        if not story_text:
            return error_response('No story text provided', 400)

        style = data.get('style') or DEFAULT_EDIT_STYLE
        app_logger.info(f"Editing story style to: {style}")
        edited_text = edit_story_style_with_fallback(story_text, style)
        return jsonify({'success': True, 'editedText': edited_text})
    except Exception as e:
        app_logger.error(f"Error in edit-story API: {str(e)}", exc_info=True)
        return error_response(f'Failed to edit story: {str(e)}', 500)


@app.route('/api/story', methods=['POST'])
def api_save_story():
    """Save manual edits to the title and pages."""
    try:
        data = request.get_json(silent=True) or {}
        raw_pages = data.get('pages') or []
        if not isinstance(raw_pages, list):
            return error_response('Pages must be a list', 400)

        pages = []
        for page in raw_pages:
            text = page.get('text') if isinstance(page, dict) else page
            pages.append({'text': '' if text is None else str(text)})
        title = data.get('title')
        story = {'title': '' if title is None else str(title), 'pages': pages}

        if data.get('finalize'):
            is_valid, message = validate_story(story)
            if not is_valid:
                return error_response(message, 400)

        session_store.set_values(story=story)
        return jsonify({'success': True, 'story': story})
    except LookupError as e:
        return error_response(str(e), 404)
    except Exception as e:
        app_logger.error(f"Error in save-story API: {str(e)}", exc_info=True)
        return error_response(f'Failed to save story: {str(e)}', 500)

# ============================================================================
# STYLIZATION
# ============================================================================

@app.route('/api/stylize-images', methods=['POST'])
def api_stylize_images():
    """Stylize the theme's photos, reusing a style that was already generated."""
    try:
        data = request.get_json(silent=True) or {}
        from_session = 'images' not in data
        images = theme_images(session_store.get_value('selected_theme')) if from_session else data['images']

        if not images or not isinstance(images, list) or not all(
            isinstance(img, dict) and isinstance(img.get('base64'), str) for img in images
        ):
            return error_response('No images provided or invalid format', 400)

        style = data.get('style')
        if not style or not is_valid_style(style):
            return error_response('Invalid or missing style parameter', 400)

        pet_info = data.get('petInfo') or session_store.get_value('pet_info', {})
        stylized_cache = session_store.get_value('stylized_images', {}) if from_session else {}
        cached = {
            img['id']: img['stylizedImage']
            for img in stylized_cache.get(style, [])
            if img.get('stylizedImage')
        }
        pending = [img for img in images if img.get('id') not in cached]

        if not pending:
            app_logger.info(f"Using cached {style} images")
            return jsonify({
                'success': True,
                'stylizedImages': [
                    {'id': img['id'], 'originalImage': img['base64'], 'stylizedImage': cached[img['id']]}
                    for img in images
                ],
                'cached': True
            })

        app_logger.info(
            f"Sending {len(pending)} images for stylization in {style} style ({len(images) - len(pending)} cached)"
        )
        if data.get('method') == 'variation':
            fresh = stylize_images_sequentially(
                pending, style, pet_info, delay_seconds=app.config['STYLIZE_DELAY_SECONDS']
            )
        else:
            fresh = stylize_images(pending, style, pet_info, batch_size=app.config['STYLIZE_BATCH_SIZE'])

        # One result per requested image, in request order
        fresh = iter(fresh)
        results = [
            {'id': img['id'], 'originalImage': img['base64'], 'stylizedImage': cached[img['id']]}
            if img.get('id') in cached else next(fresh)
            for img in images
        ]

        successful = [r for r in results if r.get('stylizedImage')]
        app_logger.info(f"Stylized {len(successful)}/{len(results)} images in {style} style")

        if from_session and successful and session_store.get_current_session() is not None:
            stylized_cache[style] = [{'id': r['id'], 'stylizedImage': r['stylizedImage']} for r in successful]
            session_store.set_values(stylized_images=stylized_cache)

        return jsonify({'success': True, 'stylizedImages': results, 'cached': False})
    except Exception as e:
        app_logger.error(f"Error in stylize-images API: {str(e)}", exc_info=True)
        return error_response(f'Failed to stylize images: {str(e)}', 500)


@app.route('/api/stylize-with-variation', methods=['POST'])
def api_stylize_with_variation():
    """Stylize a single image, variation first and generation as fallback."""
    data = request.get_json(silent=True) or {}
    image = data.get('image')
    style = data.get('style')

    if not isinstance(image, dict) or not image.get('base64'):
        return error_response('No image provided or invalid format', 400)
    if not style or not is_valid_style(style):
        return error_response('Invalid or missing style parameter', 400)

    try:
        result = stylize_with_variation(
            image['base64'], style, data.get('petInfo') or {}, image.get('sceneDescription')
        )
        return jsonify({'success': True, **result})
    except StylizationError as e:
        return jsonify({'success': False, 'error': str(e), 'fallbackError': e.fallback_error}), 500
    except Exception as e:
        app_logger.error(f"Error in stylize-with-variation API: {str(e)}", exc_info=True)
        return error_response(f'Failed to process image: {str(e)}', 500)

# ============================================================================
# PDF EXPORT
# ============================================================================

def _pdf_response(style, book_options=None):
    story = session_store.get_value('story')
    theme = session_store.get_value('selected_theme')
    if not story or not theme:
        return error_response('No story to export', 400)

    if style != ORIGINAL_STYLE and not is_valid_style(style):
        return error_response('Invalid or missing style parameter', 400)

    images = page_images(theme, session_store.get_value('stylized_images', {}), style, fallback_to_original=True)
    pdf_bytes = generate_storybook(story, images, book_options)
    app_logger.info(f"Generated PDF {story.get('title')!r} ({len(pdf_bytes)} bytes, style={style})")

    download_name = secure_filename(story.get('title') or '') or 'Storybook'
    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"{download_name}.pdf"
    )


@app.route('/api/generate-pdf', methods=['POST'])
def api_generate_pdf():
    try:
        data = request.get_json(silent=True) or {}
        return _pdf_response(data.get('style') or ORIGINAL_STYLE, data.get('options'))
    except Exception as e:
        app_logger.error(f"Error generating PDF: {str(e)}", exc_info=True)
        return error_response(f'Failed to generate PDF: {str(e)}', 500)


@app.route('/download', methods=['GET'])
def download_pdf():
    try:
        return _pdf_response(request.args.get('style', ORIGINAL_STYLE))
    except Exception as e:
        app_logger.error(f"Error generating PDF: {str(e)}", exc_info=True)
        return error_response(f'Failed to generate PDF: {str(e)}', 500)

# ============================================================================
# SESSION & DIAGNOSTICS
# ============================================================================

@app.route('/api/session', methods=['GET'])
def api_session_summary():
    pet_session = session_store.get_current_session()
    if pet_session is None:
        return error_response('No active storybook session', 404)
    return jsonify({'success': True, 'session': pet_session.to_summary()})


@app.route('/api/session', methods=['DELETE'])
def api_session_clear():
    session_store.clear_current_session()
    return jsonify({'success': True})


@app.route('/api/test-env', methods=['GET'])
def api_test_env():
    api_key = os.environ.get('OPENAI_API_KEY') or app.config.get('OPENAI_API_KEY')
    return jsonify({
        'apiKeyConfigured': bool(api_key),
        'apiKey': mask_api_key(api_key)
    })


def init_db():
    """
    Initialize the database by creating all tables.
    """
    with app.app_context():
        db.create_all()
        app_logger.info("Database initialized successfully")

if __name__ == '__main__':
    init_db()

    port = app.config['PORT']
    app_logger.info(f"Starting Pet Tales on http://localhost:{port}")
    app.run(debug=False, host='0.0.0.0', port=port)
