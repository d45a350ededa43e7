"""
Configuration for the Pet Tales storybook application.

All settings come from environment variables with development defaults.
Loaded into Flask with app.config.from_object(Config).
"""

import os


def _split_models(value):
    return [m.strip() for m in value.split(',') if m.strip()]


def _database_url():
    # Use PostgreSQL in production (DATABASE_URL from environment) or SQLite for local development
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        return 'sqlite:///pet_tales.db'
    if database_url.startswith('postgres://'):
        # Convert postgres:// to postgresql:// for SQLAlchemy compatibility
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    return database_url


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'your-secret-key-here-change-in-production')

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Uploads
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 64 * 1024 * 1024))
    MAX_PHOTO_BYTES = 10 * 1024 * 1024  # 10MB per photo
    PHOTO_MAX_DIMENSION = 800
    PHOTO_JPEG_QUALITY = 70

    # Browsers cap sessionStorage around 5MB; keep the same budget per session
    SESSION_STORAGE_LIMIT_BYTES = int(os.environ.get('SESSION_STORAGE_LIMIT_BYTES', 5 * 1024 * 1024))
    SESSION_FALLBACK_PHOTO_COUNT = 3

    # OpenAI
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    VISION_MODELS = _split_models(os.environ.get('VISION_MODELS', 'gpt-4o,gpt-4-vision-preview,gpt-4-turbo'))
    STORY_MODELS = _split_models(os.environ.get('STORY_MODELS', 'gpt-4o,gpt-4-turbo,gpt-4,gpt-3.5-turbo'))
    IMAGE_MODEL = os.environ.get('IMAGE_MODEL', 'dall-e-3')

    # Batching / rate limiting
    ANALYSIS_BATCH_SIZE = int(os.environ.get('ANALYSIS_BATCH_SIZE', 2))
    STYLIZE_BATCH_SIZE = int(os.environ.get('STYLIZE_BATCH_SIZE', 2))
    STYLIZE_DELAY_SECONDS = float(os.environ.get('STYLIZE_DELAY_SECONDS', 1.0))

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_TO_DATABASE = os.environ.get('LOG_TO_DATABASE', 'true').lower() in ('true', '1', 'yes')

    PORT = int(os.environ.get('PORT', 5000))
