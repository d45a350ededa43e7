import io
import os
import sys
import tempfile
from unittest.mock import MagicMock

import pytest

# Configure the environment before the application modules read it
os.environ.setdefault('OPENAI_API_KEY', 'sk-test-key-abcdef1234')
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['LOG_DIR'] = tempfile.mkdtemp(prefix='pet-tales-logs-')
os.environ['LOG_TO_DATABASE'] = 'false'
os.environ['STYLIZE_DELAY_SECONDS'] = '0'

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from PIL import Image  # noqa: E402

import openai_service  # noqa: E402


def make_image_bytes(size=(1200, 900), color=(200, 120, 60), fmt='JPEG', mode='RGB'):
    """Create an in-memory test image."""
    img = Image.new(mode, size, color)
    output = io.BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


def chat_response(content):
    """Build an object shaped like a chat completion response."""
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


def image_response(b64_json=None, url=None):
    """Build an object shaped like an images API response."""
    item = MagicMock()
    item.b64_json = b64_json
    item.url = url
    response = MagicMock()
    response.data = [item]
    return response


@pytest.fixture
def mock_openai(monkeypatch):
    """Replace the shared OpenAI client with a MagicMock."""
    client = MagicMock()
    monkeypatch.setattr(openai_service, '_client', client)
    return client


@pytest.fixture
def app():
    from project import app as flask_app
    from models import db

    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
