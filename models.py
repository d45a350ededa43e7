"""
SQLAlchemy database models for the Pet Tales storybook application.

This module defines the core database models:
- PetSession: Server-side session storage for one storybook in progress
  (pet info, photos, analysis, themes, story, stylized images)
- Log: Stores application logs for debugging and monitoring
"""

from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
import json

# Initialize SQLAlchemy instance (will be initialized in project.py)
db = SQLAlchemy()


class PetSession(db.Model):
    """
    PetSession model holding everything a single storybook flow needs.

    Each document field is a JSON string. Use get_value()/set_value() rather
    than touching the columns directly.

    Fields:
        session_id: Primary key, the id stored in the browser's session cookie
        pet_info: {name, type}
        owner_info: {name}
        photos: [{id, base64}] compressed uploads as data URLs
        analyzed_photos: Vision analysis per photo
        themes: Grouped themes
        selected_theme: The theme chosen for the story
        story: {title, pages: [{text}]}
        stylized_images: {style: [{id, stylizedImage}]}
        created_at / updated_at: Timestamps
    """
    __tablename__ = 'pet_sessions'

    DOCUMENT_FIELDS = (
        'pet_info', 'owner_info', 'photos', 'analyzed_photos',
        'themes', 'selected_theme', 'story', 'stylized_images',
    )

    session_id = db.Column(db.String(64), primary_key=True, unique=True, nullable=False)
    pet_info = db.Column(db.Text, nullable=True)
    owner_info = db.Column(db.Text, nullable=True)
    photos = db.Column(db.Text, nullable=True)
    analyzed_photos = db.Column(db.Text, nullable=True)
    themes = db.Column(db.Text, nullable=True)
    selected_theme = db.Column(db.Text, nullable=True)
    story = db.Column(db.Text, nullable=True)
    stylized_images = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<PetSession {self.session_id}>'

    def get_value(self, key, default=None):
        """Parse and return a JSON document field."""
        if key not in self.DOCUMENT_FIELDS:
            raise KeyError(key)
        raw = getattr(self, key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return default

    def set_value(self, key, value):
        """Serialize a value into a JSON document field (None clears it)."""
        if key not in self.DOCUMENT_FIELDS:
            raise KeyError(key)
        setattr(self, key, None if value is None else json.dumps(value, ensure_ascii=False))

    def to_summary(self):
        """Describe what the session holds without returning the image data."""
        photos = self.get_value('photos', [])
        themes = self.get_value('themes', [])
        story = self.get_value('story')
        return {
            'session_id': self.session_id,
            'keys': [key for key in self.DOCUMENT_FIELDS if getattr(self, key) is not None],
            'photo_count': len(photos),
            'theme_count': len(themes),
            'story_title': story.get('title') if story else None,
            'stylized_styles': sorted(self.get_value('stylized_images', {}).keys()),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }


class Log(db.Model):
    """
    Log model for storing application logs.

    Fields:
        log_id: Primary key, unique identifier for the log entry
        session_id: Storybook session the record belongs to (nullable for system logs)
        level: Log level (e.g., 'INFO', 'ERROR', 'WARNING', 'DEBUG')
        message: Log message content
        timestamp: Timestamp when the log entry was created
    """
    __tablename__ = 'logs'

    log_id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    session_id = db.Column(db.String(64), nullable=True, index=True)
    level = db.Column(db.String(20), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f'<Log {self.log_id}: {self.level} - {self.message[:50]}>'

    def to_dict(self):
        """Convert log object to dictionary."""
        return {
            'log_id': self.log_id,
            'session_id': self.session_id,
            'level': self.level,
            'message': self.message,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }
