"""
Server-side session storage.

The browser only keeps an opaque session id in Flask's signed cookie; the
storybook documents (photos, themes, story, stylized images) live in the
pet_sessions table because they are far larger than a cookie allows.
"""

import logging
import uuid

from flask import session

from models import PetSession, db

logger = logging.getLogger(__name__)

SESSION_KEY = 'pet_tales_session_id'


def current_session_id():
    return session.get(SESSION_KEY)


def get_current_session():
    """Return the PetSession for this browser, or None."""
    session_id = current_session_id()
    if not session_id:
        return None
    return db.session.get(PetSession, session_id)


def start_new_session():
    """Drop any existing storybook for this browser and start a fresh one."""
    clear_current_session()
    pet_session = PetSession(session_id=str(uuid.uuid4()))
    db.session.add(pet_session)
    db.session.commit()
    session[SESSION_KEY] = pet_session.session_id
    logger.info("Started storybook session", extra={'session_id': pet_session.session_id})
    return pet_session


def get_value(key, default=None):
    pet_session = get_current_session()
    if pet_session is None:
        return default
    return pet_session.get_value(key, default)


def set_values(**values):
    """
    Store several documents at once.

    Raises:
        LookupError: If there is no session to write to
    """
    pet_session = get_current_session()
    if pet_session is None:
        raise LookupError('No active storybook session')
    for key, value in values.items():
        pet_session.set_value(key, value)
    db.session.commit()
    return pet_session


def clear_current_session():
    pet_session = get_current_session()
    if pet_session is not None:
        db.session.delete(pet_session)
        db.session.commit()
    session.pop(SESSION_KEY, None)
