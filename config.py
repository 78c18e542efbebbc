"""Application configuration module.

This module reads environment variables to configure the Flask application and
the record store. When deployed on Heroku the platform provides a
``DATABASE_URL`` environment variable that points to a Postgres database.
SQLAlchemy expects the URL to start with ``postgresql://`` rather than
``postgres://`` so the prefix is normalised below. Any variables defined in a
local ``.env`` file are loaded when running locally.
"""

import os
from dotenv import load_dotenv


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {'1', 'true', 'yes', 'on'}


class Config:
    """Base configuration class.

    Flask-SQLAlchemy reads ``SQLALCHEMY_DATABASE_URI`` from this class; the
    record store lives in a single key/value table inside that database. If
    no database URL is provided the application falls back to a local SQLite
    file so the app still runs in development.
    """

    # Load environment variables from a .env file if present.
    load_dotenv()

    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-secret-in-prod')

    _db_url = os.environ.get('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # Only replace the first occurrence; paths may contain the substring.
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url or 'sqlite:///quran_tracker.db'

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Every slot key in the key/value table carries this prefix, e.g.
    # ``quran_app_teachers``.
    STORE_KEY_PREFIX = os.environ.get('STORE_KEY_PREFIX', 'quran_app_')

    # When disabled a fresh store starts with no teachers instead of the two
    # built-in ones.
    STORE_SEED_TEACHERS = _env_flag('STORE_SEED_TEACHERS', '1')

    MIN_PASSWORD_LENGTH = int(os.environ.get('MIN_PASSWORD_LENGTH', '4'))
