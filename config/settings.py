"""
Configuration Settings for the Feed Sync Client

This module centralizes all configuration settings for the feed client,
including environment variables, store credentials, and application constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))


def _get_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Firebase Project
# =============================================================================

FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY", "")
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET", "")

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
FIRESTORE_URL = "https://firestore.googleapis.com/v1"
FIREBASE_STORAGE_URL = "https://firebasestorage.googleapis.com/v0"

# =============================================================================
# Backend Selection
# =============================================================================

# firestore | sqlserver | memory
DOCUMENT_STORE_BACKEND = os.getenv("DOCUMENT_STORE_BACKEND", "firestore").lower()
# firebase | memory
BLOB_STORE_BACKEND = os.getenv("BLOB_STORE_BACKEND", "firebase").lower()

DOCUMENT_STORE_BACKENDS = ("firestore", "sqlserver", "memory")
BLOB_STORE_BACKENDS = ("firebase", "memory")

# =============================================================================
# Database Settings (sqlserver backend)
# =============================================================================

DB_SERVER = os.getenv("server", "")
DB_NAME = os.getenv("db", "")
DB_USER = os.getenv("user", "")
DB_PASSWORD = os.getenv("pwd", "")

# Build connection string safely (validation happens in validate_settings())
DB_CONNECTION_STRING = (
    f"DRIVER={{ODBC Driver 18 for SQL Server}}; "
    f"SERVER={DB_SERVER}; "
    f"DATABASE={DB_NAME}; "
    f"UID={DB_USER}; "
    f"PWD={DB_PASSWORD}; "
    f"TrustServerCertificate=yes; MARS_Connection=yes;"
) if all([DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD]) else ""

# =============================================================================
# Session Settings
# =============================================================================

SESSION_FILE = os.getenv("SESSION_FILE", os.path.join(APP_ROOT, ".session.json"))
PERSIST_SESSION = _get_bool_env("PERSIST_SESSION", True)
LOGIN_ROUTE = "/login"

# =============================================================================
# Feed Settings
# =============================================================================

POSTS_COLLECTION = "tweets"          # Document store collection holding post records
POSTS_TABLE = "tbl_Posts"            # Table backing the collection on sqlserver
BLOB_ROOT = "tweets"                 # Attachment paths are BLOB_ROOT/{userId}/{postId}

MAX_POST_LENGTH = 180                # UTF-16 code units
MIN_POST_LENGTH = 1
ANONYMOUS_DISPLAY_NAME = "Anonymous"
ATTACHMENT_CONTENT_PREFIX = "image/"  # Only images may be attached

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."


def validate_settings():
    """Validate configuration. See config.validators for details."""
    from config.validators import validate_settings as _validate
    return _validate()


def get_config_summary() -> dict:
    """Summarize configuration without secrets. See config.validators."""
    from config.validators import get_config_summary as _summary
    return _summary()
