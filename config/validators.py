"""
Configuration Validation for the Feed Sync Client

This module contains configuration validation logic.
Kept apart from settings.py so that settings stay plain constants.
"""

from utils.exceptions import ConfigurationError


def validate_settings():
    """
    Validate that all required settings are properly configured.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []

    if settings.DOCUMENT_STORE_BACKEND not in settings.DOCUMENT_STORE_BACKENDS:
        errors.append(f"DOCUMENT_STORE_BACKEND must be one of "
                      f"{', '.join(settings.DOCUMENT_STORE_BACKENDS)}, got {settings.DOCUMENT_STORE_BACKEND!r}")

    if settings.BLOB_STORE_BACKEND not in settings.BLOB_STORE_BACKENDS:
        errors.append(f"BLOB_STORE_BACKEND must be one of "
                      f"{', '.join(settings.BLOB_STORE_BACKENDS)}, got {settings.BLOB_STORE_BACKEND!r}")

    # The identity provider is always Firebase Authentication
    required_vars = [("FIREBASE_API_KEY", settings.FIREBASE_API_KEY)]

    if settings.DOCUMENT_STORE_BACKEND == "firestore":
        required_vars.append(("FIREBASE_PROJECT_ID", settings.FIREBASE_PROJECT_ID))

    if settings.BLOB_STORE_BACKEND == "firebase":
        required_vars.append(("FIREBASE_STORAGE_BUCKET", settings.FIREBASE_STORAGE_BUCKET))

    if settings.DOCUMENT_STORE_BACKEND == "sqlserver":
        required_vars.extend([
            ("DB_SERVER", settings.DB_SERVER),
            ("DB_NAME", settings.DB_NAME),
            ("DB_USER", settings.DB_USER),
            ("DB_PASSWORD", settings.DB_PASSWORD),
        ])

    for var_name, var_value in required_vars:
        if not var_value:
            errors.append(f"Missing required environment variable: {var_name}")

    if settings.DOCUMENT_STORE_BACKEND == "sqlserver" and not settings.DB_CONNECTION_STRING:
        errors.append("Database connection string could not be built. Check DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD.")

    # Validate numeric settings are within reasonable bounds
    numeric_validations = [
        ("MIN_POST_LENGTH", settings.MIN_POST_LENGTH, 1, 1),
        ("MAX_POST_LENGTH", settings.MAX_POST_LENGTH, 1, 10000),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    if not settings.ANONYMOUS_DISPLAY_NAME:
        errors.append("ANONYMOUS_DISPLAY_NAME must not be empty")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    # Import settings here to avoid circular imports
    from config import settings

    return {
        "backends": {
            "document_store": settings.DOCUMENT_STORE_BACKEND,
            "blob_store": settings.BLOB_STORE_BACKEND,
        },
        "firebase": {
            "api_key_configured": bool(settings.FIREBASE_API_KEY),
            "project_id": settings.FIREBASE_PROJECT_ID,
            "storage_bucket": settings.FIREBASE_STORAGE_BUCKET,
        },
        "database": {
            "server": settings.DB_SERVER[:20] + "..." if settings.DB_SERVER and len(settings.DB_SERVER) > 20 else settings.DB_SERVER,
            "database": settings.DB_NAME,
        },
        "feed_settings": {
            "collection": settings.POSTS_COLLECTION,
            "max_post_length": settings.MAX_POST_LENGTH,
            "persist_session": settings.PERSIST_SESSION,
        },
    }
