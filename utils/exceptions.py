"""
Custom Exception Classes for the Feed Sync Client

This module defines custom exceptions for better error handling and
categorization of failures across the write, delete and read pipelines.
"""


class FeedSyncError(Exception):
    """Base exception for all feed client errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(FeedSyncError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Input and Identity Errors
# =============================================================================

class ValidationError(FeedSyncError):
    """Raised when a post body or attachment is rejected before any store call."""
    pass


class AuthError(FeedSyncError):
    """Raised when no principal is active or the requester does not own the post."""
    pass


# =============================================================================
# Transport Errors
# =============================================================================

class NetworkError(FeedSyncError):
    """Raised when a request never reached the store (connection reset, timeout)."""
    pass


# =============================================================================
# Document Store Errors
# =============================================================================

class DocumentStoreError(FeedSyncError):
    """Base exception for document store errors.

    When a write pipeline fails after the post record already exists,
    ``post`` carries that partially written post.
    """

    def __init__(self, message: str = "", post=None):
        super().__init__(message)
        self.post = post


class StoreWriteError(DocumentStoreError):
    """Raised when a document create, update or delete fails."""
    pass


class StoreReadError(DocumentStoreError):
    """Raised when the posts collection cannot be queried."""
    pass


class RecordDecodeError(StoreReadError):
    """Raised when a raw record does not have the shape of a post."""
    pass


# =============================================================================
# Blob Store Errors
# =============================================================================

class BlobStoreError(FeedSyncError):
    """Base exception for blob store errors."""

    def __init__(self, message: str = "", post=None):
        super().__init__(message)
        self.post = post


class BlobUploadError(BlobStoreError):
    """Raised when an attachment upload or download URL lookup fails."""
    pass


class BlobDeleteError(BlobStoreError):
    """Raised when an attachment cannot be removed (including when it is absent)."""
    pass
