"""
Data Models for the Feed Sync Client

This module contains the data classes used throughout the application and
the decoding of raw document store records into typed posts.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

from config import settings
from utils.exceptions import RecordDecodeError
from utils.helpers import parse_timestamp, guess_content_type


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of the current session."""
    id: str
    display_name: Optional[str] = None

    @property
    def author_name(self) -> str:
        """Name stamped on new posts; falls back to the anonymous display name."""
        return self.display_name or settings.ANONYMOUS_DISPLAY_NAME


@dataclass(frozen=True)
class Attachment:
    """The single optional image uploaded with a post."""
    data: bytes
    content_type: str = "application/octet-stream"
    filename: Optional[str] = None

    @classmethod
    def from_path(cls, path: str) -> "Attachment":
        """Read a file from disk, guessing its content type from the extension."""
        with open(path, "rb") as f:
            data = f.read()
        return cls(data=data, content_type=guess_content_type(path), filename=os.path.basename(path))


@dataclass(frozen=True)
class Post:
    """A feed entry as stored in the document store."""
    id: str                              # Assigned by the document store
    body: str
    author_id: str                       # Principal.id at creation time
    author_display_name: str
    created_at: datetime
    attachment_ref: Optional[str] = None  # Download URL, set only after a completed upload

    @classmethod
    def from_record(cls, record_id: Any, data: Any) -> "Post":
        """
        Decode a raw store record into a Post.

        The record shape is ``{body, createdAt, username, userId, photo?}``.
        Every field is checked; nothing about the store's shape is assumed.

        Args:
            record_id: Identifier the document store assigned to the record.
            data: The record's field data.

        Returns:
            Post: The decoded post.

        Raises:
            RecordDecodeError: If the id or a field is missing or has the wrong type.
        """
        if not isinstance(record_id, str) or not record_id:
            raise RecordDecodeError(f"Record id must be a non-empty string, got {record_id!r}")
        if not isinstance(data, dict):
            raise RecordDecodeError(f"Record {record_id} has no field data")

        body = data.get("body")
        if not isinstance(body, str) or not body:
            raise RecordDecodeError(f"Record {record_id} has no body")

        user_id = data.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise RecordDecodeError(f"Record {record_id} has no userId")

        created_at = parse_timestamp(data.get("createdAt"))
        if created_at is None:
            raise RecordDecodeError(f"Record {record_id} has an invalid createdAt: {data.get('createdAt')!r}")

        username = data.get("username")
        if username is None or username == "":
            username = settings.ANONYMOUS_DISPLAY_NAME
        elif not isinstance(username, str):
            raise RecordDecodeError(f"Record {record_id} has a non-string username")

        photo = data.get("photo")
        if photo == "":
            photo = None
        if photo is not None and not isinstance(photo, str):
            raise RecordDecodeError(f"Record {record_id} has a non-string photo")

        return cls(
            id=record_id,
            body=body,
            author_id=user_id,
            author_display_name=username,
            created_at=created_at,
            attachment_ref=photo,
        )

    def to_record(self) -> Dict[str, Any]:
        """Field data of this post in the document store's shape (without the id)."""
        record = {
            "body": self.body,
            "createdAt": self.created_at,
            "username": self.author_display_name,
            "userId": self.author_id,
        }
        if self.attachment_ref:
            record["photo"] = self.attachment_ref
        return record

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachment_ref)
