"""
Firebase Storage Blob Store

This module implements the BlobStore protocol on top of the Firebase Storage
REST API. Objects are uploaded with their content type; the retrievable URL
is built from the download token Storage attaches to each object.
"""

from typing import Optional, Dict, Any, Callable
from urllib.parse import quote

import requests

from config import settings
from utils.exceptions import NetworkError, BlobUploadError, BlobDeleteError
from utils.http import send, error_message, json_body
from utils.logger import get_logger

logger = get_logger(__name__)


class FirebaseBlobStore:
    """BlobStore backed by a Firebase Storage bucket."""

    def __init__(self,
                 bucket: Optional[str] = None,
                 token_provider: Optional[Callable[[], Optional[str]]] = None,
                 http: Any = None):
        """
        Initialize the Storage client.

        Args:
            bucket: Bucket name, e.g. ``my-app.appspot.com``
                (defaults to settings.FIREBASE_STORAGE_BUCKET).
            token_provider: Returns the signed-in user's ID token, if any.
            http: requests module or Session to send requests with.
        """
        self.bucket = bucket or settings.FIREBASE_STORAGE_BUCKET
        self.token_provider = token_provider
        self.http = http or requests
        self.base_url = f"{settings.FIREBASE_STORAGE_URL}/b/{self.bucket}/o"

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path, safe='')}"

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        return {"Authorization": f"Firebase {token}"} if token else {}

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        headers = self._headers()
        headers["Content-Type"] = content_type or "application/octet-stream"
        try:
            response = send(self.http, "post", self.base_url,
                            params={"name": path, "uploadType": "media"},
                            data=data,
                            headers=headers)
        except NetworkError as e:
            raise BlobUploadError(f"Could not upload {path}: {e}") from e

        if not response.ok:
            raise BlobUploadError(f"Could not upload {path}: {error_message(response)}")

        metadata = json_body(response, BlobUploadError, f"Could not upload {path}")
        logger.info(f"Uploaded {len(data)} bytes to {path}")
        return metadata.get("name") or path

    def download_url(self, handle: str) -> str:
        try:
            response = send(self.http, "get", self._object_url(handle), headers=self._headers())
        except NetworkError as e:
            raise BlobUploadError(f"Could not read metadata of {handle}: {e}") from e

        if not response.ok:
            raise BlobUploadError(f"Could not read metadata of {handle}: {error_message(response)}")

        metadata = json_body(response, BlobUploadError, f"Could not read metadata of {handle}")
        tokens = (metadata.get("downloadTokens") or "").split(",")
        token = tokens[0].strip()
        if not token:
            raise BlobUploadError(f"Object {handle} has no download token")

        return f"{self._object_url(handle)}?alt=media&token={token}"

    def delete(self, path: str) -> None:
        try:
            response = send(self.http, "delete", self._object_url(path), headers=self._headers())
        except NetworkError as e:
            raise BlobDeleteError(f"Could not delete {path}: {e}") from e

        if response.status_code == 404:
            raise BlobDeleteError(f"No object at {path}")
        if not response.ok:
            raise BlobDeleteError(f"Could not delete {path}: {error_message(response)}")

        logger.info(f"Deleted {path}")
