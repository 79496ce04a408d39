"""
In-Memory Stores

Process-local implementations of DocumentStore and BlobStore, used by the
``memory`` backends for local runs and by the test suite.
"""

import copy
import threading
import uuid
from typing import Optional, List, Dict, Any
from urllib.parse import quote

from data.protocols import RawRecord
from utils.exceptions import StoreWriteError, StoreReadError, BlobUploadError, BlobDeleteError
from utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryDocumentStore:
    """Document store keeping collections in dictionaries."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        with self._lock:
            self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(data)
        logger.debug(f"Added record {record_id} to {collection}")
        return record_id

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            records = self._collections.get(collection, {})
            if record_id not in records:
                raise StoreWriteError(f"No record {record_id} in {collection}")
            records[record_id].update(copy.deepcopy(fields))

    def delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            records = self._collections.get(collection, {})
            if record_id not in records:
                raise StoreWriteError(f"No record {record_id} in {collection}")
            del records[record_id]

    def query(self, collection: str, order_by: str, descending: bool = False) -> List[RawRecord]:
        with self._lock:
            items = [(record_id, copy.deepcopy(data))
                     for record_id, data in self._collections.get(collection, {}).items()]
        missing = [record_id for record_id, data in items if order_by not in data]
        if missing:
            # Firestore silently drops such records; be explicit here instead
            raise StoreReadError(f"Records without {order_by}: {', '.join(missing)}")
        return sorted(items, key=lambda item: item[1][order_by], reverse=descending)

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of one record's field data, or None."""
        with self._lock:
            data = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(data) if data is not None else None


class InMemoryBlobStore:
    """Blob store keeping objects in a dictionary, served from ``memory://`` URLs."""

    URL_SCHEME = "memory://"

    def __init__(self):
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        if not path:
            raise BlobUploadError("Object path must not be empty")
        with self._lock:
            self._objects[path] = {"data": bytes(data), "content_type": content_type}
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path

    def download_url(self, handle: str) -> str:
        with self._lock:
            if handle not in self._objects:
                raise BlobUploadError(f"No object at {handle}")
        return self.URL_SCHEME + quote(handle, safe="/")

    def delete(self, path: str) -> None:
        with self._lock:
            if path not in self._objects:
                raise BlobDeleteError(f"No object at {path}")
            del self._objects[path]

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._objects
