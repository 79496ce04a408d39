"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for the two external stores.
These protocols enable dependency injection for storage operations,
making the feed services testable without real Firebase or database
connections.

Protocols defined:
- DocumentStore: keyed record storage with ordered queries
- BlobStore: path-addressed binary storage with URL retrieval

Adapters are synchronous; the feed services run each call in a worker
thread so that every store call is a suspension point of the event loop.
"""

from typing import Protocol, Optional, List, Dict, Any, Tuple


# (record id, field data) as returned by DocumentStore.query
RawRecord = Tuple[str, Dict[str, Any]]


class DocumentStore(Protocol):
    """Protocol defining the interface for document store operations.

    Implementations should provide methods for:
    - Adding a record and returning the id the store assigned to it
    - Patching selected fields of an existing record
    - Deleting a record by id
    - Fetching a whole collection in a field order

    Errors are reported as StoreWriteError (writes) or StoreReadError
    (queries), chained to a NetworkError for transport failures.
    """

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Add a record to a collection.

        Args:
            collection: Name of the collection.
            data: Field data of the new record.

        Returns:
            The id assigned to the record by the store.
        """
        ...

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Set the given fields on an existing record, leaving the others untouched.

        Args:
            collection: Name of the collection.
            record_id: Id of the record to patch.
            fields: Fields to set.
        """
        ...

    def delete(self, collection: str, record_id: str) -> None:
        """Delete a record.

        Args:
            collection: Name of the collection.
            record_id: Id of the record to delete.
        """
        ...

    def query(self, collection: str, order_by: str, descending: bool = False) -> List[RawRecord]:
        """Fetch every record of a collection, sorted by one field.

        Args:
            collection: Name of the collection.
            order_by: Field to sort on.
            descending: Sort direction.

        Returns:
            List of (record id, field data) pairs.
        """
        ...


class BlobStore(Protocol):
    """Protocol defining the interface for binary object storage.

    Objects are addressed by slash-separated paths. Errors are reported as
    BlobUploadError or BlobDeleteError.
    """

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store bytes at a path, replacing any existing object.

        Args:
            path: Object path.
            data: Raw bytes.
            content_type: MIME type hint.

        Returns:
            A handle (the stored object's path) usable with download_url.
        """
        ...

    def download_url(self, handle: str) -> str:
        """Return a URL from which the object can be retrieved.

        Args:
            handle: Handle returned by upload.
        """
        ...

    def delete(self, path: str) -> None:
        """Delete the object at a path.

        Raises:
            BlobDeleteError: Including when no object exists at the path.
        """
        ...
