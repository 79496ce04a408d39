"""
Firestore Document Store

This module implements the DocumentStore protocol on top of the Cloud
Firestore REST API. Field values are converted to and from Firestore's typed
value representation (``{"stringValue": ...}``, ``{"timestampValue": ...}``).
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Callable

import requests

from config import settings
from data.protocols import RawRecord
from utils.exceptions import NetworkError, StoreWriteError, StoreReadError
from utils.helpers import format_timestamp, parse_timestamp
from utils.http import send, error_message, bearer, json_body
from utils.logger import get_logger

logger = get_logger(__name__)


def encode_value(value: Any) -> Dict[str, Any]:
    """
    Convert a Python value into a Firestore value.

    Args:
        value: str, bool, int, float, datetime, None, dict or list

    Returns:
        Dict: The Firestore typed value

    Raises:
        TypeError: For unsupported types
    """
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store value of type {type(value).__name__} in Firestore")


def decode_value(value: Dict[str, Any]) -> Any:
    """
    Convert a Firestore value into a Python value.

    Unknown value kinds (references, geo points, bytes) are returned as-is.
    """
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    return value


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(val) for key, val in data.items()}


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(val) for key, val in fields.items()}


class FirestoreDocumentStore:
    """DocumentStore backed by the Cloud Firestore REST API."""

    def __init__(self,
                 project_id: Optional[str] = None,
                 api_key: Optional[str] = None,
                 token_provider: Optional[Callable[[], Optional[str]]] = None,
                 http: Any = None,
                 database: str = "(default)"):
        """
        Initialize the Firestore client.

        Args:
            project_id: Firebase project id (defaults to settings.FIREBASE_PROJECT_ID).
            api_key: Web API key (defaults to settings.FIREBASE_API_KEY).
            token_provider: Returns the signed-in user's ID token, if any.
                Security rules see unauthenticated requests otherwise.
            http: requests module or Session to send requests with.
            database: Firestore database id.
        """
        self.project_id = project_id or settings.FIREBASE_PROJECT_ID
        self.api_key = api_key or settings.FIREBASE_API_KEY
        self.token_provider = token_provider
        self.http = http or requests
        self.documents_path = f"projects/{self.project_id}/databases/{database}/documents"

    def _url(self, suffix: str) -> str:
        return f"{settings.FIRESTORE_URL}/{self.documents_path}/{suffix}"

    def _headers(self) -> Dict[str, str]:
        return bearer(self.token_provider() if self.token_provider else None)

    def _params(self, extra: Optional[list] = None) -> list:
        params = [("key", self.api_key)] if self.api_key else []
        return params + (extra or [])

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        try:
            response = send(self.http, "post", self._url(collection),
                            params=self._params(),
                            json={"fields": encode_fields(data)},
                            headers=self._headers())
        except NetworkError as e:
            raise StoreWriteError(f"Could not add record to {collection}: {e}") from e

        if not response.ok:
            raise StoreWriteError(f"Could not add record to {collection}: {error_message(response)}")

        name = json_body(response, StoreWriteError, f"Could not add record to {collection}").get("name", "")
        record_id = name.rsplit("/", 1)[-1]
        if not record_id:
            raise StoreWriteError(f"Firestore did not return a document name for the new {collection} record")

        logger.debug(f"Created Firestore document {collection}/{record_id}")
        return record_id

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        mask = [("updateMask.fieldPaths", field) for field in fields]
        # Patching a missing document would create it
        mask.append(("currentDocument.exists", "true"))
        try:
            response = send(self.http, "patch", self._url(f"{collection}/{record_id}"),
                            params=self._params(mask),
                            json={"fields": encode_fields(fields)},
                            headers=self._headers())
        except NetworkError as e:
            raise StoreWriteError(f"Could not update {collection}/{record_id}: {e}") from e

        if not response.ok:
            raise StoreWriteError(f"Could not update {collection}/{record_id}: {error_message(response)}")

    def delete(self, collection: str, record_id: str) -> None:
        try:
            response = send(self.http, "delete", self._url(f"{collection}/{record_id}"),
                            params=self._params(),
                            headers=self._headers())
        except NetworkError as e:
            raise StoreWriteError(f"Could not delete {collection}/{record_id}: {e}") from e

        if not response.ok:
            raise StoreWriteError(f"Could not delete {collection}/{record_id}: {error_message(response)}")

    def query(self, collection: str, order_by: str, descending: bool = False) -> List[RawRecord]:
        structured_query = {
            "from": [{"collectionId": collection}],
            "orderBy": [{
                "field": {"fieldPath": order_by},
                "direction": "DESCENDING" if descending else "ASCENDING",
            }],
        }
        try:
            response = send(self.http, "post",
                            f"{settings.FIRESTORE_URL}/{self.documents_path}:runQuery",
                            params=self._params(),
                            json={"structuredQuery": structured_query},
                            headers=self._headers())
        except NetworkError as e:
            raise StoreReadError(f"Could not query {collection}: {e}") from e

        if not response.ok:
            raise StoreReadError(f"Could not query {collection}: {error_message(response)}")

        records = []
        # runQuery streams one entry per document; entries without a
        # document only carry read metadata
        for entry in json_body(response, StoreReadError, f"Could not query {collection}", expected=list):
            document = entry.get("document") if isinstance(entry, dict) else None
            if not document:
                continue
            record_id = document.get("name", "").rsplit("/", 1)[-1]
            records.append((record_id, decode_fields(document.get("fields", {}))))

        logger.debug(f"Fetched {len(records)} records from {collection}")
        return records
