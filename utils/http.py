"""
HTTP Helpers

Thin wrappers around requests shared by the Firebase REST clients.
"""

from typing import Any, Optional, Type

import requests

from utils.exceptions import FeedSyncError, NetworkError


def send(http: Any, method: str, url: str, **kwargs) -> requests.Response:
    """
    Issue a request, turning transport failures into NetworkError.

    HTTP error statuses are returned untouched; each client decides which
    store error they map to.

    Args:
        http: The requests module or a requests.Session
        method: Lower-case HTTP method name (get, post, patch, delete)
        url: Request URL
        **kwargs: Passed through to requests

    Returns:
        requests.Response: The response

    Raises:
        NetworkError: If the request could not be completed
    """
    try:
        return getattr(http, method)(url, **kwargs)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise NetworkError(f"{method.upper()} {url.split('?', 1)[0]} failed: {e}") from e


def error_message(response: requests.Response) -> str:
    """
    Extract the error message of a Google API error response.

    Google APIs answer ``{"error": {"code": ..., "message": ...}}``; anything
    else falls back to the status code and reason.

    Args:
        response: The failed response

    Returns:
        str: A short description of the failure
    """
    message: Optional[str] = None
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message")
        elif isinstance(error, str):
            message = error
    if not message:
        message = f"{response.status_code} {getattr(response, 'reason', '') or ''}".strip()
    return message


def json_body(response: requests.Response, error_cls: Type[FeedSyncError], context: str,
              expected: type = dict) -> Any:
    """
    Parse the JSON body of a successful response.

    Args:
        response: The response
        error_cls: Raised when the body is not JSON of the expected type
        context: Prefix of the error message
        expected: dict or list

    Returns:
        The parsed body

    Raises:
        error_cls: If the body cannot be used
    """
    try:
        payload = response.json()
    except ValueError as e:
        raise error_cls(f"{context}: response body is not JSON") from e
    if not isinstance(payload, expected):
        raise error_cls(f"{context}: expected a JSON {expected.__name__}, got {type(payload).__name__}")
    return payload


def bearer(token: Optional[str]) -> dict:
    """Authorization header for a Firebase ID token, or no header."""
    return {"Authorization": f"Bearer {token}"} if token else {}
