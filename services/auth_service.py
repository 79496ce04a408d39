"""
Auth Service Module

This module handles the integration with Firebase Authentication through
its REST API. It provides sign-up, password sign-in, sign-out and the
restoration of a session persisted by a previous run.
"""

import json
import os
from typing import Optional, Dict, Any

import requests

from config import settings
from data.models import Principal
from utils.exceptions import AuthError
from utils.http import send, error_message, json_body
from utils.logger import get_logger

logger = get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "No account matches these credentials."
SIGN_UP_FAILED_MESSAGE = "Could not create the account."

# Identity Toolkit error codes -> user-facing messages
ERROR_MESSAGES = {
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_PASSWORD": INVALID_CREDENTIALS_MESSAGE,
    "EMAIL_NOT_FOUND": INVALID_CREDENTIALS_MESSAGE,
    "INVALID_EMAIL": "The email address is not valid.",
    "EMAIL_EXISTS": "An account with this email already exists.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Try again later.",
}

# Refresh failures meaning the persisted session is no longer valid
STALE_SESSION_CODES = ("TOKEN_EXPIRED", "USER_NOT_FOUND", "USER_DISABLED", "INVALID_REFRESH_TOKEN")


def _error_code(message: str) -> str:
    # "WEAK_PASSWORD : Password should be at least 6 characters" -> "WEAK_PASSWORD"
    return message.split(":", 1)[0].strip()


class FirebaseAuthClient:
    """Identity provider backed by Firebase Authentication."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 session_file: Optional[str] = None,
                 persist: Optional[bool] = None,
                 http: Any = None):
        """
        Initialize the auth client.

        Args:
            api_key: Web API key (defaults to settings.FIREBASE_API_KEY).
            session_file: Where the refresh token is kept between runs
                (defaults to settings.SESSION_FILE).
            persist: Whether to write the session file at all
                (defaults to settings.PERSIST_SESSION).
            http: requests module or Session to send requests with.
        """
        self.api_key = api_key or settings.FIREBASE_API_KEY
        self.session_file = session_file or settings.SESSION_FILE
        self.persist = settings.PERSIST_SESSION if persist is None else persist
        self.http = http or requests
        self._session: Optional[Dict[str, Any]] = None

    @property
    def id_token(self) -> Optional[str]:
        return self._session["id_token"] if self._session else None

    @property
    def principal(self) -> Optional[Principal]:
        if not self._session:
            return None
        return Principal(id=self._session["user_id"], display_name=self._session.get("display_name"))

    def _call(self, endpoint: str, payload: Dict[str, Any], fallback_message: str) -> Dict[str, Any]:
        """POST to an Identity Toolkit endpoint, mapping errors to AuthError."""
        response = send(self.http, "post", f"{settings.IDENTITY_TOOLKIT_URL}/{endpoint}",
                        params={"key": self.api_key}, json=payload)
        if not response.ok:
            code = _error_code(error_message(response))
            logger.warning(f"{endpoint} rejected: {code}")
            raise AuthError(ERROR_MESSAGES.get(code, fallback_message))
        return json_body(response, AuthError, fallback_message)

    def _start_session(self, user_id: str, id_token: str, refresh_token: str,
                       display_name: Optional[str]) -> Principal:
        self._session = {
            "user_id": user_id,
            "id_token": id_token,
            "refresh_token": refresh_token,
            "display_name": display_name or None,
        }
        self._save_session()
        return self.principal

    def sign_in(self, email: str, password: str) -> Principal:
        data = self._call("accounts:signInWithPassword",
                          {"email": email, "password": password, "returnSecureToken": True},
                          INVALID_CREDENTIALS_MESSAGE)
        principal = self._start_session(data["localId"], data["idToken"], data["refreshToken"],
                                         data.get("displayName"))
        logger.info(f"Signed in as {principal.id}")
        return principal

    def sign_up(self, display_name: str, email: str, password: str) -> Principal:
        created = self._call("accounts:signUp",
                             {"email": email, "password": password, "returnSecureToken": True},
                             SIGN_UP_FAILED_MESSAGE)
        updated = self._call("accounts:update",
                             {"idToken": created["idToken"], "displayName": display_name,
                              "returnSecureToken": True},
                             SIGN_UP_FAILED_MESSAGE)
        principal = self._start_session(
            created["localId"],
            updated.get("idToken", created["idToken"]),
            updated.get("refreshToken", created["refreshToken"]),
            updated.get("displayName", display_name),
        )
        logger.info(f"Created account {principal.id}")
        return principal

    def sign_out(self) -> None:
        self._session = None
        if os.path.exists(self.session_file):
            os.remove(self.session_file)
        logger.info("Signed out")

    def restore_session(self) -> Optional[Principal]:
        """
        Exchange the persisted refresh token for a fresh ID token.

        Returns:
            Optional[Principal]: The restored principal, or None when no usable
            session was persisted.

        Raises:
            NetworkError: If the identity provider cannot be reached.
        """
        stored = self._load_session()
        if not stored:
            logger.info("No persisted session")
            return None

        response = send(self.http, "post", settings.SECURE_TOKEN_URL,
                        params={"key": self.api_key},
                        data={"grant_type": "refresh_token", "refresh_token": stored["refresh_token"]})
        if not response.ok:
            code = _error_code(error_message(response))
            if code in STALE_SESSION_CODES:
                logger.info(f"Persisted session is no longer valid ({code})")
                self.sign_out()
                return None
            raise AuthError(f"Could not restore session: {code}")

        tokens = json_body(response, AuthError, "Could not restore session")
        display_name = stored.get("display_name")
        lookup = self._call("accounts:lookup", {"idToken": tokens["id_token"]}, "Could not restore session.")
        users = lookup.get("users") or []
        if users:
            display_name = users[0].get("displayName") or display_name

        principal = self._start_session(tokens["user_id"], tokens["id_token"], tokens["refresh_token"],
                                        display_name)
        logger.info(f"Restored session for {principal.id}")
        return principal

    def _load_session(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.session_file):
            return None
        try:
            with open(self.session_file, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
            return None
        if not isinstance(stored, dict) or not stored.get("refresh_token"):
            logger.warning(f"Ignoring malformed session file {self.session_file}")
            return None
        return stored

    def _save_session(self) -> None:
        if not self.persist or not self._session:
            return
        stored = {
            "user_id": self._session["user_id"],
            "refresh_token": self._session["refresh_token"],
            "display_name": self._session.get("display_name"),
        }
        # Created owner-only; the mode argument is ignored for an existing file
        fd = os.open(self.session_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(stored, f)
        try:
            os.chmod(self.session_file, 0o600)
        except OSError as e:
            logger.warning(f"Could not restrict permissions of {self.session_file}: {e}")
