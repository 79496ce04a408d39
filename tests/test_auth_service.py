"""
Tests for the Firebase Auth Client

Tests cover sign-in, sign-up, sign-out, error message mapping and the
restoration of persisted sessions.
"""

import json
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import Principal
from services.auth_service import FirebaseAuthClient, INVALID_CREDENTIALS_MESSAGE
from utils.exceptions import AuthError


@pytest.fixture
def session_file(tmp_path):
    return str(tmp_path / "session.json")


@pytest.fixture
def client(mock_http, session_file):
    return FirebaseAuthClient(api_key="key-123", session_file=session_file, persist=True, http=mock_http)


def sign_in_payload(display_name="Alice"):
    return {"localId": "u1", "idToken": "id-1", "refreshToken": "refresh-1", "displayName": display_name}


# =============================================================================
# Sign In / Sign Up Tests
# =============================================================================

class TestSignIn:
    """Tests for password sign-in."""

    def test_sign_in_returns_principal(self, client, mock_http, session_file):
        mock_http.post.return_value = mock_http.response(json_data=sign_in_payload())

        principal = client.sign_in("alice@example.com", "secret")

        assert principal == Principal(id="u1", display_name="Alice")
        assert client.id_token == "id-1"
        url = mock_http.post.call_args.args[0]
        assert url.endswith("accounts:signInWithPassword")
        assert mock_http.post.call_args.kwargs["json"]["email"] == "alice@example.com"

        with open(session_file, encoding="utf-8") as f:
            stored = json.load(f)
        assert stored == {"user_id": "u1", "refresh_token": "refresh-1", "display_name": "Alice"}

    def test_sign_in_without_display_name(self, client, mock_http):
        mock_http.post.return_value = mock_http.response(json_data=sign_in_payload(display_name=""))

        principal = client.sign_in("alice@example.com", "secret")

        assert principal.display_name is None
        assert principal.author_name == "Anonymous"

    @pytest.mark.parametrize("code", ["INVALID_LOGIN_CREDENTIALS", "EMAIL_NOT_FOUND", "INVALID_PASSWORD"])
    def test_bad_credentials(self, client, mock_http, google_error, code):
        mock_http.post.return_value = google_error(400, code)

        with pytest.raises(AuthError, match=INVALID_CREDENTIALS_MESSAGE):
            client.sign_in("alice@example.com", "wrong")

        assert client.id_token is None

    @pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
    def test_session_file_is_owner_only(self, client, mock_http, session_file):
        mock_http.post.return_value = mock_http.response(json_data=sign_in_payload())

        client.sign_in("alice@example.com", "secret")

        assert os.stat(session_file).st_mode & 0o777 == 0o600

    @pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
    def test_existing_session_file_is_restricted(self, client, mock_http, session_file):
        with open(session_file, "w", encoding="utf-8") as f:
            f.write("{}")
        os.chmod(session_file, 0o644)
        mock_http.post.return_value = mock_http.response(json_data=sign_in_payload())

        client.sign_in("alice@example.com", "secret")

        assert os.stat(session_file).st_mode & 0o777 == 0o600

    def test_sign_in_with_non_json_body(self, client, mock_http):
        mock_http.post.return_value = mock_http.response(status_code=200)

        with pytest.raises(AuthError, match="not JSON"):
            client.sign_in("alice@example.com", "secret")

        assert client.id_token is None

    def test_session_not_written_when_disabled(self, mock_http, session_file):
        client = FirebaseAuthClient(api_key="key-123", session_file=session_file, persist=False, http=mock_http)
        mock_http.post.return_value = mock_http.response(json_data=sign_in_payload())

        client.sign_in("alice@example.com", "secret")

        assert not os.path.exists(session_file)


class TestSignUp:
    """Tests for account creation."""

    def test_sign_up_sets_display_name(self, client, mock_http):
        mock_http.post.side_effect = [
            mock_http.response(json_data={"localId": "u1", "idToken": "id-0", "refreshToken": "refresh-0"}),
            mock_http.response(json_data={"localId": "u1", "displayName": "Alice",
                                          "idToken": "id-1", "refreshToken": "refresh-1"}),
        ]

        principal = client.sign_up("Alice", "alice@example.com", "secret")

        assert principal == Principal(id="u1", display_name="Alice")
        assert client.id_token == "id-1"
        update_call = mock_http.post.call_args_list[1]
        assert update_call.args[0].endswith("accounts:update")
        assert update_call.kwargs["json"]["idToken"] == "id-0"
        assert update_call.kwargs["json"]["displayName"] == "Alice"

    def test_weak_password(self, client, mock_http, google_error):
        mock_http.post.return_value = google_error(400, "WEAK_PASSWORD : Password should be at least 6 characters")

        with pytest.raises(AuthError, match="at least 6 characters"):
            client.sign_up("Alice", "alice@example.com", "123")

    def test_unknown_error_uses_generic_message(self, client, mock_http, google_error):
        mock_http.post.return_value = google_error(400, "OPERATION_NOT_ALLOWED")

        with pytest.raises(AuthError, match="Could not create the account."):
            client.sign_up("Alice", "alice@example.com", "secret")


# =============================================================================
# Session Tests
# =============================================================================

class TestSessions:
    """Tests for sign-out and session restoration."""

    def test_sign_out_forgets_session(self, client, mock_http, session_file):
        mock_http.post.return_value = mock_http.response(json_data=sign_in_payload())
        client.sign_in("alice@example.com", "secret")

        client.sign_out()

        assert client.id_token is None
        assert client.principal is None
        assert not os.path.exists(session_file)

    def test_restore_without_session_file(self, client, mock_http):
        assert client.restore_session() is None
        mock_http.post.assert_not_called()

    def test_restore_refreshes_tokens(self, client, mock_http, session_file):
        with open(session_file, "w", encoding="utf-8") as f:
            json.dump({"user_id": "u1", "refresh_token": "refresh-1", "display_name": "Old"}, f)
        mock_http.post.side_effect = [
            mock_http.response(json_data={"user_id": "u1", "id_token": "id-2", "refresh_token": "refresh-2"}),
            mock_http.response(json_data={"users": [{"localId": "u1", "displayName": "Alice"}]}),
        ]

        principal = client.restore_session()

        assert principal == Principal(id="u1", display_name="Alice")
        assert client.id_token == "id-2"
        refresh_call = mock_http.post.call_args_list[0]
        assert refresh_call.kwargs["data"] == {"grant_type": "refresh_token", "refresh_token": "refresh-1"}

    def test_stale_session_is_dropped(self, client, mock_http, google_error, session_file):
        with open(session_file, "w", encoding="utf-8") as f:
            json.dump({"user_id": "u1", "refresh_token": "revoked"}, f)
        mock_http.post.return_value = google_error(400, "TOKEN_EXPIRED")

        assert client.restore_session() is None
        assert not os.path.exists(session_file)

    def test_unexpected_refresh_failure_raises(self, client, mock_http, google_error, session_file):
        with open(session_file, "w", encoding="utf-8") as f:
            json.dump({"user_id": "u1", "refresh_token": "refresh-1"}, f)
        mock_http.post.return_value = google_error(500, "INTERNAL")

        with pytest.raises(AuthError):
            client.restore_session()

        assert os.path.exists(session_file)

    def test_corrupt_session_file_is_ignored(self, client, mock_http, session_file):
        with open(session_file, "w", encoding="utf-8") as f:
            f.write("{not json")

        assert client.restore_session() is None
        mock_http.post.assert_not_called()
