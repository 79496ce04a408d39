"""
Tests for the Feed Client Main Application

Tests cover application wiring, the command handlers, argument parsing and
the exit codes of the entry point.
"""

import asyncio
import pytest
from unittest.mock import MagicMock, AsyncMock, patch
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import FeedApp, create_document_store, create_blob_store, format_post, parse_arguments, run, main
from data.memory import InMemoryDocumentStore, InMemoryBlobStore
from data.firestore import FirestoreDocumentStore
from data.blob_storage import FirebaseBlobStore
from utils.exceptions import AuthError, ConfigurationError, StoreReadError


@pytest.fixture
def mock_provider():
    provider = MagicMock()
    provider.restore_session.return_value = None
    provider.id_token = None
    return provider


@pytest.fixture
def app_factory(mock_provider, document_store, blob_store):
    """
    Factory for FeedApp instances over in-memory stores.

    Returns:
        callable: Takes the principal restored at startup; returns (app, notifications).
    """
    def _create(restored=None):
        mock_provider.restore_session.return_value = restored
        notifications = []
        app = FeedApp(provider=mock_provider, document_store=document_store, blob_store=blob_store,
                      notify=notifications.append, validate=False)
        return app, notifications

    return _create


# =============================================================================
# Wiring Tests
# =============================================================================

class TestBackends:
    """Tests for store backend selection."""

    def test_document_store_backends(self):
        assert isinstance(create_document_store("memory"), InMemoryDocumentStore)
        assert isinstance(create_document_store("firestore", lambda: None), FirestoreDocumentStore)

    def test_blob_store_backends(self):
        assert isinstance(create_blob_store("memory"), InMemoryBlobStore)
        assert isinstance(create_blob_store("firebase", lambda: None), FirebaseBlobStore)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_document_store("mongo")
        with pytest.raises(ConfigurationError):
            create_blob_store("s3")

    def test_stores_use_provider_token(self, mock_provider):
        mock_provider.id_token = "id-token"
        with patch('main.settings') as mock_settings:
            mock_settings.DOCUMENT_STORE_BACKEND = "firestore"
            mock_settings.BLOB_STORE_BACKEND = "firebase"
            app = FeedApp(provider=mock_provider, validate=False)

        assert app.document_store.token_provider() == "id-token"
        assert app.blob_store.token_provider() == "id-token"

    def test_validation_runs_by_default(self, mock_provider):
        with patch('main.settings') as mock_settings:
            mock_settings.validate_settings.side_effect = ConfigurationError("missing key")
            with pytest.raises(ConfigurationError):
                FeedApp(provider=mock_provider)


# =============================================================================
# Command Tests
# =============================================================================

class TestCommands:
    """Tests for the FeedApp command handlers."""

    @pytest.mark.asyncio
    async def test_start_waits_for_session(self, app_factory, principal, capsys):
        app, _ = app_factory(principal)

        assert await app.start() == principal
        assert "Loading..." in capsys.readouterr().err
        await app.close()

    @pytest.mark.asyncio
    async def test_empty_feed(self, app_factory, capsys):
        app, _ = app_factory(None)
        await app.start()

        assert await app.show_feed() is True
        assert "No posts yet." in capsys.readouterr().out
        await app.close()

    @pytest.mark.asyncio
    async def test_post_then_show_feed(self, app_factory, principal, capsys):
        app, notifications = app_factory(principal)
        await app.start()

        assert await app.post("hello world") is True
        assert await app.show_feed() is True

        out = capsys.readouterr().out
        assert "Posted." in out
        assert "Alice" in out
        assert "hello world" in out
        assert "(yours)" in out
        assert notifications == []
        await app.close()

    @pytest.mark.asyncio
    async def test_post_with_image(self, app_factory, principal, blob_store, tmp_path):
        image = tmp_path / "cat.png"
        image.write_bytes(b"\x89PNG")
        app, _ = app_factory(principal)
        await app.start()

        assert await app.post("look", str(image)) is True

        post = app.controller.posts[0]
        assert post.attachment_ref.startswith("memory://")
        assert blob_store.exists(f"tweets/u1/{post.id}")
        await app.close()

    @pytest.mark.asyncio
    async def test_post_with_missing_image(self, app_factory, principal, tmp_path):
        app, _ = app_factory(principal)
        await app.start()

        assert await app.post("look", str(tmp_path / "missing.png")) is False
        assert app.controller.posts == []
        await app.close()

    @pytest.mark.asyncio
    async def test_post_signed_out_redirects_to_login(self, app_factory, document_store, capsys):
        app, _ = app_factory(None)
        await app.start()

        assert await app.post("hello") is False

        assert "Log in to post" in capsys.readouterr().err
        assert document_store.query("tweets", "createdAt") == []
        await app.close()

    @pytest.mark.asyncio
    async def test_delete_own_post(self, app_factory, principal, capsys):
        app, _ = app_factory(principal)
        await app.start()
        await app.post("short lived")
        post_id = app.controller.posts[0].id

        assert await app.delete(post_id) is True

        assert app.controller.posts == []
        assert "Deleted." in capsys.readouterr().out
        await app.close()

    @pytest.mark.asyncio
    async def test_delete_foreign_post_refused(self, app_factory, document_store, post_factory,
                                               other_principal, capsys):
        record_id = document_store.add("tweets", post_factory().to_record())
        app, _ = app_factory(other_principal)
        await app.start()

        assert await app.delete(record_id) is False

        assert "only delete your own" in capsys.readouterr().err
        assert document_store.get("tweets", record_id) is not None
        await app.close()

    @pytest.mark.asyncio
    async def test_delete_unknown_post(self, app_factory, principal, capsys):
        app, _ = app_factory(principal)
        await app.start()

        assert await app.delete("nope") is False
        assert "No post nope" in capsys.readouterr().err
        await app.close()

    @pytest.mark.asyncio
    async def test_feed_failure_notifies(self, app_factory, document_store):
        app, notifications = app_factory(None)
        await app.start()

        with patch.object(document_store, 'query', side_effect=StoreReadError("unavailable")):
            assert await app.show_feed() is False

        assert notifications == ["Something went wrong. Please try again."]
        await app.close()

    @pytest.mark.asyncio
    async def test_login_and_logout(self, app_factory, mock_provider, principal, capsys):
        mock_provider.sign_in.return_value = principal
        app, _ = app_factory(None)
        await app.start()

        assert await app.login("alice@example.com", "secret") is True
        assert app.gate.current_principal() == principal
        assert await app.logout() is True
        assert app.gate.current_principal() is None

        out = capsys.readouterr().out
        assert "Logged in as Alice." in out
        assert "Logged out." in out
        await app.close()

    @pytest.mark.asyncio
    async def test_login_rejected(self, app_factory, mock_provider, capsys):
        mock_provider.sign_in.side_effect = AuthError("No account matches these credentials.")
        app, _ = app_factory(None)
        await app.start()

        assert await app.login("alice@example.com", "wrong") is False
        assert "No account matches" in capsys.readouterr().err
        await app.close()

    @pytest.mark.asyncio
    async def test_signup(self, app_factory, mock_provider, principal, capsys):
        mock_provider.sign_up.return_value = principal
        app, _ = app_factory(None)
        await app.start()

        assert await app.signup("Alice", "alice@example.com", "secret") is True
        assert "Welcome, Alice." in capsys.readouterr().out
        await app.close()


class TestFormatPost:

    def test_format(self, post_factory):
        line = format_post(post_factory(attachment_ref="memory://x"), own=True)

        assert line.startswith("[post-1] Alice (2024-01-15 10:00): Test post content")
        assert "photo: memory://x" in line
        assert line.endswith("(yours)")


# =============================================================================
# Entry Point Tests
# =============================================================================

class TestArguments:

    def test_post_arguments(self):
        args = parse_arguments(["post", "hello", "--image", "cat.png"])
        assert args.command == "post"
        assert args.body == "hello"
        assert args.image == "cat.png"
        assert args.ready_timeout is None

    def test_global_options(self):
        args = parse_arguments(["--log-level", "DEBUG", "--ready-timeout", "5", "feed"])
        assert args.log_level == "DEBUG"
        assert args.ready_timeout == 5.0

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_arguments([])


class TestRun:

    @pytest.mark.asyncio
    async def test_login_prompts_for_password(self, app_factory, mock_provider, principal):
        mock_provider.sign_in.return_value = principal
        app, _ = app_factory(None)

        with patch('getpass.getpass', return_value="secret"):
            assert await run(parse_arguments(["login", "alice@example.com"]), app) is True

        mock_provider.sign_in.assert_called_once_with("alice@example.com", "secret")
        assert app.controller.closed

    @pytest.mark.asyncio
    async def test_run_closes_app_on_error(self):
        app = MagicMock()
        app.start = AsyncMock(side_effect=asyncio.TimeoutError())
        app.close = AsyncMock()

        with pytest.raises(asyncio.TimeoutError):
            await run(parse_arguments(["feed"]), app)

        app.close.assert_awaited_once()


class TestMain:
    """Tests for exit codes."""

    @pytest.mark.parametrize("outcome,expected", [
        ({"return_value": True}, 0),
        ({"return_value": False}, 1),
        ({"side_effect": asyncio.TimeoutError()}, 1),
        ({"side_effect": ConfigurationError("missing key")}, 1),
        ({"side_effect": AuthError("denied")}, 1),
        ({"side_effect": RuntimeError("boom")}, 2),
    ])
    def test_exit_codes(self, outcome, expected):
        with patch('main.setup_file_logging'), \
             patch('main.run', new=AsyncMock(**outcome)):
            assert main(["feed"]) == expected
