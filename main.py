"""
Feed Sync Client

This is the main entry point of the feed client. It restores the signed-in
session, then lists the feed, posts, deletes, or manages the account
depending on the command.

Usage:
    python main.py feed
    python main.py post "hello" --image photo.jpg
    python main.py delete <post-id>
    python main.py login you@example.com
"""

import sys
import argparse
import asyncio
import getpass
import logging
from typing import Optional, Callable

from config import settings
from data.models import Attachment, Principal
from data.memory import InMemoryDocumentStore, InMemoryBlobStore
from data.firestore import FirestoreDocumentStore
from data.blob_storage import FirebaseBlobStore
from services.auth_service import FirebaseAuthClient
from services.feed_controller import FeedController
from services.feed_service import FeedReader, FeedWriter, FeedEraser, FeedEvents
from services.identity_service import IdentityGate, AccountService, Redirect
from utils.exceptions import FeedSyncError, AuthError, ValidationError, ConfigurationError
from utils.logger import get_logger, setup_file_logging

# Set up logging
logger = get_logger(__name__)


def create_document_store(backend: str, token_provider: Optional[Callable[[], Optional[str]]] = None):
    """Build the document store selected by DOCUMENT_STORE_BACKEND."""
    if backend == "firestore":
        return FirestoreDocumentStore(token_provider=token_provider)
    if backend == "sqlserver":
        # pyodbc needs the system ODBC driver; only load it when asked for
        from data.database import SqlServerDocumentStore
        store = SqlServerDocumentStore()
        store.ensure_schema()
        return store
    if backend == "memory":
        return InMemoryDocumentStore()
    raise ConfigurationError(f"Unknown document store backend: {backend}")


def create_blob_store(backend: str, token_provider: Optional[Callable[[], Optional[str]]] = None):
    """Build the blob store selected by BLOB_STORE_BACKEND."""
    if backend == "firebase":
        return FirebaseBlobStore(token_provider=token_provider)
    if backend == "memory":
        return InMemoryBlobStore()
    raise ConfigurationError(f"Unknown blob store backend: {backend}")


class FeedApp:
    """
    Main application class for the feed client.

    Wires the identity provider, the stores and the feed pipelines together.
    Collaborators can be injected for testing.
    """

    def __init__(self, provider=None, document_store=None, blob_store=None,
                 notify: Optional[Callable[[str], None]] = None, validate: bool = True):
        """Initialize the feed application."""
        if validate:
            settings.validate_settings()

        self.provider = provider or FirebaseAuthClient()

        def token_provider() -> Optional[str]:
            return self.provider.id_token

        self.document_store = document_store or create_document_store(settings.DOCUMENT_STORE_BACKEND, token_provider)
        self.blob_store = blob_store or create_blob_store(settings.BLOB_STORE_BACKEND, token_provider)

        self.gate = IdentityGate()
        self.accounts = AccountService(self.provider, self.gate)
        self.events = FeedEvents()
        self.reader = FeedReader(self.document_store)
        self.writer = FeedWriter(self.gate, self.document_store, self.blob_store, self.events)
        self.eraser = FeedEraser(self.document_store, self.blob_store, self.events)
        self.controller = FeedController(self.gate, self.reader, self.writer, self.eraser, self.events,
                                         notify=notify or self._print_notification)

    @staticmethod
    def _print_notification(message: str) -> None:
        print(message, file=sys.stderr)

    async def start(self, ready_timeout: Optional[float] = None) -> Optional[Principal]:
        """
        Restore the session and wait until the identity gate settles.

        Args:
            ready_timeout: Seconds to wait, or None to wait as long as it takes.

        Returns:
            Optional[Principal]: The restored principal.
        """
        self.accounts.start()
        if not self.gate.is_settled:
            print("Loading...", file=sys.stderr)
        settled = await asyncio.wait_for(self.gate.await_ready(), timeout=ready_timeout)
        return settled.principal

    async def show_feed(self) -> bool:
        if not await self.controller.refresh():
            return False
        if not self.controller.posts:
            print("No posts yet.")
        for post in self.controller.posts:
            print(format_post(post, own=self.controller.can_delete(post)))
        return True

    async def post(self, body: str, image_path: Optional[str] = None) -> bool:
        def compose(principal: Principal) -> bool:
            return True

        if isinstance(self.gate.require_identity(compose), Redirect):
            print("Log in to post (main.py login EMAIL).", file=sys.stderr)
            return False

        attachment = None
        if image_path:
            try:
                attachment = Attachment.from_path(image_path)
            except OSError as e:
                logger.error(f"Cannot read {image_path}: {e}")
                return False

        self.controller.set_draft(body, attachment)
        posted = await self.controller.submit()
        if posted:
            await self.controller.wait_idle()
            print("Posted.")
        return posted

    async def delete(self, post_id: str) -> bool:
        if not await self.controller.refresh():
            return False
        post = next((p for p in self.controller.posts if p.id == post_id), None)
        if post is None:
            print(f"No post {post_id}.", file=sys.stderr)
            return False
        if not self.controller.can_delete(post):
            print("You can only delete your own posts.", file=sys.stderr)
            return False
        deleted = await self.controller.delete(post)
        if deleted:
            await self.controller.wait_idle()
            print("Deleted.")
        return deleted

    async def login(self, email: str, password: str) -> bool:
        try:
            principal = await self.accounts.sign_in(email, password)
        except (AuthError, ValidationError) as e:
            print(str(e), file=sys.stderr)
            return False
        print(f"Logged in as {principal.author_name}.")
        return True

    async def signup(self, name: str, email: str, password: str) -> bool:
        try:
            principal = await self.accounts.sign_up(name, email, password)
        except (AuthError, ValidationError) as e:
            print(str(e), file=sys.stderr)
            return False
        print(f"Welcome, {principal.author_name}.")
        return True

    async def logout(self) -> bool:
        await self.accounts.sign_out()
        print("Logged out.")
        return True

    async def close(self) -> None:
        await self.controller.close()
        close = getattr(self.document_store, "close", None)
        if callable(close):
            close()


def format_post(post, own: bool = False) -> str:
    """One-line rendering of a post for the terminal."""
    line = f"[{post.id}] {post.author_display_name} ({post.created_at:%Y-%m-%d %H:%M}): {post.body}"
    if post.attachment_ref:
        line += f"\n    photo: {post.attachment_ref}"
    if own:
        line += "  (yours)"
    return line


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Feed Sync Client')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='WARNING', help='Logging level')
    parser.add_argument('--ready-timeout', type=float, default=None,
                        help='Seconds to wait for session restoration (default: no limit)')

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('feed', help='Show the feed, newest first')

    post = commands.add_parser('post', help='Publish a post')
    post.add_argument('body', help=f'Post text (up to {settings.MAX_POST_LENGTH} characters)')
    post.add_argument('--image', type=str, default=None, help='Image file to attach')

    delete = commands.add_parser('delete', help='Delete one of your posts')
    delete.add_argument('post_id', help='Id of the post to delete')

    login = commands.add_parser('login', help='Log in with email and password')
    login.add_argument('email')

    signup = commands.add_parser('signup', help='Create an account')
    signup.add_argument('name')
    signup.add_argument('email')

    commands.add_parser('logout', help='Log out')
    return parser.parse_args(argv)


async def run(args, app: Optional[FeedApp] = None) -> bool:
    """Run one command against a started application."""
    app = app or FeedApp()
    try:
        await app.start(ready_timeout=args.ready_timeout)

        if args.command == 'feed':
            return await app.show_feed()
        if args.command == 'post':
            return await app.post(args.body, args.image)
        if args.command == 'delete':
            return await app.delete(args.post_id)
        if args.command == 'login':
            return await app.login(args.email, getpass.getpass("Password: "))
        if args.command == 'signup':
            return await app.signup(args.name, args.email, getpass.getpass("Password: "))
        if args.command == 'logout':
            return await app.logout()
        return False
    finally:
        await app.close()


def main(argv=None):
    """Main entry point for the application."""
    # Parse command line arguments
    args = parse_arguments(argv)

    # Set up logging
    log_level = getattr(logging, args.log_level)
    setup_file_logging(args.log_file, log_level)

    logger.info(f"Starting feed client: {args.command}")
    logger.debug(f"Configuration: {settings.get_config_summary()}")

    try:
        success = asyncio.run(run(args))
        exit_code = 0 if success else 1
    except asyncio.TimeoutError:
        logger.error("Session restoration did not finish in time")
        exit_code = 1
    except ConfigurationError as e:
        logger.error(str(e))
        exit_code = 1
    except FeedSyncError as e:
        logger.error(f"Feed client error: {e}", exc_info=True)
        exit_code = 1
    except Exception as e:
        logger.error(f"Unhandled exception in feed client: {e}", exc_info=True)
        exit_code = 2

    logger.info(f"Feed client finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
