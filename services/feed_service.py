"""
Feed Service Module

This module implements the read, write and delete pipelines of the feed.
Each pipeline coordinates the document store (post records) and the blob
store (attachments). Steps run strictly in order, each awaited before the
next; store calls run in worker threads, so cancelling a pipeline stops it
at the next step boundary.

Partial failures are not rolled back:
- a post whose attachment upload or link fails keeps its text record;
- a post whose blob cannot be removed stays deleted.
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, List, Callable

from config import settings
from data.models import Post, Principal, Attachment
from data.protocols import DocumentStore, BlobStore
from services.identity_service import IdentityGate
from utils.exceptions import (
    AuthError, ValidationError, RecordDecodeError,
    StoreWriteError, BlobUploadError, BlobDeleteError,
)
from utils.helpers import blob_path, utf16_length, utc_now
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedEvent:
    """Signal that the feed changed and should be fetched again."""
    kind: str        # "created" or "deleted"
    post_id: str


FeedListener = Callable[[FeedEvent], None]


class FeedEvents:
    """Registry of listeners told about every successful write and delete."""

    def __init__(self):
        self._listeners: List[FeedListener] = []

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: FeedEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Feed listener failed on {event.kind} {event.post_id}: {e}", exc_info=True)


def validate_body(body: str) -> None:
    """
    Check a post body against the length limits.

    Raises:
        ValidationError: If the body is not a string of 1..MAX_POST_LENGTH UTF-16 code units.
    """
    if not isinstance(body, str):
        raise ValidationError("Post body must be text")
    length = utf16_length(body)
    if length < settings.MIN_POST_LENGTH:
        raise ValidationError("Post body is required")
    if length > settings.MAX_POST_LENGTH:
        raise ValidationError(f"Post body is {length} characters long, the limit is {settings.MAX_POST_LENGTH}")


def validate_attachment(attachment: Attachment) -> None:
    """
    Check that an attachment is a non-empty image.

    Raises:
        ValidationError: If the attachment is empty or not an image.
    """
    if not attachment.data:
        raise ValidationError("Attachment is empty")
    if not (attachment.content_type or "").startswith(settings.ATTACHMENT_CONTENT_PREFIX):
        raise ValidationError(f"Only images can be attached, got {attachment.content_type}")


class FeedReader:
    """Fetches the whole feed, newest first."""

    def __init__(self, store: DocumentStore, collection: Optional[str] = None):
        self.store = store
        self.collection = collection or settings.POSTS_COLLECTION

    async def list_posts(self) -> List[Post]:
        """
        Fetch every post record ordered by createdAt descending.

        Every call performs a complete fetch. Records that cannot be decoded
        into a Post are skipped and logged.

        Returns:
            List[Post]: Snapshot of the feed.

        Raises:
            StoreReadError: If the store cannot be queried.
        """
        records = await asyncio.to_thread(self.store.query, self.collection, "createdAt", True)

        posts = []
        for record_id, data in records:
            try:
                posts.append(Post.from_record(record_id, data))
            except RecordDecodeError as e:
                logger.warning(f"Skipping malformed record: {e}")

        logger.info(f"Fetched {len(posts)} posts")
        return posts


class FeedWriter:
    """Creates posts and links their attachments."""

    def __init__(self,
                 gate: IdentityGate,
                 store: DocumentStore,
                 blobs: BlobStore,
                 events: Optional[FeedEvents] = None,
                 collection: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.gate = gate
        self.store = store
        self.blobs = blobs
        self.events = events
        self.collection = collection or settings.POSTS_COLLECTION
        self.clock = clock

    async def create_post(self, body: str, attachment: Optional[Attachment] = None) -> Post:
        """
        Create a post, then upload and link its attachment if one is given.

        Order: write the record, upload the attachment to
        ``tweets/{authorId}/{postId}``, resolve its download URL, patch the
        record's ``photo``. The record is not removed when a later step fails.

        Args:
            body: Post text, 1..180 UTF-16 code units.
            attachment: Optional image.

        Returns:
            Post: The created post, with attachment_ref when an attachment was linked.

        Raises:
            ValidationError: Invalid body or attachment; nothing written.
            AuthError: Nobody is signed in; nothing written.
            StoreWriteError: Record creation failed (nothing written) or the
                photo link failed (``error.post`` holds the text-only post).
            BlobUploadError: Upload failed; ``error.post`` holds the text-only post.
        """
        validate_body(body)
        if attachment is not None:
            validate_attachment(attachment)

        principal = self.gate.current_principal()
        if principal is None:
            raise AuthError("Sign in to post")

        post = Post(
            id="",
            body=body,
            author_id=principal.id,
            author_display_name=principal.author_name,
            created_at=self.clock(),
        )

        try:
            post_id = await asyncio.to_thread(self.store.add, self.collection, post.to_record())
        except StoreWriteError:
            logger.error(f"Could not create post for {principal.id}")
            raise
        post = replace(post, id=post_id)
        logger.info(f"Created post {post_id} for {principal.id}")

        if attachment is not None:
            post = await self._link_attachment(post, attachment)

        if self.events:
            self.events.emit(FeedEvent("created", post.id))
        return post

    async def _link_attachment(self, post: Post, attachment: Attachment) -> Post:
        path = blob_path(post.author_id, post.id)
        try:
            handle = await asyncio.to_thread(self.blobs.upload, path, attachment.data, attachment.content_type)
            url = await asyncio.to_thread(self.blobs.download_url, handle)
        except BlobUploadError as e:
            logger.error(f"Attachment upload for post {post.id} failed, post kept without it: {e}")
            raise BlobUploadError(str(e), post=post) from e

        try:
            await asyncio.to_thread(self.store.update, self.collection, post.id, {"photo": url})
        except StoreWriteError as e:
            logger.error(f"Linking attachment to post {post.id} failed, post kept without it: {e}")
            raise StoreWriteError(str(e), post=post) from e

        logger.info(f"Linked attachment {path} to post {post.id}")
        return replace(post, attachment_ref=url)


class FeedEraser:
    """Deletes a post and, when it has one, its attachment."""

    def __init__(self,
                 store: DocumentStore,
                 blobs: BlobStore,
                 events: Optional[FeedEvents] = None,
                 collection: Optional[str] = None):
        self.store = store
        self.blobs = blobs
        self.events = events
        self.collection = collection or settings.POSTS_COLLECTION

    async def delete_post(self, post: Post, requester: Optional[Principal]) -> None:
        """
        Delete a post record, then its attachment.

        Only the author may delete a post. The attachment is removed only when
        the post has an attachment_ref; failing to remove it is logged and
        does not fail the deletion.

        Args:
            post: The post to delete.
            requester: The principal asking for the deletion.

        Raises:
            AuthError: The requester is not the author; nothing is touched.
            StoreWriteError: The record could not be deleted; nothing else is attempted.
        """
        if requester is None or requester.id != post.author_id:
            raise AuthError("Only the author can delete this post")

        await asyncio.to_thread(self.store.delete, self.collection, post.id)
        logger.info(f"Deleted post {post.id}")

        if post.attachment_ref:
            path = blob_path(post.author_id, post.id)
            try:
                await asyncio.to_thread(self.blobs.delete, path)
                logger.info(f"Deleted attachment {path}")
            except BlobDeleteError as e:
                logger.warning(f"Post {post.id} deleted but its attachment was not: {e}")

        if self.events:
            self.events.emit(FeedEvent("deleted", post.id))
