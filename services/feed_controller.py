"""
Feed Controller Module

The boundary between the feed pipelines and whatever presents them. It keeps
the latest feed snapshot, the compose draft and the in-flight pipeline tasks.
Pipeline errors stop here: they are logged and reported through a single
generic notification, and the method returns False.
"""

import asyncio
from typing import Optional, List, Callable, Set, Awaitable, Any

from config import settings
from data.models import Post, Attachment
from services.feed_service import FeedReader, FeedWriter, FeedEraser, FeedEvents, FeedEvent
from services.identity_service import IdentityGate
from utils.logger import get_logger

logger = get_logger(__name__)


class FeedController:
    """
    Drives the feed for one presentation surface.

    Every pipeline runs as a task owned by the controller, so close() stops
    anything still in flight when the surface goes away. Only one submission
    may be pending at a time.
    """

    def __init__(self,
                 gate: IdentityGate,
                 reader: FeedReader,
                 writer: FeedWriter,
                 eraser: FeedEraser,
                 events: Optional[FeedEvents] = None,
                 notify: Optional[Callable[[str], None]] = None):
        self.gate = gate
        self.reader = reader
        self.writer = writer
        self.eraser = eraser
        self.events = events
        self.notify = notify
        self.posts: List[Post] = []
        self.draft_body: str = ""
        self.draft_attachment: Optional[Attachment] = None
        self.is_submitting = False
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()
        self._refresh_generation = 0
        self._unsubscribe = events.subscribe(self._on_feed_event) if events else None

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _fail(self, action: str, error: BaseException) -> None:
        logger.error(f"{action} failed: {error}", exc_info=error)
        if self.notify:
            self.notify(settings.GENERIC_FAILURE_MESSAGE)

    def _cancelled(self, action: str) -> bool:
        """Turn a cancellation caused by close() into a plain failure result."""
        if not self.closed:
            return False
        logger.info(f"{action} cancelled by close()")
        return True

    def _on_feed_event(self, event: FeedEvent) -> None:
        if self.closed:
            return
        logger.debug(f"Feed {event.kind} {event.post_id}, refreshing")
        self._spawn(self._refresh())

    async def _refresh(self) -> bool:
        # Only the most recently started refresh may replace the snapshot
        self._refresh_generation += 1
        generation = self._refresh_generation
        try:
            posts = await self.reader.list_posts()
        except Exception as e:
            self._fail("Refreshing the feed", e)
            return False

        if generation != self._refresh_generation:
            logger.debug(f"Dropping out-of-date feed snapshot {generation}")
        else:
            self.posts = posts
        return True

    async def refresh(self) -> bool:
        """Fetch the feed again and replace the snapshot."""
        if self.closed:
            return False
        try:
            return await self._spawn(self._refresh())
        except asyncio.CancelledError:
            if self._cancelled("Refreshing the feed"):
                return False
            raise

    def set_draft(self, body: str, attachment: Optional[Attachment] = None) -> None:
        self.draft_body = body
        self.draft_attachment = attachment

    def clear_draft(self) -> None:
        self.draft_body = ""
        self.draft_attachment = None

    async def submit(self) -> bool:
        """
        Post the current draft.

        Returns:
            bool: True if the post and its attachment were stored; the draft is
            then cleared. False if a submission is already pending, the
            controller was closed while it ran, or anything failed (the draft
            is kept so it can be submitted again).
        """
        if self.closed or self.is_submitting:
            return False
        self.is_submitting = True
        try:
            await self._spawn(self.writer.create_post(self.draft_body, self.draft_attachment))
        except asyncio.CancelledError:
            if self._cancelled("Posting"):
                return False
            raise
        except Exception as e:
            if getattr(e, "post", None) is not None:
                logger.warning(f"Post {e.post.id} was stored without its attachment")
            self._fail("Posting", e)
            return False
        finally:
            self.is_submitting = False

        self.clear_draft()
        return True

    def can_delete(self, post: Post) -> bool:
        """Whether the current principal may delete a post (only their own)."""
        principal = self.gate.current_principal()
        return principal is not None and principal.id == post.author_id

    async def delete(self, post: Post) -> bool:
        """Delete a post on behalf of the current principal."""
        if self.closed:
            return False
        try:
            await self._spawn(self.eraser.delete_post(post, self.gate.current_principal()))
        except asyncio.CancelledError:
            if self._cancelled(f"Deleting post {post.id}"):
                return False
            raise
        except Exception as e:
            self._fail(f"Deleting post {post.id}", e)
            return False
        return True

    async def wait_idle(self) -> None:
        """Wait for every pipeline and refresh started so far to finish."""
        while True:
            tasks = [task for task in self._tasks if not task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel every in-flight pipeline and stop following feed events."""
        self.closed = True
        if self._unsubscribe:
            self._unsubscribe()
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} in-flight feed operations")
