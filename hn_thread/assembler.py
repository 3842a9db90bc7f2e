"""Top-level entry points that turn a root id into a Thread."""

from __future__ import annotations

import dataclasses
from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING, Optional, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_not_exception_type,
)

from hn_thread.client import ItemSource
from hn_thread.constants import INDENT_STEP
from hn_thread.errors import (
    AssembleError,
    Cancelled,
    FetchFailed,
    OrphanedComments,
    ThreadError,
    UnsupportedRootType,
    failure_reason,
)
from hn_thread.logging_config import get_logger
from hn_thread.models import (
    THREAD_ROOT_TYPES,
    CommentNode,
    FlatCommentRecord,
    Thread,
    ThreadRoot,
    type_name,
)
from hn_thread.orchestrator import FetchOrchestrator
from hn_thread.retry import CancelToken, stop_when_cancelled, wait_until_deadline
from hn_thread.trees import build_indent_forest, build_parent_link_forest

if TYPE_CHECKING:
    from hn_thread.scrape import HNPageClient

logger = get_logger(__name__)


class LazyThread:
    """A thread root whose comments are fetched as they are walked.

    ``comment_map`` fills up as ``walk`` yields; a second walk refetches
    from the store but reuses the same map.
    """

    def __init__(self, root: ThreadRoot, orchestrator: FetchOrchestrator) -> None:
        self.root = root
        self.orchestrator = orchestrator
        self.comment_map: dict[int, CommentNode] = {}

    def walk(
        self, cancel: Optional[CancelToken] = None
    ) -> AsyncIterator[tuple[int, Union[CommentNode, ThreadError]]]:
        return self.orchestrator.unfold(
            self.root.kids or [], cancel=cancel, cache=self.comment_map
        )


class ThreadAssembler:
    def __init__(
        self,
        source: ItemSource,
        orchestrator: Optional[FetchOrchestrator] = None,
        allow_orphans: bool = False,
    ) -> None:
        self.source = source
        self.orchestrator = orchestrator or FetchOrchestrator(source)
        self.allow_orphans = allow_orphans

    async def _fetch_root(
        self, root_id: int, cancel: Optional[CancelToken] = None
    ) -> ThreadRoot:
        policy = self.orchestrator.retry
        stop, wait = policy.stop(), policy.wait()
        if cancel is not None:
            stop = stop | stop_when_cancelled(cancel)
            wait = wait_until_deadline(wait, cancel)

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "assemble.root_retry",
                root_id=root_id,
                attempt=retry_state.attempt_number,
                reason=failure_reason(retry_state.outcome.exception()),
            )

        try:
            # Sources may raise transport errors directly; any other
            # ThreadError ends the loop at once
            async for attempt in AsyncRetrying(
                stop=stop,
                wait=wait,
                retry=retry_if_exception_type(FetchFailed) | retry_if_not_exception_type(ThreadError),
                before_sleep=log_retry,
            ):
                with attempt:
                    if cancel is not None and cancel.cancelled:
                        raise Cancelled(partial={})
                    root = await self.source.item(root_id)
        except RetryError as e:
            last = e.last_attempt.exception()
            if cancel is not None and cancel.cancelled:
                raise Cancelled(partial={}) from last
            raise FetchFailed(root_id, e.last_attempt.attempt_number, failure_reason(last)) from last

        if not isinstance(root, THREAD_ROOT_TYPES):
            raise UnsupportedRootType(root_id, type_name(root))
        return root  # type: ignore[return-value]

    async def assemble(self, root_id: int, cancel: Optional[CancelToken] = None) -> Thread:
        """Fetch ``root_id`` and every comment beneath it, then link the tree.

        Raises AssembleError wrapping the underlying ThreadError.
        """
        try:
            root = await self._fetch_root(root_id, cancel)
            kids = root.kids or []
            comments = await self.orchestrator.fetch_all(kids, cancel)
            forest, leftovers = build_parent_link_forest(kids, comments, root.id)

            orphans: list[int] = []
            if leftovers:
                if not self.allow_orphans:
                    raise OrphanedComments(list(leftovers))
                orphans = sorted(leftovers)
                logger.warning("assemble.orphans_allowed", root_id=root_id, orphans=orphans)
        except ThreadError as e:
            raise AssembleError(e) from e

        thread = Thread(root=root, comments=forest, orphans=orphans)
        logger.info("assemble.complete", root_id=root_id, comments=thread.count())
        return thread

    def assemble_from_records(
        self,
        root: ThreadRoot,
        records: Iterable[FlatCommentRecord],
        step: int = INDENT_STEP,
    ) -> Thread:
        """Build a Thread from scraped records using their indentation."""
        try:
            forest = build_indent_forest(records, step)
        except ThreadError as e:
            raise AssembleError(e) from e
        return Thread(root=root, comments=forest)

    async def assemble_from_page(self, page_client: HNPageClient, root_id: int) -> Thread:
        try:
            story, records = await page_client.fetch_page(root_id)
        except ThreadError as e:
            raise AssembleError(e) from e

        thread = self.assemble_from_records(story, records, page_client.step)
        # The page never lists kids, so recover them from the forest
        thread.root = dataclasses.replace(
            story,
            kids=[node.id for node in thread.comments],
            descendants=len(records),
        )
        return thread

    async def lazy_thread(
        self, root_id: int, cancel: Optional[CancelToken] = None
    ) -> LazyThread:
        """Fetch only the root; comments come later from ``LazyThread.walk``."""
        try:
            root = await self._fetch_root(root_id, cancel)
        except ThreadError as e:
            raise AssembleError(e) from e
        return LazyThread(root, self.orchestrator)


