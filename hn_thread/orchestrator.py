"""Concurrent traversal of an id graph through an ItemSource.

Two modes share one scheduling loop:

* ``fetch_all`` resolves the whole descendant closure of a set of ids and
  returns a flat ``{id -> Comment}`` map for a tree builder to drain.
* ``unfold`` yields one depth-annotated ``CommentNode`` per comment as soon
  as its fetch completes, for callers that render incrementally.

Completions are processed one at a time by a single consumer, so the
accumulators need no locking. Arrival order is completion order; only
depths (and the builders' id-driven lookups) reflect structure.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing
from dataclasses import dataclass
from typing import Optional, Union

from hn_thread.client import ItemSource
from hn_thread.constants import CANCEL_POLL_INTERVAL, EXTERNAL_REQUEST_SEMAPHORE
from hn_thread.errors import (
    Cancelled,
    FetchFailed,
    ThreadError,
    UnexpectedItemType,
    failure_reason,
)
from hn_thread.logging_config import get_logger
from hn_thread.models import Comment, CommentNode, Item, type_name
from hn_thread.retry import CancelToken, RetryPolicy

logger = get_logger(__name__)


@dataclass
class _Outcome:
    item_id: int
    depth: int
    item: Optional[Item] = None
    error: Optional[ThreadError] = None
    final: bool = False  # No further retries will follow this error


class FetchOrchestrator:
    def __init__(
        self,
        source: ItemSource,
        max_concurrency: int = EXTERNAL_REQUEST_SEMAPHORE,
        retry: Optional[RetryPolicy] = None,
        poll_interval: float = CANCEL_POLL_INTERVAL,
    ) -> None:
        self.source = source
        self.max_concurrency = max(1, max_concurrency)
        self.retry = retry or RetryPolicy()
        self.poll_interval = poll_interval

    async def _fetch(self, sem: asyncio.Semaphore, item_id: int, attempt: int) -> Item:
        delay = self.retry.delay(attempt)
        if delay:
            await asyncio.sleep(delay)
        async with sem:
            return await self.source.item(item_id)

    def _wait_timeout(self, cancel: Optional[CancelToken]) -> Optional[float]:
        if cancel is None:
            return None
        remaining = cancel.remaining()
        if remaining is None:
            return self.poll_interval
        return min(self.poll_interval, remaining)

    async def _traverse(
        self,
        seeds: Iterable[tuple[int, int]],
        cancel: Optional[CancelToken],
    ) -> AsyncIterator[_Outcome]:
        sem = asyncio.Semaphore(self.max_concurrency)
        queue: deque[tuple[int, int]] = deque()
        seen: set[int] = set()
        attempts: dict[int, int] = {}
        in_flight: dict[asyncio.Task[Item], tuple[int, int]] = {}

        def enqueue(item_id: int, depth: int) -> None:
            if item_id in seen:
                logger.warning("fetch.duplicate_id", item_id=item_id)
                return
            seen.add(item_id)
            queue.append((item_id, depth))

        for item_id, depth in seeds:
            enqueue(item_id, depth)

        try:
            while queue or in_flight:
                if cancel is not None and cancel.cancelled:
                    raise Cancelled(partial={})

                while queue:
                    item_id, depth = queue.popleft()
                    attempts[item_id] = attempts.get(item_id, 0) + 1
                    logger.debug("fetch.start", item_id=item_id, attempt=attempts[item_id])
                    task = asyncio.create_task(self._fetch(sem, item_id, attempts[item_id]))
                    in_flight[task] = (item_id, depth)

                done, _ = await asyncio.wait(
                    in_flight,
                    timeout=self._wait_timeout(cancel),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done:
                    item_id, depth = in_flight.pop(task)
                    exc = task.exception()

                    if exc is None:
                        item = task.result()
                        if isinstance(item, Comment):
                            for kid in item.kids or []:
                                enqueue(kid, depth + 1)
                        yield _Outcome(item_id, depth, item=item)
                    elif isinstance(exc, UnexpectedItemType):
                        yield _Outcome(item_id, depth, error=exc, final=True)
                    else:
                        n = attempts[item_id]
                        final = self.retry.exhausted(n)
                        if not final:
                            queue.append((item_id, depth))
                        yield _Outcome(item_id, depth, error=FetchFailed(item_id, n, failure_reason(exc)), final=final)
        finally:
            for task in in_flight:
                task.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)

    async def fetch_all(
        self,
        root_kids: Iterable[int],
        cancel: Optional[CancelToken] = None,
    ) -> dict[int, Comment]:
        """Resolve every comment reachable from ``root_kids``.

        Failed fetches are requeued until the retry policy gives up, at which
        point FetchFailed propagates. Ids that resolve to something other than
        a comment are logged and dropped along with their subtree. A tripped
        cancel token raises Cancelled carrying the comments gathered so far.
        """
        comments: dict[int, Comment] = {}
        seeds = [(kid, 0) for kid in root_kids]
        try:
            async with aclosing(self._traverse(seeds, cancel)) as outcomes:
                async for outcome in outcomes:
                    if outcome.error is not None:
                        if isinstance(outcome.error, UnexpectedItemType):
                            logger.warning(
                                "fetch.discard_non_comment",
                                item_id=outcome.item_id,
                                actual=outcome.error.actual,
                            )
                        elif outcome.final:
                            logger.error("fetch.give_up", item_id=outcome.item_id, error=str(outcome.error))
                            raise outcome.error
                        else:
                            logger.warning("fetch.requeue", item_id=outcome.item_id, error=str(outcome.error))
                        continue

                    item = outcome.item
                    if not isinstance(item, Comment):
                        logger.warning(
                            "fetch.discard_non_comment",
                            item_id=outcome.item_id,
                            actual=type_name(item),
                        )
                        continue
                    comments[outcome.item_id] = item
        except Cancelled:
            logger.warning("fetch.cancelled", fetched=len(comments))
            raise Cancelled(partial=comments) from None

        logger.debug("fetch.complete", fetched=len(comments))
        return comments

    async def unfold(
        self,
        root_kids: Iterable[int],
        cancel: Optional[CancelToken] = None,
        cache: Optional[dict[int, CommentNode]] = None,
    ) -> AsyncIterator[tuple[int, Union[CommentNode, ThreadError]]]:
        """Yield ``(id, node)`` per comment in completion order.

        Nodes come without children; ``node.depth`` is the structural depth
        (root kids are 0). Failures are yielded as ``(id, error)`` rather than
        raised: a FetchFailed is followed by a retry unless the policy is
        exhausted, an UnexpectedItemType drops that id. Every yielded node is
        also stored in ``cache``.
        """
        nodes: dict[int, CommentNode] = cache if cache is not None else {}
        seeds = [(kid, 0) for kid in root_kids]
        try:
            async with aclosing(self._traverse(seeds, cancel)) as outcomes:
                async for outcome in outcomes:
                    if outcome.error is not None:
                        yield outcome.item_id, outcome.error
                        continue

                    item = outcome.item
                    if not isinstance(item, Comment):
                        yield outcome.item_id, UnexpectedItemType(outcome.item_id, type_name(item))
                        continue

                    node = CommentNode(outcome.depth, item)
                    nodes[outcome.item_id] = node
                    yield outcome.item_id, node
        except Cancelled:
            raise Cancelled(partial=nodes) from None
