from __future__ import annotations
import asyncio
import logging
from typing import Optional, Protocol, cast
import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from hn_thread.constants import (
    FIREBASE_API_BASE,
    HN_USER_AGENT,
    HTTP_CONNECT_TIMEOUT,
    HTTP_RETRY_ATTEMPTS,
    HTTP_RETRY_BACKOFF_BASE,
    HTTP_RETRY_BACKOFF_MAX,
    HTTP_RETRYABLE_STATUS,
    HTTP_TIMEOUT,
    LISTING_FETCH_LIMIT,
    STORY_KINDS,
)
from hn_thread.errors import FetchFailed
from hn_thread.models import Item, User, item_from_dict

logger = logging.getLogger(__name__)


class ItemSource(Protocol):
    """Anything that can resolve an item id, possibly concurrently."""

    async def item(self, item_id: int) -> Item: ...


class RequestError(RuntimeError):
    """Raised for a non-200 response that retrying won't fix."""


class RetryableRequestError(RequestError):
    """Raised for transport errors and 429/5xx responses."""


class FirebaseClient:
    """Client for the official Hacker News Firebase API."""

    BASE_URL: str = FIREBASE_API_BASE

    def __init__(
        self,
        timeout: float = HTTP_TIMEOUT,
        retry_attempts: int = HTTP_RETRY_ATTEMPTS,
        retry_wait: Optional[wait_base] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            follow_redirects=True,
            headers={"User-Agent": HN_USER_AGENT},
            timeout=httpx.Timeout(timeout, connect=HTTP_CONNECT_TIMEOUT),
        )
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait: wait_base = retry_wait or wait_random_exponential(
            min=HTTP_RETRY_BACKOFF_BASE, max=HTTP_RETRY_BACKOFF_MAX
        )

    async def _get_json(self, path: str) -> object:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            retry=retry_if_exception_type(RetryableRequestError),
            wait=self.retry_wait,
            reraise=True,
        ):
            with attempt:
                try:
                    resp: httpx.Response = await self.client.get(path)
                except httpx.HTTPError as e:
                    raise RetryableRequestError(f"{type(e).__name__}: {e}") from e

                if resp.status_code in HTTP_RETRYABLE_STATUS:
                    raise RetryableRequestError(f"HTTP {resp.status_code} for {path}")
                if resp.status_code != 200:
                    raise RequestError(f"HTTP {resp.status_code} for {path}")
                return resp.json()
        raise RequestError(f"No attempt made for {path}")  # pragma: no cover

    async def item(self, item_id: int) -> Item:
        """Retrieve one item; raises FetchFailed on any transport problem."""
        try:
            data = await self._get_json(f"/item/{item_id}.json")
        except (RequestError, ValueError) as e:
            logger.debug(f"Failed to fetch item {item_id}: {e}")
            raise FetchFailed(item_id, reason=str(e)) from e

        # Firebase answers null for ids it doesn't (yet) know about
        if data is None:
            raise FetchFailed(item_id, reason="item not found")
        return item_from_dict(data)

    async def items(self, ids: list[int]) -> list[Item]:
        """Fetch several items concurrently, preserving the order of ``ids``."""
        sem = asyncio.Semaphore(LISTING_FETCH_LIMIT)

        async def _one(item_id: int) -> Item:
            async with sem:
                return await self.item(item_id)

        return list(await asyncio.gather(*(_one(i) for i in ids)))

    async def max_item(self) -> int:
        try:
            data = await self._get_json("/maxitem.json")
        except (RequestError, ValueError) as e:
            raise FetchFailed(0, reason=str(e)) from e
        return int(cast(int, data))

    async def stories(self, kind: str = "top") -> list[int]:
        """Ids of the ``top``/``new``/``best``/``ask``/``show``/``job`` listing."""
        if kind not in STORY_KINDS:
            raise ValueError(f"Unknown story listing {kind!r}; expected one of {STORY_KINDS}")
        try:
            data = await self._get_json(f"/{kind}stories.json")
        except (RequestError, ValueError) as e:
            logger.warning(f"Failed to fetch {kind} stories: {e}")
            return []
        if not isinstance(data, list):
            return []
        return [int(i) for i in data if isinstance(i, int)]

    async def user(self, username: str) -> Optional[User]:
        try:
            data = await self._get_json(f"/user/{username}.json")
        except (RequestError, ValueError) as e:
            logger.warning(f"Failed to fetch user {username}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return User.from_dict(data)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> FirebaseClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
