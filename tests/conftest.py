import asyncio
from collections import Counter
from typing import Optional

import pytest

from hn_thread.errors import FetchFailed
from hn_thread.models import Item, item_from_dict


class StubItemSource:
    """In-memory ItemSource with scripted failures and completion delays."""

    def __init__(
        self,
        items: dict[int, dict],
        failures: Optional[dict[int, int]] = None,
        delays: Optional[dict[int, float]] = None,
    ):
        self.store = items
        self.failures = dict(failures or {})  # id -> failures left before success
        self.delays = delays or {}
        self.calls: Counter = Counter()

    async def item(self, item_id: int) -> Item:
        self.calls[item_id] += 1
        delay = self.delays.get(item_id, 0)
        if delay:
            await asyncio.sleep(delay)
        if self.failures.get(item_id, 0) > 0:
            self.failures[item_id] -= 1
            raise FetchFailed(item_id, reason="scripted failure")
        if item_id not in self.store:
            raise FetchFailed(item_id, reason="item not found")
        return item_from_dict(self.store[item_id])


def story(item_id: int, kids: list[int], title: str = "A story") -> dict:
    return {"id": item_id, "type": "story", "title": title, "by": "op", "kids": kids, "score": 10}


def comment(item_id: int, parent: int, kids: Optional[list[int]] = None) -> dict:
    d = {"id": item_id, "type": "comment", "parent": parent, "by": f"user{item_id}", "text": f"comment {item_id}"}
    if kids:
        d["kids"] = kids
    return d


@pytest.fixture
def thread_items() -> dict[int, dict]:
    """Story 1 with replies 2 (-> 3, 4) and 5 (-> 6)."""
    return {
        1: story(1, [2, 5]),
        2: comment(2, 1, [3, 4]),
        3: comment(3, 2),
        4: comment(4, 2),
        5: comment(5, 1, [6]),
        6: comment(6, 5),
    }


@pytest.fixture
def make_source():
    def _make(items, failures=None, delays=None) -> StubItemSource:
        return StubItemSource(items, failures=failures, delays=delays)

    return _make
