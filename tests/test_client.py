import httpx
import pytest
import respx
from tenacity import wait_none

from hn_thread.client import FirebaseClient
from hn_thread.errors import FetchFailed, UnexpectedItemType
from hn_thread.models import Comment, Story

API = "https://hacker-news.firebaseio.com/v0"


def make_client(**kwargs) -> FirebaseClient:
    return FirebaseClient(retry_wait=wait_none(), **kwargs)


@pytest.mark.asyncio
@respx.mock
async def test_item_parses_story():
    respx.get(f"{API}/item/8863.json").mock(
        return_value=httpx.Response(
            200,
            json={"id": 8863, "type": "story", "by": "dhouston", "title": "My YC app", "kids": [9224, 8917], "score": 104},
        )
    )
    async with make_client() as client:
        item = await client.item(8863)

    assert isinstance(item, Story)
    assert item.kids == [9224, 8917]
    assert item.by == "dhouston"


@pytest.mark.asyncio
@respx.mock
async def test_item_parses_comment():
    respx.get(f"{API}/item/2921983.json").mock(
        return_value=httpx.Response(200, json={"id": 2921983, "type": "comment", "parent": 2921506, "text": "Aw shucks"})
    )
    async with make_client() as client:
        item = await client.item(2921983)
    assert isinstance(item, Comment)
    assert item.parent == 2921506


@pytest.mark.asyncio
@respx.mock
async def test_item_null_payload():
    respx.get(f"{API}/item/1.json").mock(return_value=httpx.Response(200, content=b"null"))
    async with make_client() as client:
        with pytest.raises(FetchFailed, match="not found"):
            await client.item(1)


@pytest.mark.asyncio
@respx.mock
async def test_item_not_found_status_not_retried():
    route = respx.get(f"{API}/item/1.json").mock(return_value=httpx.Response(404))
    async with make_client() as client:
        with pytest.raises(FetchFailed):
            await client.item(1)
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_item_retries_transient_status():
    route = respx.get(f"{API}/item/1.json")
    route.side_effect = [
        httpx.Response(503),
        httpx.Response(429),
        httpx.Response(200, json={"id": 1, "type": "story"}),
    ]
    async with make_client(retry_attempts=3) as client:
        item = await client.item(1)
    assert item.id == 1
    assert route.call_count == 3


@pytest.mark.asyncio
@respx.mock
async def test_item_transport_error_surfaces_as_fetch_failed():
    route = respx.get(f"{API}/item/1.json").mock(side_effect=httpx.ConnectError("boom"))
    async with make_client(retry_attempts=2) as client:
        with pytest.raises(FetchFailed) as exc:
            await client.item(1)
    assert "ConnectError" in exc.value.reason
    assert route.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_item_invalid_json():
    respx.get(f"{API}/item/1.json").mock(return_value=httpx.Response(200, content=b"{not json"))
    async with make_client() as client:
        with pytest.raises(FetchFailed):
            await client.item(1)


@pytest.mark.asyncio
@respx.mock
async def test_item_unknown_type():
    respx.get(f"{API}/item/1.json").mock(return_value=httpx.Response(200, json={"id": 1, "type": "weird"}))
    async with make_client() as client:
        with pytest.raises(UnexpectedItemType):
            await client.item(1)


@pytest.mark.asyncio
@respx.mock
async def test_items_preserves_order():
    for i in (3, 1, 2):
        respx.get(f"{API}/item/{i}.json").mock(
            return_value=httpx.Response(200, json={"id": i, "type": "story", "title": f"s{i}"})
        )
    async with make_client() as client:
        items = await client.items([3, 1, 2])
    assert [i.id for i in items] == [3, 1, 2]


@pytest.mark.asyncio
@respx.mock
async def test_stories_and_max_item():
    respx.get(f"{API}/topstories.json").mock(return_value=httpx.Response(200, json=[5, 4, 3]))
    respx.get(f"{API}/maxitem.json").mock(return_value=httpx.Response(200, json=42))
    async with make_client() as client:
        assert await client.stories("top") == [5, 4, 3]
        assert await client.max_item() == 42


@pytest.mark.asyncio
async def test_stories_rejects_unknown_kind():
    async with make_client() as client:
        with pytest.raises(ValueError):
            await client.stories("worst")


@pytest.mark.asyncio
@respx.mock
async def test_stories_failure_returns_empty():
    respx.get(f"{API}/newstories.json").mock(return_value=httpx.Response(500))
    async with make_client(retry_attempts=1) as client:
        assert await client.stories("new") == []


@pytest.mark.asyncio
@respx.mock
async def test_user():
    respx.get(f"{API}/user/pg.json").mock(
        return_value=httpx.Response(200, json={"id": "pg", "karma": 155000, "created": 1160418092})
    )
    respx.get(f"{API}/user/nobody.json").mock(return_value=httpx.Response(200, content=b"null"))
    async with make_client() as client:
        user = await client.user("pg")
        assert user is not None and user.karma == 155000
        assert await client.user("nobody") is None
