from __future__ import annotations
import html
import logging
import re
from datetime import datetime, timezone
from typing import Optional
import httpx
from bs4 import BeautifulSoup
from bs4.element import NavigableString, Tag

from hn_thread.constants import (
    HN_USER_AGENT,
    HN_WEB_BASE,
    HTTP_CONNECT_TIMEOUT,
    HTTP_TIMEOUT,
    INDENT_STEP,
)
from hn_thread.errors import FetchFailed, ParseError, UnsupportedRootType
from hn_thread.models import FlatCommentRecord, Story

logger = logging.getLogger(__name__)

_DEAD_MARKERS = ("[dead]", "[flagged]")


def _row_id(row: Tag) -> int:
    raw = row.get("id")
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    if not isinstance(raw, str) or not raw.isdigit():
        raise ParseError(f"Comment row without a numeric id: {str(row)[:120]!r}")
    return int(raw)


def _parse_indent(row: Tag, cid: int, step: int) -> int:
    """Indent width in pixels.

    Older pages size a spacer image (``td.ind img[width]``); current pages
    put the nesting level in ``td.ind[indent]``.
    """
    ind = row.find("td", class_="ind")
    if not isinstance(ind, Tag):
        raise ParseError(f"Failed to find indent node under comment id = {cid}")

    img = ind.find("img")
    if isinstance(img, Tag):
        width = img.get("width")
        if isinstance(width, str) and width.isdigit():
            return int(width)

    level = ind.get("indent")
    if isinstance(level, str) and level.isdigit():
        return int(level) * step

    raise ParseError(f"Failed to extract indent width from comment id = {cid}")


def _comment_text(node: Tag) -> str:
    # Leading text sits directly in the node; each further paragraph is a <p>
    head: list[str] = []
    paragraphs: list[str] = []
    for child in node.children:
        if isinstance(child, Tag):
            if child.name == "p":
                paragraphs.append(child.get_text())
            elif "reply" in (child.get("class") or []):
                continue
            else:
                head.append(child.get_text())
        elif isinstance(child, NavigableString):
            head.append(str(child))

    blocks = ["".join(head).strip()] + [p.strip() for p in paragraphs]
    return html.unescape("\n".join(b for b in blocks if b))


def parse_comment_records(
    page: str, step: int = INDENT_STEP
) -> list[FlatCommentRecord]:
    """Extract comments from an item page in document (display) order."""
    soup = BeautifulSoup(page, "html.parser")
    tree = soup.find("table", class_="comment-tree")
    if not isinstance(tree, Tag):
        # No comment table: the item has no replies
        return []

    records: list[FlatCommentRecord] = []
    for row in tree.select("tr.athing.comtr"):
        cid = _row_id(row)
        indent = _parse_indent(row, cid, step)

        user_tag = row.find("a", class_="hnuser")
        user = user_tag.get_text(strip=True) if isinstance(user_tag, Tag) else ""

        text_tag = row.find(class_="commtext")
        if isinstance(text_tag, Tag):
            text = _comment_text(text_tag)
        else:
            # Deleted comments keep their row but lose the text node
            comment_div = row.find("div", class_="comment")
            text = comment_div.get_text(" ", strip=True) if isinstance(comment_div, Tag) else ""

        comhead = row.find("span", class_="comhead")
        head_text = comhead.get_text(" ", strip=True) if isinstance(comhead, Tag) else ""
        dead = any(marker in head_text for marker in _DEAD_MARKERS)

        records.append(
            FlatCommentRecord(id=cid, user=user, text=text, indent_level=indent, dead=dead)
        )

    logger.debug(f"Parsed {len(records)} comment records")
    return records


def _parse_age(title: Optional[str]) -> int:
    # e.g. "2024-05-01T12:00:00 1714564800"; older pages carry only the ISO part
    if not title:
        return 0
    parts = title.split()
    if len(parts) > 1 and parts[-1].isdigit():
        return int(parts[-1])
    try:
        dt = datetime.fromisoformat(parts[0].replace("Z", "+00:00"))
    except ValueError:
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def parse_root_story(page: str, root_id: int) -> Story:
    """Extract the thread's root post from the ``fatitem`` header of a page."""
    soup = BeautifulSoup(page, "html.parser")
    fatitem = soup.find("table", class_="fatitem")
    if not isinstance(fatitem, Tag):
        raise ParseError(f"Item page for {root_id} has no fatitem header")

    row = fatitem.find("tr", class_="athing")
    if isinstance(row, Tag) and "comtr" in (row.get("class") or []):
        raise UnsupportedRootType(root_id, "comment")

    titleline = fatitem.find("span", class_="titleline")
    if not isinstance(titleline, Tag):
        raise ParseError(f"Item page for {root_id} has no title")
    link = titleline.find("a")
    title = link.get_text() if isinstance(link, Tag) else titleline.get_text()

    url: Optional[str] = None
    if isinstance(link, Tag):
        href = link.get("href")
        if isinstance(href, str) and not href.startswith("item?id="):
            url = href

    score: Optional[int] = None
    score_tag = fatitem.find("span", class_="score")
    if isinstance(score_tag, Tag):
        m = re.match(r"(\d+)", score_tag.get_text(strip=True))
        if m:
            score = int(m.group(1))

    user_tag = fatitem.find("a", class_="hnuser")
    by = user_tag.get_text(strip=True) if isinstance(user_tag, Tag) else None

    age = fatitem.find("span", class_="age")
    age_title = age.get("title") if isinstance(age, Tag) else None

    toptext = fatitem.find("div", class_="toptext")
    text = _comment_text(toptext) if isinstance(toptext, Tag) else None

    return Story(
        id=root_id,
        by=by,
        time=_parse_age(age_title if isinstance(age_title, str) else None),
        text=text or None,
        title=html.unescape(title),
        url=url,
        score=score,
    )


class HNPageClient:
    """Fetches rendered item pages from news.ycombinator.com."""

    BASE_URL: str = HN_WEB_BASE

    def __init__(
        self,
        timeout: float = HTTP_TIMEOUT,
        step: int = INDENT_STEP,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            follow_redirects=True,
            headers={"User-Agent": HN_USER_AGENT},
            timeout=httpx.Timeout(timeout, connect=HTTP_CONNECT_TIMEOUT),
        )
        self.step = step

    async def fetch_html(self, item_id: int) -> str:
        try:
            resp: httpx.Response = await self.client.get("/item", params={"id": item_id})
        except httpx.HTTPError as e:
            raise FetchFailed(item_id, reason=f"{type(e).__name__}: {e}") from e
        if resp.status_code != 200:
            logger.error(f"Received {resp.status_code} for item page {item_id}")
            raise FetchFailed(item_id, reason=f"HTTP {resp.status_code}")
        return resp.text

    async def fetch_page(self, item_id: int) -> tuple[Story, list[FlatCommentRecord]]:
        page = await self.fetch_html(item_id)
        return parse_root_story(page, item_id), parse_comment_records(page, self.step)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> HNPageClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
