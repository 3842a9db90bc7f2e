import httpx
import pytest
import respx

from hn_thread.errors import FetchFailed, ParseError, UnsupportedRootType
from hn_thread.scrape import HNPageClient, parse_comment_records, parse_root_story
from hn_thread.trees import build_indent_forest


def row(cid, indent_html, user="alice", body="<div class='commtext c00'>Hello</div>", head_extra=""):
    user_html = f'<a href="user?id={user}" class="hnuser">{user}</a>' if user else ""
    return f"""
    <tr class="athing comtr" id="{cid}"><td><table border="0"><tr>
      {indent_html}
      <td valign="top" class="votelinks"></td>
      <td class="default">
        <div><span class="comhead">{user_html} <span class="age" title="2024-05-01T12:00:00 1714564800"><a href="item?id={cid}">1 hour ago</a></span>{head_extra}</span></div>
        <div class="comment">{body}</div>
      </td>
    </tr></table></td></tr>
    """


def page(rows: str, fatitem: str = "") -> str:
    return f"""
    <html><body><center><table id="hnmain">
    {fatitem}
    <tr><td><table border="0" class="comment-tree">{rows}</table></td></tr>
    </table></center></body></html>
    """


FATITEM = """
<table class="fatitem" border="0">
  <tr class="athing submission" id="100">
    <td class="title"><span class="titleline"><a href="https://example.com/post">Show HN: A &amp; B</a>
      <span class="sitebit comhead"> (<a href="from?site=example.com"><span class="sitestr">example.com</span></a>)</span></span></td>
  </tr>
  <tr><td colspan="2"></td><td class="subtext"><span class="subline">
    <span class="score" id="score_100">123 points</span> by <a href="user?id=founder" class="hnuser">founder</a>
    <span class="age" title="2024-05-01T10:00:00 1714557600"><a href="item?id=100">3 hours ago</a></span>
  </span></td></tr>
</table>
"""


def test_parse_records_img_width_indent():
    html = page(
        row(1, '<td class="ind"><img src="s.gif" height="1" width="0"></td>')
        + row(2, '<td class="ind"><img src="s.gif" height="1" width="40"></td>', user="bob")
        + row(3, '<td class="ind"><img src="s.gif" height="1" width="80"></td>')
    )
    records = parse_comment_records(html)

    assert [(r.id, r.indent_level) for r in records] == [(1, 0), (2, 40), (3, 80)]
    assert records[1].user == "bob"
    assert records[0].text == "Hello"


def test_parse_records_indent_attribute():
    html = page(
        row(1, '<td class="ind" indent="0"><img src="s.gif" height="1"></td>')
        + row(2, '<td class="ind" indent="1"></td>')
        + row(3, '<td class="ind" indent="2"></td>')
        + row(4, '<td class="ind" indent="1"></td>')
    )
    records = parse_comment_records(html)

    assert [r.indent_level for r in records] == [0, 40, 80, 40]
    forest = build_indent_forest(records)
    assert [(n.id, n.depth) for n in forest[0].walk()] == [(1, 0), (2, 1), (3, 2), (4, 1)]


def test_parse_records_paragraphs_and_entities():
    body = "<div class='commtext c00'>First &amp; foremost<p>Second <i>para</i></p><p>Third</p></div>"
    records = parse_comment_records(page(row(1, '<td class="ind" indent="0"></td>', body=body)))
    assert records[0].text == "First & foremost\nSecond para\nThird"


def test_parse_records_deleted_and_dead():
    html = page(
        row(1, '<td class="ind" indent="0"></td>', user="", body="[deleted]")
        + row(2, '<td class="ind" indent="0"></td>', head_extra=" [dead]")
    )
    deleted, dead = parse_comment_records(html)

    assert deleted.user == ""
    assert deleted.text == "[deleted]"
    assert not deleted.dead
    assert dead.dead


def test_parse_records_no_comment_tree():
    assert parse_comment_records("<html><body><table class='fatitem'></table></body></html>") == []


def test_parse_records_missing_indent():
    with pytest.raises(ParseError):
        parse_comment_records(page(row(1, '<td class="other"></td>')))


def test_parse_records_missing_id():
    html = page('<tr class="athing comtr"><td class="ind" indent="0"></td></tr>')
    with pytest.raises(ParseError):
        parse_comment_records(html)


def test_parse_root_story():
    s = parse_root_story(page("", FATITEM), 100)

    assert s.id == 100
    assert s.title == "Show HN: A & B"
    assert s.url == "https://example.com/post"
    assert s.score == 123
    assert s.by == "founder"
    assert s.time == 1714557600


def test_parse_root_story_ask_hn_has_no_url():
    fatitem = FATITEM.replace("https://example.com/post", "item?id=100")
    assert parse_root_story(page("", fatitem), 100).url is None


def test_parse_root_story_comment_page():
    fatitem = '<table class="fatitem"><tr class="athing comtr" id="5"><td></td></tr></table>'
    with pytest.raises(UnsupportedRootType):
        parse_root_story(page("", fatitem), 5)


def test_parse_root_story_missing_header():
    with pytest.raises(ParseError):
        parse_root_story("<html></html>", 1)


@pytest.mark.asyncio
@respx.mock
async def test_fetch_page():
    html = page(
        row(101, '<td class="ind" indent="0"></td>') + row(102, '<td class="ind" indent="1"></td>'),
        FATITEM,
    )
    route = respx.get("https://news.ycombinator.com/item", params={"id": "100"}).mock(
        return_value=httpx.Response(200, text=html)
    )
    async with HNPageClient() as client:
        root, records = await client.fetch_page(100)

    assert route.called
    assert root.title == "Show HN: A & B"
    assert [r.id for r in records] == [101, 102]


@pytest.mark.asyncio
@respx.mock
async def test_fetch_page_error_status():
    respx.get("https://news.ycombinator.com/item").mock(return_value=httpx.Response(503))
    async with HNPageClient() as client:
        with pytest.raises(FetchFailed):
            await client.fetch_page(100)
