"""Turn threads and comment nodes into rich renderables and text lines."""

from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Optional, Union

from bs4 import BeautifulSoup
from rich.markup import escape
from rich.tree import Tree

from hn_thread.constants import HN_WEB_BASE
from hn_thread.models import Comment, CommentNode, FlatCommentRecord, Thread, ThreadRoot

SNIPPET_LENGTH = 200


def plain_text(txt: Optional[str]) -> str:
    """Strip the HTML the API puts in ``text`` fields; paragraphs become newlines."""
    if not txt:
        return ""
    # API text opens paragraphs with bare <p> tags that are never closed
    clean = BeautifulSoup(txt.replace("<p>", "\n"), "html.parser").get_text()
    return html.unescape(clean).strip()


def _author(comment: Union[Comment, FlatCommentRecord]) -> str:
    if isinstance(comment, FlatCommentRecord):
        return comment.user
    return comment.by or ""


def _body(comment: Union[Comment, FlatCommentRecord]) -> str:
    if isinstance(comment, FlatCommentRecord):
        return comment.text
    return plain_text(comment.text)


def _is_removed(comment: Union[Comment, FlatCommentRecord]) -> tuple[bool, bool]:
    if isinstance(comment, FlatCommentRecord):
        return (not comment.user, comment.dead)
    return (comment.deleted, comment.dead)


def snippet(text: str, limit: int = SNIPPET_LENGTH) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3].rstrip() + "..."


def comment_label(node: CommentNode, full: bool = False) -> str:
    """Rich markup for one comment: author, id and text."""
    comment = node.comment
    deleted, dead = _is_removed(comment)
    if deleted:
        return f"[dim]\\[deleted] #{node.id}[/dim]"

    body = _body(comment)
    body = body if full else snippet(body)
    author = escape(_author(comment)) or "?"
    flag = " [red]\\[dead][/red]" if dead else ""
    return f"[bold cyan]{author}[/bold cyan] [dim]#{node.id}[/dim]{flag} {escape(body)}"


def stream_line(node: CommentNode, indent: str = "  ") -> str:
    """One line per comment, indented by depth, for incremental output."""
    return f"{indent * node.depth}{comment_label(node)}"


def root_label(root: ThreadRoot) -> str:
    title = escape(getattr(root, "title", None) or "Untitled")
    parts = [f"[bold]{title}[/bold]"]
    score = getattr(root, "score", None)
    if score is not None:
        parts.append(f"[dim]({score} points)[/dim]")
    if root.by:
        parts.append(f"[dim]by {escape(root.by)}[/dim]")
    if root.time:
        when = datetime.fromtimestamp(root.time, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        parts.append(f"[dim]{when} UTC[/dim]")
    return " ".join(parts)


def discussion_url(item_id: int) -> str:
    return f"{HN_WEB_BASE}/item?id={item_id}"


def render_thread(thread: Thread, full: bool = False) -> Tree:
    """Build a rich Tree mirroring the thread's comment forest."""
    tree = Tree(root_label(thread.root), guide_style="dim")
    url = getattr(thread.root, "url", None)
    if url:
        tree.add(f"[dim cyan]Article:[/] {escape(url)}")

    # Explicit stack of (rich parent, node) so deep threads don't recurse
    stack: list[tuple[Tree, CommentNode]] = [(tree, n) for n in reversed(thread.comments)]
    while stack:
        parent, node = stack.pop()
        branch = parent.add(comment_label(node, full))
        stack.extend((branch, child) for child in reversed(node.children))

    if thread.orphans:
        tree.add(f"[yellow]{len(thread.orphans)} orphaned comment(s) omitted[/yellow]")
    return tree
