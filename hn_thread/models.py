"""Typed data models for HN items and assembled comment threads."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, Optional, TypedDict, Union

from hn_thread.errors import UnexpectedItemType


@dataclass(frozen=True)
class BaseItem:
    """Fields shared by every item variant of the HN store."""

    type: ClassVar[str] = ""

    id: int
    time: int = 0
    by: Optional[str] = None
    deleted: bool = False
    dead: bool = False
    kids: Optional[list[int]] = None  # Ranked display order
    text: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        """Create an item from an API payload, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        values = {k: v for k, v in d.items() if k in names}
        # The API omits false flags entirely but may send explicit nulls
        for flag in ("deleted", "dead"):
            values[flag] = bool(values.get(flag) or False)
        if values.get("kids") is not None:
            values["kids"] = [int(k) for k in values["kids"]]
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the API shape, including the type tag."""
        d = asdict(self)
        d["type"] = self.type
        return d


@dataclass(frozen=True)
class Job(BaseItem):
    type: ClassVar[str] = "job"

    title: str = ""
    url: Optional[str] = None


@dataclass(frozen=True)
class Story(BaseItem):
    type: ClassVar[str] = "story"

    title: Optional[str] = None
    url: Optional[str] = None
    score: Optional[int] = None
    descendants: Optional[int] = None


@dataclass(frozen=True)
class Comment(BaseItem):
    type: ClassVar[str] = "comment"

    parent: Optional[int] = None


@dataclass(frozen=True)
class Poll(BaseItem):
    type: ClassVar[str] = "poll"

    title: Optional[str] = None
    score: Optional[int] = None
    descendants: Optional[int] = None
    parts: Optional[list[int]] = None


@dataclass(frozen=True)
class PollOption(BaseItem):
    type: ClassVar[str] = "pollopt"

    parent: Optional[int] = None
    poll: Optional[int] = None
    score: Optional[int] = None


Item = Union[Job, Story, Comment, Poll, PollOption]
ThreadRoot = Union[Story, Poll, Job]

ITEM_TYPES: dict[str, type[BaseItem]] = {
    cls.type: cls for cls in (Job, Story, Comment, Poll, PollOption)
}
THREAD_ROOT_TYPES: tuple[type[BaseItem], ...] = (Story, Poll, Job)


def item_from_dict(d: object) -> Item:
    """Build the item variant named by the payload's ``type`` tag."""
    if not isinstance(d, dict):
        raise UnexpectedItemType(None, type(d).__name__)
    tag = d.get("type")
    cls = ITEM_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise UnexpectedItemType(d.get("id"), str(tag))
    # A payload that won't decode now won't decode on a retry either
    try:
        return cls.from_dict(d)
    except (TypeError, ValueError) as e:
        raise UnexpectedItemType(d.get("id"), f"malformed {tag}") from e


@dataclass(frozen=True)
class User:
    """A Hacker News user profile."""

    id: str
    created: int = 0
    karma: int = 0
    about: Optional[str] = None
    delay: Optional[int] = None
    submitted: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> User:
        return cls(
            id=str(d.get("id", "")),
            created=int(d.get("created", 0) or 0),
            karma=int(d.get("karma", 0) or 0),
            about=d.get("about"),
            delay=d.get("delay"),
            submitted=[int(i) for i in d.get("submitted") or []],
        )


def type_name(item: object) -> str:
    """Type tag of an item, or its Python class name for anything else."""
    return getattr(item, "type", "") or type(item).__name__


@dataclass(frozen=True)
class FlatCommentRecord:
    """A comment scraped from a rendered page.

    Records carry no parent reference: nesting is implied by ``indent_level``
    relative to the preceding records in document order.
    """

    id: int
    user: str
    text: str
    indent_level: int
    dead: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CommentNodeDict(TypedDict):
    """Serialized CommentNode payload for JSON output."""

    depth: int
    comment: dict[str, Any]
    children: list["CommentNodeDict"]


@dataclass
class CommentNode:
    """A comment plus its replies; ``depth`` counts from the root's replies."""

    depth: int
    comment: Union[Comment, FlatCommentRecord]
    children: list[CommentNode] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.comment.id

    def walk(self) -> Iterator[CommentNode]:
        """Yield this node and its descendants depth-first in display order."""
        stack: list[CommentNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> CommentNodeDict:
        return {
            "depth": self.depth,
            "comment": self.comment.to_dict(),
            "children": [c.to_dict() for c in self.children],
        }


Forest = list[CommentNode]


@dataclass
class Thread:
    """A root post and its fully materialized comment forest."""

    root: ThreadRoot
    comments: Forest = field(default_factory=list)
    orphans: list[int] = field(default_factory=list)

    def walk(self) -> Iterator[CommentNode]:
        for top in self.comments:
            yield from top.walk()

    def count(self) -> int:
        return sum(1 for _ in self.walk())

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root.to_dict(),
            "comments": [c.to_dict() for c in self.comments],
            "orphans": list(self.orphans),
        }
