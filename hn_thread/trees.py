"""Comment tree reconstruction.

Two strategies, chosen by where the comments came from:

* ``build_indent_forest`` for records scraped from a rendered page, where
  nesting is only visible as an indent width in document order.
* ``build_parent_link_forest`` for comments fetched from the API, where each
  item lists its replies' ids in ``kids``.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Optional

from hn_thread.constants import INDENT_STEP, MAX_TREE_DEPTH
from hn_thread.errors import MissingComment, StructuralViolation
from hn_thread.logging_config import get_logger
from hn_thread.models import Comment, CommentNode, FlatCommentRecord

logger = get_logger(__name__)


def build_indent_forest(
    records: Iterable[FlatCommentRecord],
    step: int = INDENT_STEP,
    max_depth: int = MAX_TREE_DEPTH,
) -> list[CommentNode]:
    """Arrange flat, indent-annotated records into a forest.

    A record's parent is the nearest preceding record exactly one ``step``
    shallower. Every record that can't be placed under an open parent starts
    a new top-level tree, whatever its absolute indent; only deltas matter.

    Raises StructuralViolation when a record jumps more than one level below
    a parent that has no children yet, when a delta is not a whole number of
    steps, or when nesting exceeds ``max_depth``.
    """
    if step <= 0:
        raise ValueError(f"Indent step must be positive, got {step}")

    queue: deque[FlatCommentRecord] = deque(records)
    for record in queue:
        if record.indent_level < 0:
            raise StructuralViolation(
                f"Comment {record.id} has negative indent {record.indent_level}",
                record.id,
            )

    forest: list[CommentNode] = []
    while queue:
        record = queue.popleft()
        root = CommentNode(depth=0, comment=record)
        _attach_children(root, record.indent_level, queue, step, max_depth)
        forest.append(root)

    logger.debug("tree.indent_built", roots=len(forest))
    return forest


def _attach_children(
    parent: CommentNode,
    parent_indent: int,
    queue: deque[FlatCommentRecord],
    step: int,
    max_depth: int,
) -> None:
    if parent.depth >= max_depth:
        raise StructuralViolation(
            f"Comment {parent.id} is nested deeper than {max_depth} levels", parent.id
        )

    child_indent = parent_indent + step
    last_child: Optional[CommentNode] = None
    while queue:
        record = queue[0]
        indent = record.indent_level

        if indent <= parent_indent:
            # Belongs to an ancestor's (or a new root's) scope
            return
        if indent == child_indent:
            queue.popleft()
            last_child = CommentNode(depth=parent.depth + 1, comment=record)
            parent.children.append(last_child)
        elif indent > child_indent:
            if last_child is None:
                raise StructuralViolation(
                    f"Comment {record.id} jumped a nesting level under "
                    f"{parent.id} with no established parent",
                    record.id,
                )
            _attach_children(last_child, child_indent, queue, step, max_depth)
        else:
            raise StructuralViolation(
                f"Comment {record.id} indent {indent} is not a multiple of "
                f"{step} relative to parent {parent.id} at {parent_indent}",
                record.id,
            )


def build_parent_link_forest(
    root_kids: Iterable[int],
    comments: dict[int, Comment],
    root_id: Optional[int] = None,
) -> tuple[list[CommentNode], dict[int, Comment]]:
    """Link fetched comments into a forest by following ``kids`` lists.

    Entries are removed from ``comments`` as they are attached, so each
    comment lands in the tree at most once. Returns the forest together with
    whatever is left in the map: comments never reached from ``root_kids``
    (orphans). A kids entry with no loaded comment raises MissingComment.
    """
    forest: list[CommentNode] = []
    # Frames of (children list to append to, parent id, depth, remaining kid ids)
    stack: list[tuple[list[CommentNode], Optional[int], int, deque[int]]] = [
        (forest, root_id, 0, deque(root_kids))
    ]

    while stack:
        siblings, parent_id, depth, pending = stack[-1]
        if not pending:
            stack.pop()
            continue

        kid = pending.popleft()
        comment = comments.pop(kid, None)
        if comment is None:
            raise MissingComment(kid, parent_id)

        node = CommentNode(depth=depth, comment=comment)
        siblings.append(node)
        if comment.kids:
            stack.append((node.children, kid, depth + 1, deque(comment.kids)))

    if comments:
        logger.warning("tree.orphans", count=len(comments), ids=sorted(comments))
    return forest, comments
