"""Error types raised while fetching and assembling comment threads."""

from __future__ import annotations

from typing import Optional


class ThreadError(Exception):
    """Base class for all thread retrieval errors."""


class FetchFailed(ThreadError):
    """A single item fetch failed (transport, status or decoding)."""

    def __init__(
        self, item_id: int, attempts: int = 1, reason: Optional[str] = None
    ) -> None:
        self.item_id = item_id
        self.attempts = attempts
        self.reason = reason
        msg = f"Fetching item {item_id} failed after {attempts} attempt(s)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UnexpectedItemType(ThreadError):
    """An id resolved to an item variant incompatible with its role."""

    def __init__(self, item_id: Optional[int], actual: str) -> None:
        self.item_id = item_id
        self.actual = actual
        super().__init__(f"Item {item_id} has unexpected type {actual!r}")


class UnsupportedRootType(UnexpectedItemType):
    """The thread root is not a Story/Poll/Job."""

    def __init__(self, item_id: Optional[int], actual: str) -> None:
        super().__init__(item_id, actual)
        self.args = (f"Item {item_id} of type {actual!r} cannot root a thread",)


class OrphanedComments(ThreadError):
    """Fetched comments that no kids list reaches from the root."""

    def __init__(self, leftover_ids: list[int]) -> None:
        self.leftover_ids = sorted(leftover_ids)
        super().__init__(
            f"{len(self.leftover_ids)} orphaned comment(s): {self.leftover_ids}"
        )


class StructuralViolation(ThreadError):
    """The input cannot be arranged into a tree."""

    def __init__(self, message: str, item_id: Optional[int] = None) -> None:
        self.item_id = item_id
        super().__init__(message)


class MissingComment(StructuralViolation):
    """A kids list names a comment that was never fetched."""

    def __init__(self, item_id: int, parent_id: Optional[int]) -> None:
        self.parent_id = parent_id
        super().__init__(
            f"Comment {item_id} listed by {parent_id} was not loaded", item_id
        )


class Cancelled(ThreadError):
    """Retrieval stopped by a cancel token; ``partial`` holds what arrived."""

    def __init__(self, partial: dict) -> None:
        self.partial = partial
        super().__init__(f"Cancelled with {len(partial)} item(s) retrieved")


class ParseError(ThreadError):
    """A rendered page lacked an element the parser requires."""


class AssembleError(ThreadError):
    """Raised by ThreadAssembler; wraps the underlying ThreadError."""

    def __init__(self, cause: ThreadError) -> None:
        self.cause = cause
        super().__init__(f"{type(cause).__name__}: {cause}")


def failure_reason(exc: Optional[BaseException]) -> str:
    if isinstance(exc, FetchFailed) and exc.reason:
        return exc.reason
    return f"{type(exc).__name__}: {exc}"
