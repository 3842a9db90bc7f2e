import argparse
from contextlib import aclosing
from typing import ClassVar, Optional
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Label, ListItem, ListView, Static

from hn_thread.assembler import ThreadAssembler
from hn_thread.client import FirebaseClient
from hn_thread.config import Settings, get_settings
from hn_thread.errors import AssembleError, Cancelled, FetchFailed
from hn_thread.models import CommentNode
from hn_thread.orchestrator import FetchOrchestrator
from hn_thread.render import comment_label, discussion_url
from hn_thread.retry import CancelToken, RetryPolicy

class CommentItem(ListItem):
    def __init__(self, node: CommentNode):
        super().__init__()
        self.node = node

    def compose(self) -> ComposeResult:
        yield Static(comment_label(self.node, full=True), classes="comment")

    def on_mount(self) -> None:
        self.styles.padding = (0, 0, 0, 2 * self.node.depth)

class ThreadTUI(App):
    CSS = """
    #status { height: 1; color: $accent; text-style: italic; padding: 0 1; }
    #list { height: 1fr; }
    .comment { border-left: solid gray; padding-left: 1; color: #ccc; }
    CommentItem.-highlight .comment { color: white; }
    """

    BINDINGS: ClassVar[list[Binding]] = [
        Binding("q", "quit", "Quit"),
        Binding("r", "reload", "Reload"),
        Binding("v", "view", "View"),
    ]

    def __init__(self, story_id: int, settings: Optional[Settings] = None):
        super().__init__()
        self.story_id = story_id
        self.settings = settings or get_settings()
        self.comment_count = 0
        self.status_text = ""
        self._cancel: Optional[CancelToken] = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Label(f"Loading {self.story_id}...", id="status")
        yield ListView(id="list")
        yield Footer()

    async def on_mount(self): self.action_reload()

    def _status(self, text: str) -> None:
        self.status_text = text
        self.query_one("#status", Label).update(text)

    @work(exclusive=True)
    async def action_reload(self):
        if self._cancel is not None:
            self._cancel.cancel()
        self._cancel = cancel = CancelToken(deadline=self.settings.timeout)

        lst = self.query_one("#list", ListView)
        await lst.clear()
        self.comment_count = 0

        async with FirebaseClient(timeout=self.settings.http_timeout) as client:
            orchestrator = FetchOrchestrator(
                client,
                max_concurrency=self.settings.max_concurrency,
                retry=RetryPolicy(max_attempts=self.settings.max_attempts, backoff=self.settings.backoff),
            )
            try:
                lazy = await ThreadAssembler(client, orchestrator).lazy_thread(self.story_id, cancel)
            except AssembleError as e:
                self._status(f"Error: {e}")
                self.notify(str(e), severity="error")
                return

            self.title = getattr(lazy.root, "title", None) or f"Item {self.story_id}"
            self.sub_title = lazy.root.by or ""
            try:
                async with aclosing(lazy.walk(cancel)) as nodes:
                    async for item_id, result in nodes:
                        if isinstance(result, CommentNode):
                            self.comment_count += 1
                            await lst.append(CommentItem(result))
                            self._status(f"{self.comment_count} comments")
                        elif isinstance(result, FetchFailed):
                            self._status(f"{self.comment_count} comments (retrying {item_id})")
            except Cancelled:
                self._status(f"{self.comment_count} comments (stopped)")
                return

        self._status(f"{self.comment_count} comments")

    def action_view(self):
        if item := self.query_one("#list", ListView).highlighted_child:
            import webbrowser
            webbrowser.open(discussion_url(item.node.id))

if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("story_id", type=int)
    args = parser.parse_args()

    ThreadTUI(args.story_id).run()
