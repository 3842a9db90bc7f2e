import argparse
import asyncio
import sys
from contextlib import aclosing
from typing import Optional

from rich.console import Console
from rich.markup import escape

from hn_thread.assembler import ThreadAssembler
from hn_thread.client import FirebaseClient
from hn_thread.config import Settings, get_settings, save_config
from hn_thread.constants import NEWS_DEFAULT_LIMIT, STORY_KINDS
from hn_thread.errors import AssembleError, Cancelled, FetchFailed, ThreadError
from hn_thread.logging_config import configure_logging
from hn_thread.models import Comment, CommentNode, type_name
from hn_thread.orchestrator import FetchOrchestrator
from hn_thread.render import (
    comment_label,
    discussion_url,
    render_thread,
    root_label,
    stream_line,
)
from hn_thread.retry import CancelToken, RetryPolicy
from hn_thread.scrape import HNPageClient

console = Console()


def make_orchestrator(client: FirebaseClient, settings: Settings) -> FetchOrchestrator:
    return FetchOrchestrator(
        client,
        max_concurrency=settings.max_concurrency,
        retry=RetryPolicy(max_attempts=settings.max_attempts, backoff=settings.backoff),
    )


def make_cancel(settings: Settings) -> Optional[CancelToken]:
    if settings.timeout is None:
        return None
    return CancelToken(deadline=settings.timeout)


async def cmd_thread(args, settings: Settings) -> None:
    async with FirebaseClient(timeout=settings.http_timeout) as client:
        assembler = ThreadAssembler(
            client, make_orchestrator(client, settings), allow_orphans=args.allow_orphans
        )
        with console.status(f"[cyan]Fetching thread {args.id}..."):
            thread = await assembler.assemble(args.id, make_cancel(settings))

    if args.json:
        console.print_json(data=thread.to_dict())
        return

    console.print(render_thread(thread, full=args.full))
    console.print(f"\n[dim]{thread.count()} comments[/]  [dim blue]Discuss:[/] {discussion_url(args.id)}")


async def cmd_stream(args, settings: Settings) -> None:
    async with FirebaseClient(timeout=settings.http_timeout) as client:
        assembler = ThreadAssembler(client, make_orchestrator(client, settings))
        cancel = make_cancel(settings)
        lazy = await assembler.lazy_thread(args.id, cancel)
        console.print(root_label(lazy.root))

        count = 0
        try:
            async with aclosing(lazy.walk(cancel)) as nodes:
                async for item_id, result in nodes:
                    if isinstance(result, CommentNode):
                        count += 1
                        console.print(stream_line(result))
                    elif isinstance(result, FetchFailed):
                        console.print(f"[yellow]  ! {item_id}: {escape(str(result))}[/]")
                    else:
                        console.print(f"[dim]  - skipped {item_id}: {escape(str(result))}[/]")
        except Cancelled as e:
            console.print(f"[yellow]Stopped after {len(e.partial)} comments (timeout)[/]")
            return

    console.print(f"\n[dim]{count} comments streamed[/]")


async def cmd_page(args, settings: Settings) -> None:
    async with (
        FirebaseClient(timeout=settings.http_timeout) as client,
        HNPageClient(timeout=settings.http_timeout) as pages,
    ):
        assembler = ThreadAssembler(client)
        with console.status(f"[cyan]Fetching page for {args.id}..."):
            thread = await assembler.assemble_from_page(pages, args.id)

    if args.json:
        console.print_json(data=thread.to_dict())
    else:
        console.print(render_thread(thread, full=args.full))
        console.print(f"\n[dim]{thread.count()} comments[/]")


async def cmd_news(args, settings: Settings) -> None:
    async with FirebaseClient(timeout=settings.http_timeout) as client:
        ids = (await client.stories(args.kind))[: args.limit]
        if not ids:
            console.print(f"[red]Failed to fetch {args.kind} stories.[/]")
            return
        items = await client.items(ids)

    console.print(f"\n[bold green]{args.kind.capitalize()} stories[/]\n")
    for item in items:
        score = getattr(item, "score", None) or 0
        title = getattr(item, "title", None) or "Untitled"
        console.print(f"[dim]({score:4d})[/dim] [bold]{escape(title)}[/bold]")
        url = getattr(item, "url", None)
        if url:
            console.print(f"   [dim cyan]Article:[/] {url}")
        console.print(f"   [dim blue]Discuss:[/] {discussion_url(item.id)}")


async def cmd_item(args, settings: Settings) -> None:
    async with FirebaseClient(timeout=settings.http_timeout) as client:
        item = await client.item(args.id)

    if args.json:
        console.print_json(data=item.to_dict())
        return

    console.print(f"[dim]{type_name(item)}[/]")
    if isinstance(item, Comment):
        console.print(comment_label(CommentNode(0, item), full=True))
        if item.parent:
            console.print(f"   [dim]Reply to:[/] {discussion_url(item.parent)}")
    else:
        console.print(root_label(item))
    if item.kids:
        console.print(f"   [dim]{len(item.kids)} direct replies[/]")
    console.print(f"   [dim blue]Discuss:[/] {discussion_url(item.id)}")


def cmd_config(args) -> int:
    if args.key not in Settings.__dataclass_fields__:
        known = ", ".join(Settings.__dataclass_fields__)
        console.print(f"[red]Unknown setting {args.key!r}. Known: {known}[/]")
        return 1
    save_config(args.key, args.value)
    console.print(f"[green]Saved {args.key} = {args.value}[/]")
    return 0


def settings_from_args(args) -> Settings:
    return get_settings(
        {
            "max_attempts": getattr(args, "max_attempts", None),
            "timeout": getattr(args, "timeout", None),
            "log_level": "DEBUG" if args.verbose else None,
        }
    )


async def main(args) -> int:
    settings = settings_from_args(args)
    configure_logging(settings.log_level)

    handlers = {
        "thread": cmd_thread,
        "stream": cmd_stream,
        "page": cmd_page,
        "news": cmd_news,
        "item": cmd_item,
    }
    try:
        await handlers[args.command](args, settings)
    except AssembleError as e:
        if isinstance(e.cause, Cancelled):
            console.print(
                f"[red]Error: timed out with {len(e.cause.partial)} comments fetched.[/]"
            )
        else:
            console.print(f"[red]Error: {escape(str(e))}[/]")
        return 1
    except ThreadError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch Hacker News comment threads")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_thread = sub.add_parser("thread", help="Fetch a whole thread via the API")
    p_thread.add_argument("id", type=int, help="Story, poll or job id")
    p_thread.add_argument("--json", action="store_true", help="Print the thread as JSON")
    p_thread.add_argument("--full", action="store_true", help="Don't truncate comment text")
    p_thread.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Attempts per item before giving up (0 = unbounded)",
    )
    p_thread.add_argument(
        "--timeout", type=float, default=None, help="Overall deadline in seconds"
    )
    p_thread.add_argument(
        "--allow-orphans",
        action="store_true",
        help="Keep going when fetched comments can't be linked to the root",
    )
    p_thread.add_argument("--tui", action="store_true", help="Browse in the interactive TUI")

    p_stream = sub.add_parser("stream", help="Print comments as they arrive")
    p_stream.add_argument("id", type=int)
    p_stream.add_argument("--max-attempts", type=int, default=None)
    p_stream.add_argument("--timeout", type=float, default=None)

    p_page = sub.add_parser("page", help="Scrape the rendered item page instead of the API")
    p_page.add_argument("id", type=int)
    p_page.add_argument("--json", action="store_true")
    p_page.add_argument("--full", action="store_true")

    p_news = sub.add_parser("news", help="List stories")
    p_news.add_argument("--kind", choices=STORY_KINDS, default="top")
    p_news.add_argument(
        "--limit",
        type=int,
        default=NEWS_DEFAULT_LIMIT,
        help=f"Number of stories to show (default: {NEWS_DEFAULT_LIMIT})",
    )

    p_item = sub.add_parser("item", help="Fetch and show a single item")
    p_item.add_argument("id", type=int)
    p_item.add_argument("--json", action="store_true", help="Print the raw item as JSON")

    p_config = sub.add_parser("config", help="Persist a setting")
    p_config.add_argument("key")
    p_config.add_argument("value")

    return parser


def run(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "config":
        return cmd_config(args)

    if args.command == "thread" and args.tui:
        from tui_app import ThreadTUI

        ThreadTUI(args.id, settings_from_args(args)).run()
        return 0

    return asyncio.run(main(args))


if __name__ == "__main__":
    sys.exit(run())
