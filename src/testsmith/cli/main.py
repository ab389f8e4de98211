# src/testsmith/cli/main.py

"""
CLI entrypoint.

  testsmith serve               run the task scheduler until Ctrl+C
  testsmith watch               follow the server's push channel and log events
  testsmith add-repo URL        register a repository
  testsmith enqueue REPO PATH   queue a source file for test enhancement
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from typing import Sequence

from ..config import get_settings
from ..core.ports import EventTransport
from ..events.hub import EventHub
from ..events.models import EventKind, PushEvent, typed_payload
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_task_scheduler
from ..tasks.task_store import TaskStore
from .bootstrap import create_initial_state

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop.set)


async def _serve(settings, *, stop: asyncio.Event | None = None) -> None:
    state = create_initial_state(settings=settings)
    if stop is None:
        stop = asyncio.Event()
        _install_signal_handlers(stop)

    scheduler = asyncio.create_task(
        run_task_scheduler(
            state.task_store,
            state.pipeline,
            interval_seconds=settings.scheduler_interval_seconds,
        )
    )
    await stop.wait()
    logger.info("Shutting down...")
    scheduler.cancel()
    await asyncio.gather(scheduler, return_exceptions=True)
    state.task_store.close()


def _log_event(event: PushEvent) -> None:
    payload = typed_payload(event)
    logger.info("%s %s", event.kind.value, payload)


async def _watch(settings, *, stop: asyncio.Event | None = None, transport: EventTransport | None = None) -> None:
    if stop is None:
        stop = asyncio.Event()
        _install_signal_handlers(stop)

    hub = EventHub(
        settings.events_url,
        transport,
        base_delay_ms=settings.reconnect_base_ms,
        max_delay_ms=settings.reconnect_max_ms,
        max_attempts=settings.reconnect_max_attempts or None,
    )
    for kind in EventKind:
        hub.subscribe(kind, _log_event)

    async with hub:
        await stop.wait()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="testsmith", description="AI-assisted test enhancement worker.")
    parser.add_argument("-v", "--verbose", action="store_true", help="show event-stream and git logs on the console")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="run the task scheduler")
    sub.add_parser("watch", help="follow the push channel and log events")

    p_repo = sub.add_parser("add-repo", help="register a repository")
    p_repo.add_argument("url")

    p_enqueue = sub.add_parser("enqueue", help="queue a source file for enhancement")
    p_enqueue.add_argument("repo_id", type=int)
    p_enqueue.add_argument("path")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level, verbose_events=args.verbose)

    if args.command == "add-repo":
        repo_id = TaskStore(settings.db_path).add_repo(args.url)
        print(repo_id)
        return 0

    if args.command == "enqueue":
        store = TaskStore(settings.db_path)
        if store.get_repo(args.repo_id) is None:
            logger.error("repo %s not found", args.repo_id)
            return 1
        print(store.add_task(repo_id=args.repo_id, path=args.path))
        return 0

    logger.info("Starting %s %s...", settings.app_name, args.command)
    try:
        if args.command == "serve":
            asyncio.run(_serve(settings))
        else:
            asyncio.run(_watch(settings))
    except KeyboardInterrupt:
        pass
    logger.info("Bye.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
