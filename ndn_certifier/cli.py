"""Command line entry point: ``ndn-certifier [PATH]``."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from .client import CommandSnapshotClient
from .config import Settings, get_settings
from .logstore import SharedLogStore
from .orchestrator import CycleOrchestrator, CycleReport

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ndn-certifier",
        description="Continuously certify the health of a local NDN forwarder.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        help="file the log table is written to on shutdown",
    )
    return parser


def print_report(report: CycleReport) -> None:
    print(report.summary_line(), flush=True)


async def serve(settings: Settings, state_path: Path) -> int:
    """Run the polling loop until SIGINT or SIGTERM, then persist the log table."""

    store = SharedLogStore.load(state_path, history_limit=settings.history_limit)
    orchestrator = CycleOrchestrator.from_settings(
        settings,
        CommandSnapshotClient.from_settings(settings),
        store,
        reporter=print_report,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)
    logger.info("Starting at cycle %s, persisting to %s", orchestrator.next_index, state_path)
    try:
        await orchestrator.run_forever(stop)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        store.flush(state_path)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    state_path: Path = (args.path or settings.state_path).expanduser()
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Cannot create state directory %s: %s", state_path.parent, exc)
        return 1
    return asyncio.run(serve(settings, state_path))


__all__ = ["build_parser", "main", "serve"]
