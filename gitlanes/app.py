from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from typing import Sequence

from textual.logging import TextualHandler

from . import __version__
from .config import load_settings
from .git_data import GitError, discover_repository
from .graph import render_plain
from .snapshot import load_snapshot
from .ui import LanesTUI

logger = logging.getLogger(__name__)

LOG_ENV = "GITLANES_LOG"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="gitlanes",
        description="Browse the commit graph of the current git repository.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Number of commits to load (default: 500, or commit_cap from the config file)",
    )
    parser.add_argument(
        "--text",
        action="store_true",
        help="Print the graph as plain text instead of starting the interface",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def configure_logging(interactive: bool) -> None:
    """Send log records to ``$GITLANES_LOG`` or, inside the UI, to the textual console."""
    root = logging.getLogger("gitlanes")
    if root.handlers:
        return
    root.setLevel(logging.DEBUG)
    log_path = os.environ.get(LOG_ENV)
    if log_path:
        handler: logging.Handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    elif interactive:
        handler = TextualHandler(stderr=False)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(handler)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(interactive=not args.text)
    settings = load_settings()
    if args.limit is not None:
        settings = replace(settings, commit_cap=max(1, args.limit))
    try:
        repo = discover_repository(os.getcwd())
        snapshot = load_snapshot(repo, settings)
    except GitError as err:
        print(f"error: {err}", file=sys.stderr)
        return 1
    logger.info("opened %s", repo.path)

    if args.text:
        labels = {group.target: group.label for group in snapshot.groups}
        for line in render_plain(snapshot.layout, labels):
            print(line)
        return 0

    try:
        tui = LanesTUI(repo, snapshot, settings=settings)
        tui.run()
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
