"""CLI entry point: ``cellsync extractor``, ``regions``, ``annotate``, ``notify``."""

from __future__ import annotations

# Singleton logging, before anything else logs
from cellsync.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import json  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402

from cellsync import __version__  # noqa: E402
from cellsync.config import Settings  # noqa: E402
from cellsync.constants import NO_LINE  # noqa: E402
from cellsync.logging_config import set_level  # noqa: E402
from cellsync.resilience.errors import (  # noqa: E402
    CellSyncError,
    user_message,
)


def main() -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.version:
        print(f"cellsync {__version__}")
        return

    settings = Settings()
    set_level("DEBUG" if getattr(args, "verbose", False) else settings.log_level)

    try:
        if args.command == "extractor":
            _run_extractor(args, settings)
        elif args.command == "regions":
            _run_regions(args, settings)
        elif args.command == "annotate":
            _run_annotate(args, settings)
        elif args.command == "notify":
            _run_notify(args, settings)
        else:
            parser.print_help()
    except (CellSyncError, TimeoutError) as exc:
        print(f"Error: {user_message(exc)}", file=sys.stderr)
        sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cellsync",
        description=(
            "Keeps source lines aligned with the notebook cells "
            "their execution generates."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    extractor = sub.add_parser(
        "extractor",
        help="Serve the Python region extractor",
    )
    _add_address(extractor, "extractor")
    extractor.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    regions = sub.add_parser(
        "regions",
        help="Print the regions an extractor finds in a file",
    )
    regions.add_argument("file", type=str, help="Python source file")
    _add_address(regions, "extractor")

    annotate = sub.add_parser(
        "annotate",
        help="Print the instrumented source for one namespace",
    )
    annotate.add_argument("file", type=str, help="Python source file")
    annotate.add_argument("namespace", type=str, help="Namespace name")
    _add_address(annotate, "extractor")

    notify = sub.add_parser(
        "notify",
        help="Send one notifyArtifactCreated to a session",
    )
    notify.add_argument("content", type=str, help="Cell content")
    notify.add_argument("surface", type=str, help="Surface id (ns=...)")
    notify.add_argument(
        "--kind",
        "-k",
        default="code",
        help="code, markdown, heading or headingN (default: code)",
    )
    notify.add_argument(
        "--line",
        "-l",
        type=int,
        default=NO_LINE,
        help=f"Source line (default: {NO_LINE}, no line)",
    )
    _add_address(notify, "notify")

    return parser


def _add_address(parser: argparse.ArgumentParser, role: str) -> None:
    parser.add_argument(
        "--host",
        default=None,
        help=f"Host (default: CELLSYNC_{role.upper()}_HOST)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help=f"Port (default: CELLSYNC_{role.upper()}_PORT)",
    )


def _read_source(path: str) -> str:
    source_path = Path(path)
    if not source_path.exists():
        print(f"Error: {source_path} does not exist", file=sys.stderr)
        sys.exit(1)
    return source_path.read_text(encoding="utf-8")


def _run_extractor(args: argparse.Namespace, settings: Settings) -> None:
    """Serve extractRegions/annotate until interrupted."""
    from cellsync.extractor.service import create_extractor_server

    server = create_extractor_server(
        args.host or settings.extractor_host,
        args.port if args.port is not None else settings.extractor_port,
    )
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        pass


def _run_regions(args: argparse.Namespace, settings: Settings) -> None:
    from cellsync.core.namespaces import module_namespace_name
    from cellsync.rpc.client import ExtractorClient

    source = _read_source(args.file)
    root = module_namespace_name(args.file)

    async def _query() -> list[list[object]]:
        client = await ExtractorClient.connect(
            args.host or settings.extractor_host,
            args.port if args.port is not None else settings.extractor_port,
            call_timeout=settings.rpc_call_timeout_seconds,
        )
        try:
            regions = await client.extract_regions(source, root)
        finally:
            await client.close()
        return [[r.name, r.start_line, r.end_line] for r in regions]

    print(json.dumps(asyncio.run(_query()), indent=2))


def _run_annotate(args: argparse.Namespace, settings: Settings) -> None:
    from cellsync.rpc.client import ExtractorClient

    source = _read_source(args.file)

    async def _query() -> str:
        client = await ExtractorClient.connect(
            args.host or settings.extractor_host,
            args.port if args.port is not None else settings.extractor_port,
            call_timeout=settings.rpc_call_timeout_seconds,
        )
        try:
            return await client.annotate(source, args.namespace)
        finally:
            await client.close()

    sys.stdout.write(asyncio.run(_query()))


def _run_notify(args: argparse.Namespace, settings: Settings) -> None:
    from cellsync.runtime.notifier import ArtifactNotifier

    with ArtifactNotifier(
        args.surface,
        args.host or settings.notify_host,
        args.port if args.port is not None else settings.notify_port,
        generation=settings.notify_generation,
        timeout=settings.rpc_call_timeout_seconds,
    ) as notifier:
        notifier.emit(args.content, args.kind, args.line)
    print("ok")
