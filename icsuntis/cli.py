"""
CLI (Command Line Interface).

    icsuntis serve [--host HOST] [--port PORT]
    icsuntis export <file.ics>
    icsuntis remap

Credentials and settings come from the environment (see icsuntis.config).
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from icsuntis.config import Settings, get_settings, resolve_credentials
from icsuntis.errors import ConfigurationError
from icsuntis.export_ics import write_ics_file
from icsuntis.feed import FeedAssembler
from icsuntis.remap import KINDS, RemapTable
from icsuntis.storage import load_remap_table

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    """
    Run the HTTP service with Flask's threaded server.
    """
    from icsuntis.web import create_app

    app = create_app(settings)
    host = args.host or settings.host
    port = args.port or settings.port
    console.print(f"ICSUntis läuft auf http://localhost:{port}")
    app.run(host=host, port=port, threaded=True)
    return 0


def _cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    """
    Build the calendar once and write it to a file.
    """
    out_path = (args.out or "").strip()
    if not out_path:
        console.print("Please provide output .ics path.")
        return 1

    try:
        credentials = resolve_credentials()
    except ConfigurationError as exc:
        console.print(str(exc))
        return 1

    assembler = FeedAssembler(settings, remap=RemapTable(load_remap_table(settings.remap_file)))
    result = assembler.get_calendar(credentials)
    if not result.ok or result.payload is None:
        console.print(result.message)
        return 1

    write_ics_file(result.payload, out_path)
    console.print(f"Exported {result.event_count} events to: {out_path}")
    return 0


def _cmd_remap(args: argparse.Namespace, settings: Settings) -> int:
    """
    Print the remap table that the service would start with.
    """
    tables = load_remap_table(settings.remap_file)

    table = Table(title="Remap")
    table.add_column("Kind")
    table.add_column("WebUntis")
    table.add_column("Display")
    rows = 0
    for kind in KINDS:
        for raw, display in sorted(tables[kind].items()):
            table.add_row(kind, raw, display)
            rows += 1

    if not rows:
        console.print("Remap table is empty.")
        return 0
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="icsuntis", description="WebUntis timetable as iCalendar feed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP service")
    p_serve.add_argument("--host", type=str, default=None, help="Bind address (default: HOST or 0.0.0.0)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: PORT or 3979)")

    p_export = sub.add_parser("export", help="Write the timetable to an .ics file")
    p_export.add_argument("out", type=str, help="Output file path (e.g. timetable.ics)")

    sub.add_parser("remap", help="Show the remap table")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    settings = get_settings()

    if args.command == "serve":
        raise SystemExit(_cmd_serve(args, settings))
    if args.command == "export":
        raise SystemExit(_cmd_export(args, settings))
    if args.command == "remap":
        raise SystemExit(_cmd_remap(args, settings))

    raise SystemExit(2)
