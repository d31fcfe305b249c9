#!/usr/bin/env python3

import argparse
from collections.abc import Callable, Sequence


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _run_command(command: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> int:
    """
    Run a command handler that may call sys.exit().

    This keeps process termination centralized in this module's entrypoint.
    """
    try:
        command(args)
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="splitbill",
        description="Bill splitting utilities CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  parse <text-file>          Parse OCR text and check it against the bill total
  scan <image> [--yes]       Run a bill photo through the engine chain
  serve [--port]             Start the bill upload server

Environment:
  SPLITBILL_HOME             State directory (default: ./.splitbill)
  SPLITBILL_CONFIG           Config TOML (default: $SPLITBILL_HOME/splitbill.toml)
  SPLITBILL_LOG_LEVEL        DEBUG, INFO, WARNING or ERROR
""",
    )
    parser.add_argument("--config", default=None, help="Path to splitbill.toml")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parse_parser = subparsers.add_parser("parse", help="Parse OCR text")
    parse_parser.add_argument("text_file", help='Text file with OCR output ("-" for stdin)')
    parse_parser.add_argument("--json", action="store_true", help="Print the parse as JSON")

    scan_parser = subparsers.add_parser("scan", help="Scan a bill photo")
    scan_parser.add_argument("image", help="Path to bill image")
    scan_parser.add_argument("--yes", action="store_true", help="Try every engine and accept the best parse without asking")
    scan_parser.add_argument("--engine", default=None, help="Run only this engine")
    scan_parser.add_argument("--no-save", action="store_true", help="Do not write the bill to the state directory")

    serve_parser = subparsers.add_parser("serve", help="Start bill upload server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=8080, help="Port to bind to (default: 8080)")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "parse":
        from splitbill.cli.bill import cmd_parse

        return _run_command(cmd_parse, args)
    elif args.command == "scan":
        from splitbill.cli.bill import cmd_scan

        return _run_command(cmd_scan, args)
    elif args.command == "serve":
        from splitbill.cli.bill import cmd_serve

        return _run_command(cmd_serve, args)

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
