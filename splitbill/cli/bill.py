"""Bill command handlers used by the unified CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from functools import partial
from pathlib import Path

from splitbill.application.session import BillSession
from splitbill.domain.bill import ParseResult
from splitbill.receipt.reconciliation import evaluate
from splitbill.receipt.text_parser import parse_receipt_text
from splitbill.runtime import SettingsError, get_logger, get_paths, load_settings
from splitbill.runtime.settings import resolve_engine_order

logger = get_logger(__name__)


def _print_parse(result: ParseResult, *, engine: str | None = None) -> None:
    print("\n" + "=" * 60)
    print(f"PARSED BILL{f' ({engine})' if engine else ''}")
    print("=" * 60)
    print(f"\nItems ({len(result.items)}):")
    for i, item in enumerate(result.items, 1):
        qty_str = f" x{item.original_quantity}" if item.original_quantity > 1 else ""
        print(f"  {i}. {item.description}{qty_str} @ {item.unit_price:.2f} = {item.total:.2f}")
    if result.charges:
        print(f"\nCharges ({len(result.charges)}):")
        for charge in result.charges:
            print(f"  {charge.label}: {charge.amount:.2f}")
    total = "UNKNOWN" if result.net_total is None else f"{result.net_total:.2f}"
    print(f"\nBill total: {total}")
    print("=" * 60)


def cmd_parse(args: argparse.Namespace) -> None:
    """Parse OCR text from a file (or stdin with "-") and report reconciliation."""
    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except SettingsError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    if args.text_file == "-":
        text = sys.stdin.read()
    else:
        path = Path(args.text_file)
        if not path.exists():
            print(f"Error: text file not found: {path}")
            sys.exit(1)
        text = path.read_text(encoding="utf-8")

    result = parse_receipt_text(text, settings.thresholds)
    verdict = evaluate(result.items, result.net_total, settings.thresholds)

    if args.json:
        payload = result.to_dict()
        payload["itemsSum"] = str(verdict.items_sum)
        payload["accepted"] = verdict.accepted
        print(json.dumps(payload, indent=2))
    else:
        _print_parse(result)
        status = "reconciled" if verdict.accepted else "NOT reconciled"
        print(f"Items sum {verdict.items_sum:.2f}: {status}")

    if not verdict.accepted:
        sys.exit(2)


def _confirm(question: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def _run_scan(session: BillSession, image: bytes, assume_yes: bool) -> int:
    orchestrator = session.orchestrator
    await session.upload(image, force=True)

    while orchestrator.state == "engine_failed":
        prompt = orchestrator.prompt
        assert prompt is not None
        total = "none" if prompt.bill_total is None else f"{prompt.bill_total:.2f}"
        print(f"{prompt.engine}: items sum {prompt.items_sum:.2f}, bill total {total} ({prompt.failure_kind})")
        if not _confirm(f"Try {prompt.next_engine}?", assume_yes):
            session.cancel()
            break
        await session.retry_next()

    if orchestrator.state in ("exhausted", "cancelled"):
        if orchestrator.state == "exhausted":
            print("No more engines to try.")
        best = orchestrator.best_result
        if best is None or not _confirm(f"Accept closest parse from {best.engine} as-is?", assume_yes):
            print("Bill left for manual entry.")
            return 1
        session.accept_best()

    accepted = orchestrator.accepted
    if accepted is None:
        return 1
    _print_parse(accepted.result, engine=accepted.engine)
    if not orchestrator.published:
        print("Existing bill has manual edits; parse was not applied.")
    return 0


def cmd_scan(args: argparse.Namespace) -> None:
    """Run a bill photo through the engine chain, prompting between engines."""
    image_path = Path(args.image)
    if not image_path.exists():
        print(f"Error: image not found: {image_path}")
        sys.exit(1)

    try:
        settings = load_settings(Path(args.config) if args.config else None)
        if args.engine:
            settings = replace(settings, engines=resolve_engine_order(settings.engines, only=args.engine))
    except SettingsError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    if args.no_save:
        session = BillSession.from_settings(settings, persist=False)
    else:
        get_paths().ensure_directories()
        session = BillSession.from_settings(settings)

    if not session.orchestrator.engines:
        print("No engines available; check credentials and SPLITBILL_ENGINES.")
        sys.exit(1)

    code = asyncio.run(_run_scan(session, image_path.read_bytes(), args.yes))
    if code:
        sys.exit(code)


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the FastAPI server for bill uploads."""
    import uvicorn

    from splitbill.runtime import bill_server as server

    print(f"Starting bill server on {args.host}:{args.port}")
    print(f"Upload endpoint: http://{args.host}:{args.port}/upload")
    print("Press Ctrl+C to stop")

    config = Path(args.config) if args.config else None
    uvicorn.run(server.create_app(partial(server.default_session, config)), host=args.host, port=args.port)
