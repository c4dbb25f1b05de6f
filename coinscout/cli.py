"""Command line entry point: run the HTTP service or a one-off scan."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence

from . import variants
from .config import load_settings
from .errors import ScanError
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coinscout", description="Score recently listed crypto assets"
    )
    parser.add_argument("--config", default=None, help="Path to a TOML settings file")
    parser.add_argument(
        "--variant",
        choices=("coingecko", "coinmarketcap"),
        default=None,
        help="Market source variant (overrides COINSCOUT_VARIANT)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON log lines")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve the scan endpoint over HTTP")
    serve.add_argument("--host", default=None, help="Bind host")
    serve.add_argument("--port", type=int, default=None, help="Bind port")

    scan = sub.add_parser("scan", help="Run one scan and print the JSON result")
    scan.add_argument("--limit", type=int, default=None, help="Print at most N items")
    scan.add_argument("--indent", type=int, default=2, help="JSON indent (0 for compact)")
    return parser


def _serve(args: argparse.Namespace) -> int:
    from .ui import create_app

    settings = load_settings(args.config, variant=args.variant, host=args.host, port=args.port)
    app = create_app(settings)
    logger.info("Serving %s scans on http://%s:%s", settings.variant, settings.host, settings.port)
    app.run(host=settings.host, port=settings.port)
    return 0


def _scan(args: argparse.Namespace) -> int:
    settings = load_settings(args.config, variant=args.variant)
    try:
        records = variants.scan(settings)
    except ScanError as exc:
        logger.error("Scan failed: %s", exc)
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 1
    if args.limit is not None:
        records = records[: max(0, args.limit)]
    payload = {"items": [record.to_dict() for record in records]}
    print(json.dumps(payload, indent=args.indent or None, ensure_ascii=False))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    configure_logging(level=args.log_level, json_logs=args.json_logs)
    try:
        if args.command == "serve":
            return _serve(args)
        return _scan(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
