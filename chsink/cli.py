"""Command line entry point: ``chsink plan CONFIG``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from .config import load_config
from .errors import PrepareError
from .probe import AsyncpgProbeBackend, ProbeBackend, StaticProbeBackend
from .registry import SinkRegistry

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chsink", description="Prepare ClickHouse sink write plans.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    plan = commands.add_parser("plan", help="Validate a sink config and print its write plan.")
    plan.add_argument("config", type=Path, help="TOML file holding the sink options.")
    plan.add_argument("--sink", default="clickhouse", help="Sink plugin name (default: clickhouse).")
    plan.add_argument(
        "--schema",
        type=Path,
        default=None,
        help="Plan offline against a TOML schema snapshot instead of the live cluster.",
    )
    plan.add_argument("--connect-timeout", type=float, default=3.0, help="Probe connect timeout in seconds.")
    return parser


def run_plan(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    backend: ProbeBackend
    if args.schema is not None:
        backend = StaticProbeBackend.from_toml(args.schema)
    else:
        backend = AsyncpgProbeBackend(connect_timeout=args.connect_timeout)
    try:
        sink = SinkRegistry().create(args.sink, backend=backend)
        sink.prepare(config)
    finally:
        if isinstance(backend, AsyncpgProbeBackend):
            backend.shutdown()
    plan = getattr(sink, "plan", None)
    if plan is None:
        LOG.warning("Sink does not expose its write plan", extra={"sink": args.sink})
        return 0
    print(json.dumps(plan.describe(), indent=2))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return run_plan(args)
    except (PrepareError, LookupError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
