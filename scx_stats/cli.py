"""scx-stats CLI entry point."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Dict, List

from .client import DEFAULT_PATH, StatsClient, StatsClientConfig, StatsClientError

LOG = logging.getLogger("scx_stats.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_pairs(pairs: List[str]) -> Dict[str, str]:
    args: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {pair!r}")
        args[key] = value
    return args


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Query a scx stats socket")
    parser.add_argument("target", nargs="?", help="Stat name (server default: top)")
    parser.add_argument("--path", default=DEFAULT_PATH, help=f"Stats socket path (default {DEFAULT_PATH})")
    parser.add_argument("--meta", action="store_true", help="Print the stats metadata instead of a value")
    parser.add_argument(
        "--arg",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra request argument (repeatable)",
    )
    parser.add_argument("--timeout", type=float, default=5.0, help="Socket timeout in seconds")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SCX_STATS_LOG", "WARNING"),
        help="Logging level (default WARNING)",
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        extra = _parse_pairs(args.arg)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    target = extra.pop("target", None)
    if args.target:
        target = args.target
    client = StatsClient(StatsClientConfig(path=args.path, timeout=args.timeout))
    try:
        with client:
            if args.meta:
                payload = client.stats_meta()
            else:
                payload = client.stats(target, **extra)
    except StatsClientError as exc:
        LOG.debug("stats query failed", exc_info=True)
        print(f"error: {exc.message} (errno {exc.errno})", file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
