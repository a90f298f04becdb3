"""CLI entry point: collect, scheduler, check-config."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Optional

from scripts.posture.cancellation import CancellationToken
from scripts.posture.config import load_config
from scripts.posture.errors import CollectorRunError, PostureError
from scripts.posture.logging_config import configure_logging
from scripts.posture.runner import run_config

logger = logging.getLogger("posture.cli")

EXIT_CODES = {"config": 2, "network": 3, "cancelled": 4}


def make_emitter(output_path: Optional[str]):
    """Return an emitter writing one JSON record to a file or stdout."""

    def emit(record: dict[str, Any]) -> None:
        text = json.dumps(record, indent=2, sort_keys=False)
        if output_path:
            with open(output_path, "w", encoding="utf-8") as fh:
                fh.write(text + "\n")
            logger.info("Posture written to %s", output_path)
        else:
            sys.stdout.write(text + "\n")
            sys.stdout.flush()

    return emit


def cmd_collect(args: argparse.Namespace) -> int:
    """Run one collection and emit the posture record."""
    try:
        config = load_config()
    except PostureError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CODES["config"]

    token = CancellationToken(args.timeout or config.run_timeout_s)
    try:
        run_config(config, make_emitter(args.output or config.output_path), token=token)
    except CollectorRunError as exc:
        logger.error("Collection failed (%s): %s", exc.category, exc.message)
        return EXIT_CODES.get(exc.category, 1)
    except KeyboardInterrupt:
        token.cancel()
        logger.error("Collection interrupted")
        return EXIT_CODES["cancelled"]
    return 0


def cmd_scheduler(args: argparse.Namespace) -> int:
    """Start the APScheduler-based reporting loop."""
    from scripts.posture.scheduler import start_scheduler

    try:
        config = load_config()
    except PostureError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CODES["config"]
    start_scheduler(config, make_emitter(config.output_path))
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    """Validate configuration without contacting Okta."""
    try:
        config = load_config()
    except PostureError as exc:
        print(f"invalid: {exc}")
        return EXIT_CODES["config"]
    mode = "oauth" if config.okta.uses_oauth else "api_token"
    print(f"ok: org_domain={config.okta.org_domain} auth={mode}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="okta-posture",
        description="Okta organization security posture collector",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # collect command
    collect_parser = subparsers.add_parser("collect", help="Run one collection")
    collect_parser.add_argument(
        "--output", "-o",
        help="Write the record to this file instead of stdout",
    )
    collect_parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Overall deadline for the run in seconds",
    )
    collect_parser.set_defaults(func=cmd_collect)

    # scheduler command
    sched_parser = subparsers.add_parser("scheduler", help="Start periodic collection")
    sched_parser.set_defaults(func=cmd_scheduler)

    # check-config command
    check_parser = subparsers.add_parser("check-config", help="Validate configuration")
    check_parser.set_defaults(func=cmd_check_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
