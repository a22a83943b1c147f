#!/usr/bin/env python3
"""SignalFusion CLI — run the multi-source fusion loop.

Usage:
    python scripts/run_fusion.py --config fusion.yaml
    python scripts/run_fusion.py --config fusion.yaml --once
    python scripts/run_fusion.py --config fusion.yaml --cycles 10 --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path for consistent import resolution
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from config.settings import FusionConfig, load_config  # noqa: E402
from signalfusion.errors import ConfigurationError  # noqa: E402
from signalfusion.models.cycle import FusionCycleResult  # noqa: E402
from signalfusion.orchestrator import FusionOrchestrator  # noqa: E402
from signalfusion.utils.logging_utils import configure_logging  # noqa: E402


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the fusion runner."""
    parser = argparse.ArgumentParser(
        prog="run_fusion",
        description="SignalFusion — resilient multi-source signal fusion",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML configuration file (feeds, weights, thresholds)",
    )

    # ── Run mode ─────────────────────────────────────────────────────────────────
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Poll every source once, run a single cycle and exit",
    )
    mode.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Stop after this many cycles (default: run until SIGTERM / Ctrl-C)",
    )

    # ── Output and logging ───────────────────────────────────────────────────────
    parser.add_argument(
        "--output-root",
        type=str,
        default=None,
        help="Directory for exported cycle JSON (enables export)",
    )
    parser.add_argument(
        "--cache-dir",
        type=str,
        default=None,
        help="Directory for the durable cache tier",
    )
    parser.add_argument(
        "--baseline-path",
        type=str,
        default=None,
        help="JSON file for baseline/CII history persistence",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides LOG_LEVEL / config)",
    )
    return parser


def args_to_config(args: argparse.Namespace) -> FusionConfig:
    """Load the YAML config (if any) and apply CLI overrides."""
    config = load_config(args.config) if args.config else FusionConfig()
    if args.output_root:
        config.output_root = args.output_root
        config.export_results = True
    if args.cache_dir:
        config.cache_dir = args.cache_dir
    if args.baseline_path:
        config.baseline = dataclasses.replace(config.baseline, path=args.baseline_path)
    if args.log_level:
        config.log_level = args.log_level
    return config


def log_summary(logger: logging.Logger, result: FusionCycleResult) -> None:
    logger.info(
        "Cycle %s: %d signals, %d clusters, %d countries, degraded=%s",
        result.cycle_id,
        result.deduplicated_count,
        len(result.clusters),
        len(result.records),
        ",".join(d.value for d in result.degraded_domains) or "none",
    )
    top = sorted(result.records.values(), key=lambda r: (-r.cii, r.iso2))[:5]
    for record in top:
        logger.info("  %s  CII=%5.1f  %-9s %s", record.iso2, record.cii, record.level, record.trend)


def main() -> None:
    """CLI entrypoint — parse arguments, build config, run the orchestrator."""
    args = build_arg_parser().parse_args()

    logger = logging.getLogger("signalfusion.cli")
    try:
        config = args_to_config(args)
        configure_logging(config)
    except ConfigurationError as exc:
        logging.basicConfig(format="%(levelname)s: %(message)s")
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    try:
        orchestrator = FusionOrchestrator.from_config(config)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    if not orchestrator.sources:
        logger.error("No feeds configured — add a 'feeds' section to the config file")
        sys.exit(2)

    try:
        if args.once:
            log_summary(logger, asyncio.run(orchestrator.run_once()))
        else:
            asyncio.run(orchestrator.run(max_cycles=args.cycles))
    except KeyboardInterrupt:
        logger.info("SignalFusion interrupted by user")
        sys.exit(0)
    except Exception as exc:
        logger.exception("SignalFusion failed with unhandled exception: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
