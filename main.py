# main.py
"""CLI entry point for tome book generation."""

from __future__ import annotations

import argparse
import sys

from config import settings
from models import AutoGenerationConfig
from orchestration.cli_runner import RunOptions, run
from resilience import FallbackConfig, FallbackStrategy


def _strategies(value: str) -> list[FallbackStrategy]:
    try:
        return [FallbackStrategy(part.strip()) for part in value.split(",") if part.strip()]
    except ValueError as exc:
        choices = ", ".join(s.value for s in FallbackStrategy)
        raise argparse.ArgumentTypeError(f"{exc}; choose from {choices}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a book unit by unit.")
    parser.add_argument("--book", required=True, help="Path to the book YAML file")
    parser.add_argument("--start-unit", type=int, default=1, help="First unit to generate")
    parser.add_argument(
        "--max-retries",
        type=int,
        default=settings.FALLBACK_MAX_RETRIES,
        help="Attempts per generation call, the first one included",
    )
    parser.add_argument(
        "--strategies",
        type=_strategies,
        default=None,
        help="Comma-separated fallback strategies, in order",
    )
    parser.add_argument(
        "--emergency", action="store_true", help="Use only the minimal fallback strategy"
    )
    parser.add_argument("--no-research", action="store_true", help="Skip unit research")
    parser.add_argument(
        "--max-reloops",
        type=int,
        default=None,
        help="Redraft a unit at most this many times when the quality gate fails",
    )
    parser.add_argument(
        "--discuss",
        type=int,
        default=None,
        metavar="UNIT",
        help="Simulate a reader discussion of a committed unit instead of generating",
    )
    parser.add_argument("--questions-per-persona", type=int, default=2)
    parser.add_argument("--voting-rounds", type=int, default=1)
    parser.add_argument("--debate-depth", type=int, default=1)
    parser.add_argument("--report-json", default=None, help="Write the run report here")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and start tome."""
    args = build_parser().parse_args(argv)
    fallback = FallbackConfig(
        max_retries=args.max_retries,
        strategies=args.strategies or FallbackConfig.from_settings().strategies,
        emergency_mode=args.emergency,
    )
    options = RunOptions(
        book_path=args.book,
        start_unit=args.start_unit,
        fallback=fallback,
        discuss_unit=args.discuss,
        discussion=AutoGenerationConfig(
            questions_per_persona=args.questions_per_persona,
            voting_rounds=args.voting_rounds,
            debate_depth=args.debate_depth,
        ),
        report_json=args.report_json,
        enable_research=settings.ENABLE_RESEARCH and not args.no_research,
        max_reloops=args.max_reloops,
    )
    return run(options)


if __name__ == "__main__":
    sys.exit(main())
