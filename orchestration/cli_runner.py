# orchestration/cli_runner.py
"""Command-line runner for book generation and reader discussions."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import structlog
from rich.console import Console
from rich.table import Table

from core.llm_interface import LLMService
from models import AutoGenerationConfig, BookSpecModel
from orchestration.book_orchestrator import BookOrchestrator
from orchestration.models import BookRunReport
from resilience import FallbackConfig
from ui.rich_display import RichDisplayManager
from utils.logging import setup_logging
from yaml_parser import load_book_spec

logger = structlog.get_logger(__name__)


@dataclass
class RunOptions:
    book_path: str
    start_unit: int = 1
    fallback: FallbackConfig | None = None
    discuss_unit: int | None = None
    discussion: AutoGenerationConfig | None = None
    report_json: str | None = None
    enable_research: bool = True
    max_reloops: int | None = None


def print_summary(report: BookRunReport, console: Console | None = None) -> None:
    console = console or Console()
    table = Table(title=f"Book run: {report.book_id}")
    for column in ("Unit", "Title", "Words", "Score", "Passed", "Degraded", "Re-loops"):
        table.add_column(column)
    for unit in report.units:
        quality = unit.quality
        score = (
            f"{quality.total_score:g}/{quality.max_possible_score:g}" if quality else "-"
        )
        table.add_row(
            str(unit.unit_number),
            unit.title,
            str(len(unit.final_text.split())),
            score,
            "yes" if unit.passed else "no",
            "yes" if unit.degraded else "no",
            str(unit.reloops),
        )
    console.print(table)
    if report.failed_units:
        console.print(f"Failed units: {report.failed_units}")
    if report.skipped_units:
        console.print(f"Skipped committed units: {report.skipped_units}")
    console.print(
        f"Generation calls: {report.llm_calls} (degraded: {report.degraded_calls})"
    )


def write_report(path: str, payload: dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
    logger.info("Report written", path=path)


async def _run(spec: BookSpecModel, options: RunOptions) -> None:
    service = LLMService()
    display = RichDisplayManager()
    kwargs: dict[str, Any] = {
        "fallback_config": options.fallback,
        "listener": display,
        "enable_research": options.enable_research,
    }
    if options.max_reloops is not None:
        kwargs["max_reloops"] = options.max_reloops
    orchestrator = BookOrchestrator.create(spec, service, **kwargs)
    display.llm = orchestrator.llm
    display.start()
    try:
        if options.discuss_unit is not None:
            transcript = await orchestrator.discuss_unit(
                options.discuss_unit, options.discussion
            )
            payload = transcript.model_dump() if transcript else {}
            if transcript:
                Console().print_json(data=payload)
        else:
            report = await orchestrator.run(start_unit=options.start_unit)
            payload = report.to_dict()
            print_summary(report)
        if options.report_json:
            write_report(options.report_json, payload)
    finally:
        await display.stop()
        await service.aclose()


def run(options: RunOptions) -> int:
    """Load the book file and run the requested operation. Returns an exit code."""
    setup_logging()
    spec = load_book_spec(options.book_path)
    if spec is None:
        logger.error("Could not load book file", path=options.book_path)
        return 1
    try:
        asyncio.run(_run(spec, options))
    except KeyboardInterrupt:
        logger.info("Tome shutting down gracefully due to KeyboardInterrupt...")
        return 130
    except Exception as main_err:
        logger.critical(
            "Tome encountered an unhandled main exception",
            error=str(main_err),
            exc_info=True,
        )
        return 1
    return 0
