# tests/test_cli.py
import json

import pytest

import main
from models import BookSpecModel
from orchestration import cli_runner
from orchestration.cli_runner import RunOptions, print_summary, write_report
from orchestration.models import BookRunReport, UnitReport
from resilience import FallbackStrategy


def test_parser_defaults():
    args = main.build_parser().parse_args(["--book", "book.yaml"])
    assert args.start_unit == 1
    assert args.strategies is None
    assert args.discuss is None
    assert args.emergency is False


def test_parser_reads_strategies():
    args = main.build_parser().parse_args(
        ["--book", "b.yaml", "--strategies", "retry, lower_temp", "--discuss", "2"]
    )
    assert args.strategies == [FallbackStrategy.RETRY, FallbackStrategy.LOWER_TEMP]
    assert args.discuss == 2


def test_parser_rejects_unknown_strategy():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(["--book", "b.yaml", "--strategies", "pray"])


def test_main_builds_run_options(monkeypatch):
    captured = {}

    def fake_run(options: RunOptions) -> int:
        captured["options"] = options
        return 0

    monkeypatch.setattr(main, "run", fake_run)
    code = main.main(
        ["--book", "b.yaml", "--emergency", "--max-retries", "2", "--no-research",
         "--debate-depth", "0", "--max-reloops", "1"]
    )

    options = captured["options"]
    assert code == 0
    assert options.fallback.emergency_mode is True
    assert options.fallback.max_retries == 2
    assert options.enable_research is False
    assert options.discussion.debate_depth == 0
    assert options.max_reloops == 1


def test_run_rejects_unreadable_book(monkeypatch, tmp_path):
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    assert cli_runner.run(RunOptions(book_path=str(tmp_path / "missing.yaml"))) == 1


def test_run_dispatches_to_async_runner(monkeypatch, tmp_path):
    book = tmp_path / "book.yaml"
    book.write_text("title: Deep Focus\nunits:\n  - One\n")
    seen = {}

    async def fake_run(spec: BookSpecModel, options: RunOptions) -> None:
        seen["spec"] = spec

    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner, "_run", fake_run)

    assert cli_runner.run(RunOptions(book_path=str(book))) == 0
    assert seen["spec"].book_id == "deep-focus"


def test_run_logs_unexpected_failure_and_returns_error_code(monkeypatch, tmp_path):
    book = tmp_path / "book.yaml"
    book.write_text("title: Deep Focus\nunits:\n  - One\n")
    logged = []

    async def broken_run(spec: BookSpecModel, options: RunOptions) -> None:
        raise RuntimeError("provider misconfigured")

    class RecordingLogger:
        def critical(self, event, **fields):
            logged.append((event, fields))

    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner, "_run", broken_run)
    monkeypatch.setattr(cli_runner, "logger", RecordingLogger())

    assert cli_runner.run(RunOptions(book_path=str(book))) == 1
    assert logged[0][1]["error"] == "provider misconfigured"
    assert logged[0][1]["exc_info"] is True


def test_summary_and_report(tmp_path, capsys):
    report = BookRunReport(
        book_id="deep-focus",
        units=[
            UnitReport(unit_number=1, title="One", final_text="a b c", quality=None),
            UnitReport(
                unit_number=3, title="Three", final_text="", quality=None, error="boom"
            ),
        ],
        skipped_units=[2],
        llm_calls=7,
    )
    print_summary(report)
    out = capsys.readouterr().out
    assert "deep-focus" in out
    assert "Skipped committed units: [2]" in out
    assert "Failed units: [3]" in out

    path = tmp_path / "report.json"
    write_report(str(path), report.to_dict())
    payload = json.loads(path.read_text())
    assert payload["units"][0]["words"] == 3
    assert payload["llm_calls"] == 7
    assert payload["failed_units"] == [3]
