# tests/test_performance_ledger.py
import pytest

from resilience.performance_ledger import (
    DEFAULT_TIMEOUTS_MS,
    MAX_TIMEOUT_MS,
    MIN_TIMEOUT_MS,
    UNKNOWN_KIND_TIMEOUT_MS,
    PerformanceLedger,
)


def test_default_timeout_with_too_few_successes():
    ledger = PerformanceLedger()
    for _ in range(20):
        ledger.record("m", "section", 500_000, succeeded=False)
    ledger.record("m", "section", 100_000, succeeded=True)
    ledger.record("m", "section", 100_000, succeeded=True)

    assert ledger.recommended_timeout("m", "section") == DEFAULT_TIMEOUTS_MS["section"]
    assert ledger.recommended_timeout("m", "question") == DEFAULT_TIMEOUTS_MS["question"]
    assert ledger.recommended_timeout("m", "mystery") == UNKNOWN_KIND_TIMEOUT_MS


def test_timeout_formula_uses_trend_or_safety_margin():
    ledger = PerformanceLedger()
    for duration in [100_000, 110_000, 105_000, 95_000, 250_000]:
        ledger.record("m", "section", duration, succeeded=True)

    assert ledger.recommended_timeout("m", "section") == 330_000


def test_timeout_is_clamped():
    ledger = PerformanceLedger()
    for _ in range(3):
        ledger.record("fast", "analysis", 10, succeeded=True)
        ledger.record("slow", "analysis", 800_000, succeeded=True)

    assert ledger.recommended_timeout("fast", "analysis") == 10 + 60_000
    assert ledger.recommended_timeout("fast", "analysis") >= MIN_TIMEOUT_MS
    assert ledger.recommended_timeout("slow", "analysis") == MAX_TIMEOUT_MS


def test_pipeline_kinds_share_timing_class():
    ledger = PerformanceLedger()
    for duration in [100_000, 100_000, 100_000]:
        ledger.record("m", "draft", duration, succeeded=True)

    assert ledger.recommended_timeout("m", "section") == ledger.recommended_timeout(
        "m", "draft"
    )
    assert ledger.records[0].operation_kind == "section"


def test_degradation_needs_ten_samples():
    ledger = PerformanceLedger()
    for duration in [1] * 5 + [1_000_000] * 4:
        ledger.record("m", "section", duration, succeeded=True)
    assert len(ledger) == 9
    assert ledger.is_degrading("m") is False


def test_degradation_detected_when_recent_calls_slow_down():
    ledger = PerformanceLedger()
    for _ in range(30):
        ledger.record("m", "section", 1_000, succeeded=True)
    for _ in range(20):
        ledger.record("m", "section", 5_000, succeeded=True)

    assert ledger.is_degrading("m") is True
    assert ledger.is_degrading("other") is False


def test_degradation_ignores_failed_calls():
    ledger = PerformanceLedger()
    for _ in range(30):
        ledger.record("m", "section", 1_000, succeeded=True)
    for _ in range(15):
        ledger.record("m", "section", 900_000, succeeded=False)
    for _ in range(5):
        ledger.record("m", "section", 1_100, succeeded=True)

    assert ledger.is_degrading("m") is False

    for _ in range(20):
        ledger.record("m", "section", 900_000, succeeded=False)
    assert ledger.is_degrading("m") is False


def test_ring_buffer_evicts_oldest():
    ledger = PerformanceLedger(capacity=3)
    for duration in [1, 2, 3, 4]:
        ledger.record("m", "section", duration, succeeded=True)

    assert [r.duration_ms for r in ledger.records] == [2, 3, 4]


def test_profile_statistics():
    ledger = PerformanceLedger()
    ledger.record("m", "section", 100, succeeded=True)
    ledger.record("m", "section", 300, succeeded=False)

    profile = ledger.profile("m", "section")
    assert profile is not None
    assert profile.avg_duration == pytest.approx(200)
    assert profile.min_duration == 100
    assert profile.max_duration == 300
    assert profile.success_rate == pytest.approx(0.5)
    assert profile.sample_count == 2
    assert ledger.profile("unknown") is None


def test_clear_older_than_uses_clock():
    now = [0.0]
    ledger = PerformanceLedger(clock=lambda: now[0])
    ledger.record("m", "section", 1, succeeded=True)
    now[0] = 8 * 24 * 60 * 60 * 1000
    ledger.record("m", "section", 2, succeeded=True)

    assert ledger.clear_older_than(7) == 1
    assert [r.duration_ms for r in ledger.records] == [2]


def test_import_skips_malformed_rows():
    source = PerformanceLedger()
    source.record("m", "section", 10, succeeded=True, output_length=42)
    rows = source.export_records() + [{"model_id": "m"}, {"duration_ms": "x"}]

    target = PerformanceLedger()
    assert target.import_records(rows) == 1
    assert target.records[0].output_length == 42


def test_report_lists_each_model():
    ledger = PerformanceLedger()
    ledger.record("a", "section", 10, succeeded=True)
    ledger.record("b", "question", 20, succeeded=False)

    report = ledger.report()
    assert set(report) == {"a", "b"}
    assert report["b"]["success_rate"] == 0
    assert "question" in report["b"]["recommended_timeouts_ms"]
