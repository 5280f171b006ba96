import io
from pathlib import Path

from counters.compare import compare_snapshots
from counters.derived_metrics import compute_derived_metrics
from counters.insight_rules import analyze_snapshot
from counters.perf_record import RecordOutput
from counters.record_parse import load_record
from perfdiag.console import ANSI_THEME, PLAIN_THEME, ConsoleUI, render_comparison, render_report
from schemas.host_ir import HostFacts
from schemas.snapshot_ir import MetricsSnapshot

SAMPLES = Path(__file__).resolve().parents[1] / "examples" / "sample_perf_stat"


def _baseline_text(theme=PLAIN_THEME, with_insights=True) -> str:
    snapshot = load_record(SAMPLES / "gemm_baseline.txt")
    derived = compute_derived_metrics(snapshot)
    report = analyze_snapshot(snapshot, derived=derived) if with_insights else None
    return render_report(snapshot, derived, report, HostFacts(l2_cache_kb=2048, l3_cache_kb=107520), theme)


def test_report_table_groups_by_category() -> None:
    text = _baseline_text()
    assert "Performance Analysis Report" in text
    assert text.index("── L1 Cache ──") < text.index("── L2 Cache ──") < text.index("── CPU ──")
    assert "L1D Load Misses" in text
    assert "976,632,847" in text
    assert "106.07%" in text
    assert "<not counted>" in text
    assert "Host: L2 2.0 MB/core, L3 105.0 MB" in text


def test_report_derived_and_summary_blocks() -> None:
    text = _baseline_text()
    assert "IPC (Instructions Per Cycle): 0.171 (Very Low - severe stalling)" in text
    assert "(>100% = prefetcher active)" in text
    assert "L2 Cache Hit Rate: 37.52% (Poor)" in text
    assert "BOTTLENECK SUMMARY:" in text
    assert "Primary:   High stall rate (83% of cycles)" in text
    assert "Secondary: L2 cache misses" in text
    assert "⚠ HIGH STALL RATE" in text
    assert "✓ EXCELLENT L3 HIT RATE" in text


def test_report_without_insights() -> None:
    text = _baseline_text(with_insights=False)
    assert "BOTTLENECK SUMMARY:" not in text
    assert "Derived Metrics" in text


def test_plain_theme_has_no_escape_codes() -> None:
    assert "\033[" not in _baseline_text()
    assert "\033[0;31m" in _baseline_text(theme=ANSI_THEME)


def test_unavailable_metrics_are_omitted() -> None:
    snapshot = MetricsSnapshot.from_counts({"cycles": 100})
    text = render_report(snapshot, compute_derived_metrics(snapshot), analyze_snapshot(snapshot))
    assert "IPC" not in text
    assert "Primary:   No major bottleneck identified" in text
    assert "Secondary: None" in text


def test_topdown_block_rendered_when_present() -> None:
    snapshot = MetricsSnapshot.from_counts(
        {
            "topdown-retiring": 4_000,
            "topdown-bad-spec": 500,
            "topdown-fe-bound": 1_500,
            "topdown-be-bound": 4_000,
        }
    )
    text = render_report(snapshot, compute_derived_metrics(snapshot))
    assert "── Top-Down ──" in text
    assert "Backend Bound:    40.0%" in text
    assert "Primary TMA Bottleneck: Backend Bound" in text


def test_comparison_rendering() -> None:
    result = compare_snapshots(
        load_record(SAMPLES / "gemm_baseline.txt"),
        load_record(SAMPLES / "gemm_tiled.txt"),
    )
    text = render_comparison(result, baseline_name="gemm_baseline.txt", candidate_name="gemm_tiled.txt")
    assert "Performance Comparison" in text
    assert "Baseline:  gemm_baseline.txt" in text
    assert "-30.0%" in text
    assert "Slowdown:" in text
    assert "1.02x" in text
    assert "Speedup:" not in text
    assert "✓ L2 Traffic Reduced" in text
    # the iTLB row has no baseline value
    itlb = next(line for line in text.splitlines() if "iTLB Load Misses" in line)
    assert "<not counted>" in itlb
    assert "n/a" in itlb


def test_comparison_colors_follow_metric_direction() -> None:
    result = compare_snapshots(
        MetricsSnapshot.from_counts({"cycles": 100, "instructions": 100}, elapsed_seconds=1.0),
        MetricsSnapshot.from_counts({"cycles": 100, "instructions": 200}, elapsed_seconds=2.0),
    )
    text = render_comparison(result, ANSI_THEME)
    ipc_line = next(line for line in text.splitlines() if line.strip().startswith("IPC:"))
    elapsed_line = next(line for line in text.splitlines() if line.strip().startswith("Elapsed Time:"))
    assert "\033[0;32m+100.0%" in ipc_line
    assert "\033[0;31m+100.0%" in elapsed_line


def test_console_ui_writes_to_stream() -> None:
    stream = io.StringIO()
    ui = ConsoleUI(stream=stream)
    snapshot = MetricsSnapshot.from_counts({"cycles": 100, "instructions": 250})
    ui.report(snapshot, compute_derived_metrics(snapshot))
    assert "IPC (Instructions Per Cycle): 2.500 (Moderate - room for improvement)" in stream.getvalue()


def test_console_ui_disabled_is_silent() -> None:
    stream = io.StringIO()
    ui = ConsoleUI(enabled=False, stream=stream)
    snapshot = MetricsSnapshot.from_counts({"cycles": 100})
    ui.report(snapshot, compute_derived_metrics(snapshot))
    ui.recording_started("x.txt", ["./a.out"], ["cycles"], {})
    assert stream.getvalue() == ""


def test_recording_messages() -> None:
    stream = io.StringIO()
    ui = ConsoleUI(stream=stream)
    ui.recording_started("gemm.txt", ["./gemm", "4096"], ["cycles", "instructions"], {"OMP_NUM_THREADS": "56"})
    ui.recording_done(
        RecordOutput(
            record_path="gemm.txt",
            backup_path="gemm_20250311_140217.txt",
            exit_code=0,
            runtime_seconds=1.5,
            events=["cycles", "instructions"],
        ),
        "gemm",
    )
    out = stream.getvalue()
    assert "Command: ./gemm 4096" in out
    assert "OMP_NUM_THREADS=56" in out
    assert "LD_PRELOAD=<not set>" in out
    assert "cycles,instructions" in out
    assert "Existing file renamed to: gemm_20250311_140217.txt" in out
    assert "perfdiag --visualize --input gemm" in out
