import logging
from pathlib import Path

import pytest

from counters import event_catalog as ev
from counters.derived_metrics import GIB, compute_derived_metrics
from counters.insight_rules import (
    RULE_IDS,
    RULES,
    Rule,
    RuleContext,
    analyze_snapshot,
    evaluate_rules,
)
from counters.record_parse import load_record
from schemas.config_ir import AnalysisConfig
from schemas.host_ir import HostFacts
from schemas.insight_ir import Insight
from schemas.snapshot_ir import MetricsSnapshot

SAMPLES = Path(__file__).resolve().parents[1] / "examples" / "sample_perf_stat"


def _snapshot(elapsed=None, **counts) -> MetricsSnapshot:
    return MetricsSnapshot.from_counts(counts, elapsed_seconds=elapsed)


def _ctx(snapshot: MetricsSnapshot, config=None, host=None) -> RuleContext:
    config = config or AnalysisConfig()
    return RuleContext(
        snapshot=snapshot,
        derived=compute_derived_metrics(snapshot, config),
        config=config,
        host=host or HostFacts(),
    )


def _ids(report) -> list:
    return [insight.rule_id for insight in report.insights]


def _find(report, rule_id: str) -> Insight:
    return next(insight for insight in report.insights if insight.rule_id == rule_id)


def test_rule_table_order() -> None:
    assert RULE_IDS == (
        "stall_rate",
        "l1_miss_rate",
        "ipc_level",
        "l2_miss_rate",
        "l3_hit_rate",
        "branch_miss_rate",
        "tlb_miss_rate",
        "prefetch_activity",
        "vectorization",
        "icache_pressure",
        "store_bound",
        "bandwidth_estimate",
        "branch_penalty",
        "residual_core_stalls",
        "memory_latency_breakdown",
        "operational_intensity",
        "vector_width",
        "matrix_accelerator_hint",
        "bandwidth_saturation",
    )
    assert len({rule.rule_id for rule in RULES}) == len(RULES)


def test_sample_record_insights_follow_evaluation_order() -> None:
    report = analyze_snapshot(load_record(SAMPLES / "gemm_baseline.txt"))
    assert _ids(report) == [
        "stall_rate",
        "ipc_level",
        "l2_miss_rate",
        "l3_hit_rate",
        "branch_miss_rate",
        "prefetch_activity",
        "vectorization",
        "bandwidth_estimate",
        "memory_latency_breakdown",
        "operational_intensity",
        "vector_width",
    ]
    assert report.summary.primary == "High stall rate (83% of cycles)"
    assert report.summary.secondary == "L2 cache misses"
    assert [item.rule_id for item in report.warnings] == [
        "stall_rate",
        "ipc_level",
        "l2_miss_rate",
        "vector_width",
    ]
    assert _find(report, "memory_latency_breakdown").data["dominant"] == "L3"
    assert _find(report, "prefetch_activity").severity == "info"


def test_l2_miss_warning_scenario() -> None:
    report = analyze_snapshot(
        _snapshot(**{ev.L2_REFERENCES: 1_280_709_046, ev.L2_MISSES: 800_164_862})
    )
    insight = _find(report, "l2_miss_rate")
    assert insight.severity == "warning"
    assert "62.5%" in insight.message
    assert report.summary.primary == "L2 cache misses"
    assert report.summary.secondary is None


def test_l2_advice_uses_detected_cache_size() -> None:
    snapshot = _snapshot(**{ev.L2_REFERENCES: 1_000, ev.L2_MISSES: 700})
    known = analyze_snapshot(snapshot, host=HostFacts(l2_cache_kb=2048))
    details = _find(known, "l2_miss_rate").details
    assert details == ["L2 cache: 2.0 MB per core (detected)", "Target working set: ~1.5 MB"]
    assert _find(known, "l2_miss_rate").data["target_working_set_mb"] == 1.5

    unknown = analyze_snapshot(snapshot)
    assert _find(unknown, "l2_miss_rate").details[0].startswith("L2 cache: unknown")
    assert "target_working_set_mb" not in _find(unknown, "l2_miss_rate").data


def test_good_l2_hit_rate_is_positive_note() -> None:
    report = analyze_snapshot(_snapshot(**{ev.L2_REFERENCES: 1_000, ev.L2_MISSES: 100}))
    insight = _find(report, "l2_miss_rate")
    assert insight.severity == "ok"
    assert insight.bottleneck is None
    assert report.summary.primary is None


def test_partial_record_degrades_gracefully() -> None:
    report = analyze_snapshot(load_record(SAMPLES / "partial.txt"))
    assert _ids(report) == ["branch_miss_rate", "branch_penalty"]
    assert report.summary.primary is None
    assert report.summary.secondary == "Branch mispredictions"


def test_l1_miss_rate_claims_first_free_slot() -> None:
    report = analyze_snapshot(_snapshot(**{ev.L1D_LOADS: 100, ev.L1D_LOAD_MISSES: 60}))
    assert report.summary.primary == "L1 cache misses"


def test_prefetch_band_is_not_an_l1_warning() -> None:
    report = analyze_snapshot(_snapshot(**{ev.L1D_LOADS: 100, ev.L1D_LOAD_MISSES: 150}))
    assert _ids(report) == ["prefetch_activity"]
    assert report.summary.primary is None


def test_disabled_rules_are_skipped() -> None:
    config = AnalysisConfig(disabled_rules=["stall_rate"])
    report = analyze_snapshot(load_record(SAMPLES / "gemm_baseline.txt"), config=config)
    assert "stall_rate" not in _ids(report)
    assert report.summary.primary == "Low IPC (execution stalls)"
    assert report.summary.secondary == "L2 cache misses"


def test_moderate_ipc_with_stalls_warns_without_claiming() -> None:
    report = analyze_snapshot(_snapshot(cycles=1_000, instructions=700, **{ev.STALLS_TOTAL: 600}))
    insight = _find(report, "ipc_level")
    assert insight.severity == "warning"
    assert insight.message.startswith("MODERATE IPC (0.70)")
    assert insight.bottleneck is None
    assert report.summary.primary == "High stall rate (60% of cycles)"
    assert report.summary.secondary is None


def test_good_ipc_note() -> None:
    report = analyze_snapshot(_snapshot(cycles=1_000, instructions=2_000))
    insight = _find(report, "ipc_level")
    assert insight.severity == "ok"
    assert "GOOD IPC (2.00)" in insight.message


def test_low_operational_intensity_claims_primary() -> None:
    report = analyze_snapshot(
        _snapshot(**{ev.FP_SCALAR_DOUBLE: 10_000_000, ev.LLC_LOAD_MISSES: 1_000_000})
    )
    insight = _find(report, "operational_intensity")
    assert insight.data["classification"] == "memory_bound"
    assert report.summary.primary == "Memory Bound (low OI)"


def test_bandwidth_saturation_claims_primary() -> None:
    reads = int(200 * GIB / 64)
    report = analyze_snapshot(_snapshot(elapsed=1.0, **{ev.DATA_READS: reads}))
    assert _ids(report) == ["bandwidth_estimate", "bandwidth_saturation"]
    assert _find(report, "bandwidth_estimate").severity == "warning"
    assert _find(report, "bandwidth_estimate").bottleneck is None
    assert report.summary.primary == "Memory Bandwidth Saturation"


def test_bandwidth_estimate_is_info_below_threshold() -> None:
    reads = int(50 * GIB / 64)
    report = analyze_snapshot(_snapshot(elapsed=1.0, **{ev.DATA_READS: reads}))
    assert _ids(report) == ["bandwidth_estimate"]
    assert _find(report, "bandwidth_estimate").severity == "info"


def test_peak_bandwidth_from_config() -> None:
    reads = int(50 * GIB / 64)
    config = AnalysisConfig(hardware={"peak_bandwidth_gbps": 60.0})
    report = analyze_snapshot(_snapshot(elapsed=1.0, **{ev.DATA_READS: reads}), config=config)
    assert report.summary.primary == "Memory Bandwidth Saturation"


def test_store_bound_respects_traffic_floor() -> None:
    quiet = analyze_snapshot(_snapshot(**{ev.LLC_STORES: 50_000, ev.LLC_STORE_MISSES: 40_000}))
    assert "store_bound" not in _ids(quiet)
    busy = analyze_snapshot(_snapshot(**{ev.LLC_STORES: 1_000_000, ev.LLC_STORE_MISSES: 600_000}))
    assert _ids(busy) == ["store_bound"]
    assert busy.summary.primary is None
    assert busy.summary.secondary == "RFO / Store Bandwidth"


def test_low_l3_hit_rate_claims_memory_bandwidth() -> None:
    acceptable = analyze_snapshot(_snapshot(**{ev.LLC_LOADS: 1_000, ev.LLC_LOAD_MISSES: 199}))
    assert "l3_hit_rate" not in _ids(acceptable)

    report = analyze_snapshot(_snapshot(**{ev.LLC_LOADS: 1_000_000, ev.LLC_LOAD_MISSES: 300_000}))
    assert _ids(report) == ["l3_hit_rate"]
    insight = _find(report, "l3_hit_rate")
    assert insight.severity == "warning"
    assert insight.message.startswith("HIGH L3 MISS RATE (30.0%)")
    assert report.summary.primary == "Memory bandwidth (L3 misses)"
    assert report.summary.secondary is None


def test_l3_warning_in_secondary_slot_uses_short_label() -> None:
    report = analyze_snapshot(
        _snapshot(
            **{
                ev.L2_REFERENCES: 1_000_000,
                ev.L2_MISSES: 600_000,
                ev.LLC_LOADS: 1_000_000,
                ev.LLC_LOAD_MISSES: 300_000,
            }
        )
    )
    assert _ids(report)[:2] == ["l2_miss_rate", "l3_hit_rate"]
    assert report.summary.primary == "L2 cache misses"
    assert report.summary.secondary == "Memory bandwidth"


def test_low_vectorization_claims_secondary() -> None:
    below_floor = analyze_snapshot(
        _snapshot(**{ev.FP_SCALAR_DOUBLE: 900_000, ev.FP_256B_DOUBLE: 100_000})
    )
    assert "vectorization" not in _ids(below_floor)

    report = analyze_snapshot(
        _snapshot(**{ev.FP_SCALAR_DOUBLE: 2_000_000, ev.FP_256B_DOUBLE: 100_000})
    )
    assert _ids(report) == ["vectorization"]
    insight = _find(report, "vectorization")
    assert insight.severity == "warning"
    assert insight.data["vectorization_ratio"] < 10.0
    assert report.summary.primary is None
    assert report.summary.secondary == "Poor Vectorization"


def test_low_vectorization_leaves_taken_secondary_slot() -> None:
    report = analyze_snapshot(
        _snapshot(
            **{
                ev.BRANCH_INSTRUCTIONS: 1_000,
                ev.BRANCH_MISSES: 100,
                ev.FP_SCALAR_DOUBLE: 2_000_000,
                ev.FP_256B_DOUBLE: 100_000,
            }
        )
    )
    assert _ids(report) == ["branch_miss_rate", "vectorization"]
    assert report.summary.secondary == "Branch mispredictions"


def test_icache_pressure_claims_secondary() -> None:
    report = analyze_snapshot(_snapshot(instructions=1_000_000, **{ev.L1I_LOAD_MISSES: 25_000}))
    assert _ids(report) == ["icache_pressure"]
    insight = _find(report, "icache_pressure")
    assert insight.severity == "warning"
    assert insight.data["icache_mpki"] == pytest.approx(25.0)
    assert report.summary.primary is None
    assert report.summary.secondary == "Instruction Cache Pressure"


def test_icache_pressure_needs_instructions() -> None:
    quiet = analyze_snapshot(_snapshot(instructions=1_000_000, **{ev.L1I_LOAD_MISSES: 19_000}))
    assert "icache_pressure" not in _ids(quiet)
    absent = analyze_snapshot(_snapshot(**{ev.L1I_LOAD_MISSES: 25_000}))
    assert "icache_pressure" not in _ids(absent)
    zero = analyze_snapshot(_snapshot(instructions=0, **{ev.L1I_LOAD_MISSES: 25_000}))
    assert "icache_pressure" not in _ids(zero)


def test_tlb_warning_does_not_claim() -> None:
    report = analyze_snapshot(_snapshot(**{ev.L1D_LOADS: 100_000, ev.DTLB_LOAD_MISSES: 2_000}))
    assert _ids(report) == ["tlb_miss_rate"]
    assert report.summary.primary is None
    assert report.summary.secondary is None


def test_residual_core_stalls() -> None:
    report = analyze_snapshot(
        _snapshot(cycles=1_000, **{ev.STALLS_TOTAL: 450, ev.STALLS_L1D_MISS: 100})
    )
    assert _ids(report) == ["residual_core_stalls"]
    assert report.summary.primary == "Execution/L1 Stalls"


def test_dram_dominant_latency_breakdown() -> None:
    report = analyze_snapshot(
        _snapshot(**{ev.STALLS_L1D_MISS: 1_000, ev.STALLS_L2_MISS: 900, ev.STALLS_L3_MISS: 800})
    )
    insight = _find(report, "memory_latency_breakdown")
    assert insight.data["dominant"] == "DRAM"
    assert "DRAM LATENCY DOMINANT" in insight.details
    assert insight.bottleneck is None


def test_no_dominant_tier_means_no_breakdown() -> None:
    report = analyze_snapshot(
        _snapshot(**{ev.STALLS_L1D_MISS: 900, ev.STALLS_L2_MISS: 600, ev.STALLS_L3_MISS: 300})
    )
    assert "memory_latency_breakdown" not in _ids(report)


def test_l2_tier_advice_mentions_tile_size() -> None:
    report = analyze_snapshot(
        _snapshot(**{ev.STALLS_L1D_MISS: 1_000, ev.STALLS_L2_MISS: 100, ev.STALLS_L3_MISS: 10}),
        host=HostFacts(l2_cache_kb=2048),
    )
    insight = _find(report, "memory_latency_breakdown")
    assert insight.recommendations[0] == "Tile/block to fit working set in ~1.5 MB (L2 = 2.0 MB)"


def test_vector_width_skips_sentinel_counts() -> None:
    counts = {
        ev.FP_256B_SINGLE: 5_000_000,
        ev.FP_512B_SINGLE: 100_000,
        ev.FP_256B_DOUBLE: 0,
        ev.FP_512B_DOUBLE: None,
    }
    assert "vector_width" not in _ids(analyze_snapshot(_snapshot(**counts)))
    counts[ev.FP_512B_DOUBLE] = 0
    assert "vector_width" in _ids(analyze_snapshot(_snapshot(**counts)))


def test_matrix_hint_is_advisory() -> None:
    report = analyze_snapshot(
        _snapshot(**{ev.FP_512B_SINGLE: 200_000_000, ev.LLC_LOADS: 100, ev.LLC_LOAD_MISSES: 20})
    )
    insight = _find(report, "matrix_accelerator_hint")
    assert insight.severity == "info"
    assert insight.bottleneck is None


def test_failing_rule_is_logged_and_skipped(caplog) -> None:
    def boom(ctx):
        raise ZeroDivisionError("division by zero")

    def always(ctx):
        return Insight(
            rule_id="always",
            severity="warning",
            category="test",
            message="always fires",
            bottleneck="Always",
        )

    rules = (Rule("boom", "test", "primary", boom), Rule("always", "test", "any", always))
    with caplog.at_level(logging.WARNING, logger="counters.insight_rules"):
        report = evaluate_rules(_ctx(MetricsSnapshot()), rules=rules)
    assert _ids(report) == ["always"]
    assert report.summary.primary == "Always"
    assert "boom" in caplog.text


def test_empty_snapshot_yields_no_insights() -> None:
    report = analyze_snapshot(MetricsSnapshot())
    assert report.insights == []
    assert report.summary.primary is None
    assert report.summary.secondary is None
