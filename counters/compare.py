from __future__ import annotations

import logging
from typing import List, Optional

from counters import event_catalog as ev
from counters.derived_metrics import compute_derived_metrics, ratio
from schemas.comparison_ir import (
    ChangeBand,
    ComparisonResult,
    EventDelta,
    Explanation,
    MetricDelta,
)
from schemas.config_ir import AnalysisConfig, ComparisonThresholds
from schemas.derived_ir import DerivedMetrics
from schemas.snapshot_ir import MetricsSnapshot

logger = logging.getLogger(__name__)


def format_count(value: float) -> str:
    """Compact count: 1.28B, 896.5M, 12.0K."""
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return f"{int(value)}"


def percent_change(baseline: Optional[float], candidate: Optional[float]) -> float:
    """Relative change in percent.

    Undefined changes (zero or missing baseline, missing candidate) are
    reported as 0.0 rather than as an infinity.
    """
    if baseline is None or candidate is None or baseline <= 0:
        return 0.0
    return (candidate - baseline) * 100.0 / baseline


def change_band(change: float, threshold: float) -> ChangeBand:
    if change < -threshold:
        return "decrease"
    if change > threshold:
        return "increase"
    return "neutral"


def compare_events(
    baseline: MetricsSnapshot,
    candidate: MetricsSnapshot,
    thresholds: ComparisonThresholds,
) -> List[EventDelta]:
    order = list(baseline.readings)
    order.extend(event for event in candidate.readings if event not in baseline.readings)

    rows: List[EventDelta] = []
    for event in order:
        base = baseline.count(event)
        cand = candidate.count(event)
        if not base and not cand:
            continue
        if base is not None and cand is not None:
            status = "both"
        elif base is not None:
            status = "baseline_only"
        else:
            status = "candidate_only"
        change = percent_change(base, cand)
        category, label = ev.classify(event)
        base_reading = baseline.readings.get(event)
        cand_reading = candidate.readings.get(event)
        rows.append(
            EventDelta(
                event=event,
                label=label,
                category=category,
                baseline=base,
                candidate=cand,
                baseline_raw=base_reading.raw if base_reading else "",
                candidate_raw=cand_reading.raw if cand_reading else "",
                change_pct=change,
                band=change_band(change, thresholds.event_band_pct),
                status=status,
            )
        )
    return rows


def compare_derived(
    base: DerivedMetrics,
    cand: DerivedMetrics,
    thresholds: ComparisonThresholds,
) -> List[MetricDelta]:
    deltas: List[MetricDelta] = []
    if base.ipc is not None and cand.ipc is not None:
        change = percent_change(base.ipc, cand.ipc)
        deltas.append(
            MetricDelta(
                metric="ipc",
                label="IPC",
                baseline=base.ipc,
                candidate=cand.ipc,
                delta=change,
                unit="pct",
                band=change_band(change, thresholds.ipc_band_pct),
            )
        )
    for name, label, band_pp in (
        ("l2_hit_rate", "L2 Hit Rate", thresholds.l2_hit_band_pp),
        ("l3_hit_rate", "L3 Hit Rate", thresholds.l3_hit_band_pp),
    ):
        before = getattr(base, name)
        after = getattr(cand, name)
        if before is None or after is None:
            continue
        delta = after - before
        deltas.append(
            MetricDelta(
                metric=name,
                label=label,
                baseline=before,
                candidate=after,
                delta=delta,
                unit="pp",
                band=change_band(delta, band_pp),
            )
        )
    if base.elapsed_seconds and cand.elapsed_seconds:
        change = percent_change(base.elapsed_seconds, cand.elapsed_seconds)
        deltas.append(
            MetricDelta(
                metric="elapsed_seconds",
                label="Elapsed Time",
                baseline=base.elapsed_seconds,
                candidate=cand.elapsed_seconds,
                delta=change,
                unit="pct",
                band=change_band(change, thresholds.elapsed_band_pct),
            )
        )
    return deltas


def _both_positive(*values: Optional[float]) -> bool:
    return all(value is not None and value > 0 for value in values)


def explain(
    baseline: MetricsSnapshot,
    candidate: MetricsSnapshot,
    base_derived: DerivedMetrics,
    cand_derived: DerivedMetrics,
    t: ComparisonThresholds,
) -> List[Explanation]:
    found: List[Explanation] = []
    b, c = baseline.count, candidate.count

    base_l2, cand_l2 = b(ev.L2_REFERENCES), c(ev.L2_REFERENCES)
    if _both_positive(base_l2, cand_l2):
        change = percent_change(base_l2, cand_l2)
        if change < -t.l2_traffic_pct:
            found.append(
                Explanation(
                    kind="l2_traffic_reduced",
                    direction="better",
                    message=(
                        f"L2 Traffic Reduced: {format_count(base_l2)} -> {format_count(cand_l2)} "
                        f"({-change:.0f}% fewer, saved {format_count(base_l2 - cand_l2)} accesses)"
                    ),
                    details=["Better L1 data reuse in optimized version"],
                    data={"change_pct": change},
                )
            )
        elif change > t.l2_traffic_pct:
            found.append(
                Explanation(
                    kind="l2_traffic_increased",
                    direction="worse",
                    message=(
                        f"L2 Traffic Increased: {format_count(base_l2)} -> {format_count(cand_l2)} "
                        f"(+{change:.0f}%)"
                    ),
                    data={"change_pct": change},
                )
            )

    base_stalls, cand_stalls = b(ev.STALLS_L2_MISS), c(ev.STALLS_L2_MISS)
    if _both_positive(base_stalls, cand_stalls):
        change = percent_change(base_stalls, cand_stalls)
        if change < -t.l2_stall_reduction_pct:
            found.append(
                Explanation(
                    kind="l2_miss_stalls_reduced",
                    direction="better",
                    message=(
                        f"L2 Miss Stalls Reduced: {format_count(base_stalls)} -> "
                        f"{format_count(cand_stalls)} cycles ({-change:.0f}% fewer)"
                    ),
                    data={"change_pct": change},
                )
            )

    base_llc, cand_llc = b(ev.LLC_LOADS), c(ev.LLC_LOADS)
    if _both_positive(base_llc, cand_llc):
        change = percent_change(base_llc, cand_llc)
        if change < -t.l3_traffic_reduction_pct:
            found.append(
                Explanation(
                    kind="l3_traffic_reduced",
                    direction="better",
                    message=(
                        f"L3 Traffic Reduced: {format_count(base_llc)} -> {format_count(cand_llc)} "
                        f"({-change:.0f}% fewer L2 misses)"
                    ),
                    data={"change_pct": change},
                )
            )

    base_stores, cand_stores = b(ev.L1D_STORES), c(ev.L1D_STORES)
    if _both_positive(base_stores, cand_stores):
        change = percent_change(base_stores, cand_stores)
        if change < -t.store_reduction_pct:
            found.append(
                Explanation(
                    kind="stores_reduced",
                    direction="better",
                    message=(
                        f"Store Operations Reduced: {format_count(base_stores)} -> "
                        f"{format_count(cand_stores)} ({-change:.0f}% fewer)"
                    ),
                    data={"change_pct": change},
                )
            )

    base_oi = base_derived.operational_intensity
    cand_oi = cand_derived.operational_intensity
    if _both_positive(base_oi, cand_oi):
        oi_ratio = cand_oi / base_oi
        if oi_ratio > t.intensity_better_ratio:
            found.append(
                Explanation(
                    kind="data_reuse_improved",
                    direction="better",
                    message=(
                        f"Data Reuse Improved: {base_oi:.1f} -> {cand_oi:.1f} FLOPs/byte "
                        f"({oi_ratio:.1f}x better)"
                    ),
                    details=["More compute per byte of DRAM traffic"],
                    data={"ratio": oi_ratio},
                )
            )
        elif oi_ratio < t.intensity_worse_ratio:
            found.append(
                Explanation(
                    kind="data_reuse_degraded",
                    direction="worse",
                    message=(
                        f"Data Reuse Degraded: {base_oi:.1f} -> {cand_oi:.1f} FLOPs/byte "
                        f"({1 / oi_ratio:.1f}x worse)"
                    ),
                    data={"ratio": oi_ratio},
                )
            )

    base_pf = ratio(b(ev.L1D_LOAD_MISSES), b(ev.L1D_LOADS))
    cand_pf = ratio(c(ev.L1D_LOAD_MISSES), c(ev.L1D_LOADS))
    if base_pf is not None and cand_pf is not None and base_pf > 1.0 and cand_pf > 1.0:
        if base_pf > cand_pf * t.prefetch_reduction_ratio:
            found.append(
                Explanation(
                    kind="prefetch_pressure_reduced",
                    direction="better",
                    message=(
                        f"Prefetch Pressure Reduced: {base_pf:.1f}x -> {cand_pf:.1f}x miss/load ratio"
                    ),
                    details=["More efficient memory access pattern"],
                    data={"baseline_ratio": base_pf, "candidate_ratio": cand_pf},
                )
            )

    base_total, cand_total = b(ev.STALLS_TOTAL), c(ev.STALLS_TOTAL)
    base_cycles, cand_cycles = b(ev.CYCLES), c(ev.CYCLES)
    if _both_positive(base_total, cand_total, base_cycles, cand_cycles):
        saved = base_total - cand_total
        if saved > base_cycles * t.stall_savings_fraction:
            found.append(
                Explanation(
                    kind="stall_cycles_reduced",
                    direction="better",
                    message=f"Stall Cycles Reduced: {format_count(saved)} cycles saved",
                    data={"cycles_saved": float(saved)},
                )
            )

    if not found:
        found.append(
            Explanation(
                kind="no_significant_difference",
                direction="neutral",
                message="No significant metric differences detected.",
                details=[
                    "Performance difference may be due to measurement variance or system noise",
                    "or to effects not captured by these counters",
                ],
            )
        )
    return found


def compare_snapshots(
    baseline: MetricsSnapshot,
    candidate: MetricsSnapshot,
    config: Optional[AnalysisConfig] = None,
) -> ComparisonResult:
    config = config or AnalysisConfig()
    thresholds = config.comparison
    base_derived = compute_derived_metrics(baseline, config)
    cand_derived = compute_derived_metrics(candidate, config)

    base_time = baseline.elapsed_seconds
    cand_time = candidate.elapsed_seconds
    speedup = slowdown = None
    if base_time and cand_time:
        # Wall time, not cycles, decides the direction.
        if base_time > cand_time:
            speedup = base_time / cand_time
        elif cand_time > base_time:
            slowdown = cand_time / base_time

    result = ComparisonResult(
        rows=compare_events(baseline, candidate, thresholds),
        metric_deltas=compare_derived(base_derived, cand_derived, thresholds),
        baseline_elapsed=base_time,
        candidate_elapsed=cand_time,
        speedup=speedup,
        slowdown=slowdown,
        explanations=explain(baseline, candidate, base_derived, cand_derived, thresholds),
    )
    logger.debug(
        "Compared %s vs %s: %d rows, %d explanations",
        baseline.source,
        candidate.source,
        len(result.rows),
        len(result.explanations),
    )
    return result
