from __future__ import annotations

from typing import Optional

from counters import event_catalog as ev
from schemas.config_ir import AnalysisConfig, Thresholds
from schemas.derived_ir import (
    BranchBand,
    DerivedMetrics,
    IntensityClass,
    IpcBand,
    L2Band,
    L3Band,
    StallBreakdown,
    TopDownBreakdown,
)
from schemas.snapshot_ir import MetricsSnapshot

GIB = 1024.0 ** 3


def ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """numerator / denominator, or None when either side is unusable."""
    if numerator is None or denominator is None or denominator <= 0:
        return None
    return numerator / denominator


def percent(
    numerator: Optional[float],
    denominator: Optional[float],
    clamp: bool = True,
) -> Optional[float]:
    value = ratio(numerator, denominator)
    if value is None:
        return None
    value *= 100.0
    if clamp:
        value = min(100.0, max(0.0, value))
    return value


def hit_rate(misses: Optional[int], accesses: Optional[int]) -> Optional[float]:
    miss_pct = percent(misses, accesses)
    if miss_pct is None:
        return None
    return 100.0 - miss_pct


def ipc_band(ipc: float, t: Thresholds) -> IpcBand:
    if ipc < t.ipc_severe_below:
        return "severe"
    if ipc < t.ipc_low_below:
        return "low"
    if ipc < t.ipc_moderate_below:
        return "moderate"
    if ipc < t.ipc_good_below:
        return "good"
    return "excellent"


def l2_band(hit: float, t: Thresholds) -> L2Band:
    if hit < t.l2_hit_poor_below:
        return "poor"
    if hit < t.l2_hit_moderate_below:
        return "moderate"
    return "good"


def l3_band(hit: float, t: Thresholds) -> L3Band:
    if hit > t.l3_hit_excellent_above:
        return "excellent"
    if hit > t.l3_hit_acceptable_above:
        return "acceptable"
    return "high_traffic"


def branch_band(miss_rate: float, t: Thresholds) -> BranchBand:
    if miss_rate < t.branch_miss_excellent_below:
        return "excellent"
    if miss_rate < t.branch_miss_acceptable_below:
        return "acceptable"
    return "high"


def intensity_class(oi: float, t: Thresholds) -> IntensityClass:
    if oi < t.intensity_memory_below:
        return "memory_bound"
    if oi < t.intensity_balanced_below:
        return "balanced"
    return "compute_bound"


def _fp_sum(snapshot: MetricsSnapshot, weighted: bool, packed_only: Optional[bool] = None) -> Optional[int]:
    """Sum FP arith counters.

    Events never recorded contribute nothing; a single sentinel-valued FP
    event makes the sum unavailable, since an uncounted width could hide work.
    """
    total = 0
    seen = False
    for fp in ev.FP_EVENTS:
        if packed_only is True and fp.width_bits == 0:
            continue
        if packed_only is False and fp.width_bits != 0:
            continue
        if snapshot.is_unavailable(fp.key):
            return None
        count = snapshot.count(fp.key)
        if count is None:
            continue
        seen = True
        total += count * fp.elements if weighted else count
    return total if seen else None


def total_flops(snapshot: MetricsSnapshot) -> Optional[int]:
    return _fp_sum(snapshot, weighted=True)


def fp_instruction_count(snapshot: MetricsSnapshot) -> Optional[int]:
    return _fp_sum(snapshot, weighted=False)


def data_reads(snapshot: MetricsSnapshot) -> Optional[int]:
    reads = snapshot.count(ev.DATA_READS)
    if reads is None:
        reads = snapshot.count(ev.ALL_DATA_READS)
    return reads


def stall_breakdown(snapshot: MetricsSnapshot) -> Optional[StallBreakdown]:
    """Split L1D-miss stalls into the tier that finally served the miss.

    stalls_l1d_miss >= stalls_l2_miss >= stalls_l3_miss by construction;
    measurement noise can break that, so each narrower count is clamped to
    the wider one before differencing.
    """
    l1 = snapshot.count(ev.STALLS_L1D_MISS)
    l2 = snapshot.count(ev.STALLS_L2_MISS)
    l3 = snapshot.count(ev.STALLS_L3_MISS)
    if l1 is None or l2 is None or l3 is None or l1 <= 0:
        return None
    l2 = min(l2, l1)
    l3 = min(l3, l2)
    l2_hit = l1 - l2
    l3_hit = l2 - l3
    dram = l3
    return StallBreakdown(
        l1_miss_stall_cycles=l1,
        l2_hit_cycles=l2_hit,
        l3_hit_cycles=l3_hit,
        dram_cycles=dram,
        l2_hit_pct=l2_hit * 100.0 / l1,
        l3_hit_pct=l3_hit * 100.0 / l1,
        dram_pct=dram * 100.0 / l1,
    )


def topdown_breakdown(snapshot: MetricsSnapshot, t: Thresholds) -> Optional[TopDownBreakdown]:
    parts = [
        snapshot.count(key)
        for key in (ev.TOPDOWN_RETIRING, ev.TOPDOWN_BAD_SPEC, ev.TOPDOWN_FE_BOUND, ev.TOPDOWN_BE_BOUND)
    ]
    if any(part is None for part in parts):
        return None
    retiring, bad_spec, fe_bound, be_bound = parts
    total = retiring + bad_spec + fe_bound + be_bound
    if total <= 0:
        return None
    retiring_pct = retiring * 100.0 / total
    bad_spec_pct = bad_spec * 100.0 / total
    fe_pct = fe_bound * 100.0 / total
    be_pct = be_bound * 100.0 / total

    dominant = None
    best = 0.0
    for name, value, floor in (
        ("Backend Bound", be_pct, t.topdown_backend_above),
        ("Frontend Bound", fe_pct, t.topdown_frontend_above),
        ("Bad Speculation", bad_spec_pct, t.topdown_bad_spec_above),
    ):
        if value > best and value > floor:
            dominant, best = name, value
    return TopDownBreakdown(
        retiring_pct=retiring_pct,
        bad_speculation_pct=bad_spec_pct,
        frontend_bound_pct=fe_pct,
        backend_bound_pct=be_pct,
        dominant=dominant,
    )


def compute_derived_metrics(
    snapshot: MetricsSnapshot,
    config: Optional[AnalysisConfig] = None,
) -> DerivedMetrics:
    config = config or AnalysisConfig()
    t = config.thresholds
    line = config.hardware.cache_line_bytes
    count = snapshot.count

    cycles = count(ev.CYCLES)
    instructions = count(ev.INSTRUCTIONS)
    ipc = ratio(instructions, cycles) if instructions else None
    cpi = ratio(cycles, instructions) if ipc is not None else None

    l1_loads = count(ev.L1D_LOADS)
    l1_misses = count(ev.L1D_LOAD_MISSES)
    # Prefetch-driven misses can exceed demand loads, so no clamp here.
    l1_ratio = percent(l1_misses, l1_loads, clamp=False)

    l2_hit = hit_rate(count(ev.L2_MISSES), count(ev.L2_REFERENCES))
    l3_hit = hit_rate(count(ev.LLC_LOAD_MISSES), count(ev.LLC_LOADS))
    cache_hit = hit_rate(count(ev.CACHE_MISSES), count(ev.CACHE_REFERENCES))
    branch_miss = percent(count(ev.BRANCH_MISSES), count(ev.BRANCH_INSTRUCTIONS))

    stall_pct = percent(count(ev.STALLS_TOTAL), cycles)
    mem_stall_pct = percent(count(ev.CYCLES_MEM_ANY), cycles)
    mem_intensity = ratio(l1_loads, instructions)

    flops = total_flops(snapshot)
    fp_instructions = fp_instruction_count(snapshot)
    elapsed = snapshot.elapsed_seconds
    gflops = None
    if flops and elapsed:
        gflops = flops / (elapsed * 1e9)

    vectorization = None
    if fp_instructions is not None and fp_instructions > t.fp_instruction_floor:
        packed = _fp_sum(snapshot, weighted=False, packed_only=True) or 0
        vectorization = percent(packed, fp_instructions)

    oi = None
    llc_misses = count(ev.LLC_LOAD_MISSES)
    if flops and llc_misses:
        oi = flops / (llc_misses * line)

    bandwidth = None
    reads = data_reads(snapshot)
    if reads is not None and elapsed:
        bandwidth = reads * line / (elapsed * GIB)

    return DerivedMetrics(
        ipc=ipc,
        ipc_band=ipc_band(ipc, t) if ipc is not None else None,
        cpi=cpi,
        l1_miss_ratio=l1_ratio,
        prefetch_active=(l1_ratio > 100.0) if l1_ratio is not None else None,
        l2_hit_rate=l2_hit,
        l2_band=l2_band(l2_hit, t) if l2_hit is not None else None,
        l3_hit_rate=l3_hit,
        l3_band=l3_band(l3_hit, t) if l3_hit is not None else None,
        cache_hit_rate=cache_hit,
        branch_miss_rate=branch_miss,
        branch_band=branch_band(branch_miss, t) if branch_miss is not None else None,
        stall_pct=stall_pct,
        memory_stall_pct=mem_stall_pct,
        memory_intensity=mem_intensity,
        fp_instructions=fp_instructions,
        total_flops=flops,
        gflops=gflops,
        vectorization_ratio=vectorization,
        operational_intensity=oi,
        intensity_class=intensity_class(oi, t) if oi is not None else None,
        read_bandwidth_gbps=bandwidth,
        stall_breakdown=stall_breakdown(snapshot),
        topdown=topdown_breakdown(snapshot, t),
        elapsed_seconds=elapsed,
    )
