from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Tuple

from counters import event_catalog as ev
from counters.derived_metrics import compute_derived_metrics, percent, ratio
from schemas.config_ir import AnalysisConfig, Thresholds
from schemas.derived_ir import DerivedMetrics
from schemas.host_ir import HostFacts
from schemas.insight_ir import BottleneckSummary, Insight, InsightReport
from schemas.snapshot_ir import MetricsSnapshot

logger = logging.getLogger(__name__)

Claim = Literal["any", "primary", "secondary", "none"]


@dataclass(frozen=True)
class RuleContext:
    snapshot: MetricsSnapshot
    derived: DerivedMetrics
    config: AnalysisConfig
    host: HostFacts

    @property
    def t(self) -> Thresholds:
        return self.config.thresholds

    def count(self, event: str) -> Optional[int]:
        return self.snapshot.count(event)


@dataclass(frozen=True)
class Rule:
    rule_id: str
    category: str
    claim: Claim
    evaluate: Callable[[RuleContext], Optional[Insight]]


def _l2_size_lines(host: HostFacts, fraction: float) -> List[str]:
    if host.l2_cache_kb > 0:
        l2_mb = host.l2_cache_mb
        return [
            f"L2 cache: {l2_mb:.1f} MB per core (detected)",
            f"Target working set: ~{l2_mb * fraction:.1f} MB",
        ]
    return ["L2 cache: unknown (check /sys/devices/system/cpu/cpu0/cache/)"]


def stall_rate(ctx: RuleContext) -> Optional[Insight]:
    stall_pct = ctx.derived.stall_pct
    if not ctx.count(ev.STALLS_TOTAL) or stall_pct is None:
        return None
    if stall_pct <= ctx.t.stall_warn_above:
        return None
    details = []
    if ctx.derived.memory_stall_pct:
        details.append(f"Memory-related cycles: {ctx.derived.memory_stall_pct:.1f}% of total")
    return Insight(
        rule_id="stall_rate",
        severity="warning",
        category="stall",
        message=f"HIGH STALL RATE ({stall_pct:.1f}% of cycles) - CPU mostly waiting",
        details=details,
        recommendations=["Optimize memory access patterns, improve cache utilization"],
        data={"stall_pct": stall_pct, "memory_stall_pct": ctx.derived.memory_stall_pct},
        bottleneck=f"High stall rate ({stall_pct:.0f}% of cycles)",
    )


def l1_miss_rate(ctx: RuleContext) -> Optional[Insight]:
    miss_rate = ctx.derived.l1_miss_ratio
    if miss_rate is None or not ctx.count(ev.L1D_LOAD_MISSES):
        return None
    # Above 100% the prefetcher is at work; the prefetch rule reports that.
    if not (ctx.t.l1_miss_warn_above < miss_rate <= 100.0):
        return None
    return Insight(
        rule_id="l1_miss_rate",
        severity="warning",
        category="L1",
        message=f"HIGH L1 MISS RATE ({miss_rate:.1f}%) - Poor L1 cache utilization",
        details=["Most loads miss L1 cache (32-48KB per core)"],
        recommendations=["Improve spatial/temporal locality, consider prefetching"],
        data={"l1_miss_ratio": miss_rate},
        bottleneck="L1 cache misses",
    )


def ipc_level(ctx: RuleContext) -> Optional[Insight]:
    ipc = ctx.derived.ipc
    if ipc is None:
        return None
    mem_stall = ctx.derived.memory_stall_pct
    if ipc < ctx.t.ipc_severe_below:
        details = []
        if mem_stall:
            details.append(f"Memory stalls account for {mem_stall:.1f}% of cycles")
        return Insight(
            rule_id="ipc_level",
            severity="warning",
            category="ipc",
            message=f"LOW IPC ({ipc:.2f}) - CPU is frequently stalling",
            details=details,
            recommendations=["Improve data locality, consider blocking/tiling"],
            data={"ipc": ipc},
            bottleneck="Low IPC (execution stalls)",
        )
    if ipc < ctx.t.ipc_good_note_at:
        stall_pct = ctx.derived.stall_pct
        if stall_pct is not None and stall_pct > ctx.t.stall_warn_above:
            return Insight(
                rule_id="ipc_level",
                severity="warning",
                category="ipc",
                message=f"MODERATE IPC ({ipc:.2f}) with high stalls",
                details=["IPC limited by memory/execution stalls"],
                data={"ipc": ipc, "stall_pct": stall_pct},
            )
        return None
    return Insight(
        rule_id="ipc_level",
        severity="ok",
        category="ipc",
        message=f"GOOD IPC ({ipc:.2f}) - CPU executing efficiently",
        data={"ipc": ipc},
    )


def l2_miss_rate(ctx: RuleContext) -> Optional[Insight]:
    hit = ctx.derived.l2_hit_rate
    if hit is None:
        return None
    miss_rate = 100.0 - hit
    if miss_rate > ctx.t.l2_miss_warn_above:
        fraction = ctx.config.hardware.l2_tile_target_fraction
        data = {"l2_miss_rate": miss_rate, "l2_hit_rate": hit}
        if ctx.host.l2_cache_kb > 0:
            data["l2_cache_mb"] = ctx.host.l2_cache_mb
            data["target_working_set_mb"] = ctx.host.l2_cache_mb * fraction
        return Insight(
            rule_id="l2_miss_rate",
            severity="warning",
            category="L2",
            message=f"HIGH L2 MISS RATE ({miss_rate:.1f}%) - Data not fitting in L2",
            details=_l2_size_lines(ctx.host, fraction),
            recommendations=[
                "For BF16 GEMM: 512x512 to 768x768 tiles",
                "For FP32 GEMM: 256x256 to 384x384 tiles",
            ],
            data=data,
            bottleneck="L2 cache misses",
        )
    if miss_rate < ctx.t.l2_miss_good_below:
        return Insight(
            rule_id="l2_miss_rate",
            severity="ok",
            category="L2",
            message=f"GOOD L2 HIT RATE ({hit:.1f}%) - Data locality is good",
            data={"l2_hit_rate": hit},
        )
    return None


def l3_hit_rate(ctx: RuleContext) -> Optional[Insight]:
    hit = ctx.derived.l3_hit_rate
    if hit is None:
        return None
    if hit > ctx.t.l3_hit_excellent_above:
        return Insight(
            rule_id="l3_hit_rate",
            severity="ok",
            category="L3",
            message=f"EXCELLENT L3 HIT RATE ({hit:.2f}%) - Data fits in L3",
            details=["No main memory bandwidth bottleneck"],
            data={"l3_hit_rate": hit},
        )
    if hit < ctx.t.l3_hit_acceptable_above:
        return Insight(
            rule_id="l3_hit_rate",
            severity="warning",
            category="L3",
            message=f"HIGH L3 MISS RATE ({100.0 - hit:.1f}%) - Significant memory traffic",
            recommendations=["Data exceeds L3, optimize for memory bandwidth"],
            data={"l3_hit_rate": hit},
            bottleneck="Memory bandwidth (L3 misses)",
            secondary_bottleneck="Memory bandwidth",
        )
    return None


def branch_miss_rate(ctx: RuleContext) -> Optional[Insight]:
    rate = ctx.derived.branch_miss_rate
    if rate is None:
        return None
    if rate < ctx.t.branch_miss_excellent_below:
        return Insight(
            rule_id="branch_miss_rate",
            severity="ok",
            category="branch",
            message=f"EXCELLENT BRANCH PREDICTION ({rate:.2f}% miss rate)",
            details=["Branch-related optimizations not needed"],
            data={"branch_miss_rate": rate},
        )
    if rate > ctx.t.branch_miss_acceptable_below:
        return Insight(
            rule_id="branch_miss_rate",
            severity="warning",
            category="branch",
            message=f"HIGH BRANCH MISS RATE ({rate:.2f}%)",
            recommendations=["Consider reducing branches or making them more predictable"],
            data={"branch_miss_rate": rate},
            bottleneck="Branch mispredictions",
        )
    return None


def tlb_miss_rate(ctx: RuleContext) -> Optional[Insight]:
    dtlb = ctx.count(ev.DTLB_LOAD_MISSES)
    if not dtlb:
        return None
    rate = percent(dtlb, ctx.count(ev.L1D_LOADS), clamp=False)
    if rate is None or rate <= ctx.t.tlb_miss_warn_above:
        return None
    return Insight(
        rule_id="tlb_miss_rate",
        severity="warning",
        category="TLB",
        message=f"HIGH TLB MISS RATE ({rate:.2f}%)",
        recommendations=["Consider using huge pages or improving memory layout"],
        data={"tlb_miss_rate": rate},
    )


def prefetch_activity(ctx: RuleContext) -> Optional[Insight]:
    if not ctx.derived.prefetch_active:
        return None
    pf_ratio = ratio(ctx.count(ev.L1D_LOAD_MISSES), ctx.count(ev.L1D_LOADS))
    if pf_ratio is None:
        return None
    return Insight(
        rule_id="prefetch_activity",
        severity="info",
        category="prefetch",
        message=f"ACTIVE PREFETCHING (L1 miss/load ratio: {pf_ratio:.1f}x)",
        details=["Hardware prefetcher is aggressively fetching data"],
        data={"prefetch_ratio": pf_ratio},
    )


def vectorization(ctx: RuleContext) -> Optional[Insight]:
    vec = ctx.derived.vectorization_ratio
    if vec is None:
        return None
    if vec < ctx.t.vectorization_low_below:
        return Insight(
            rule_id="vectorization",
            severity="warning",
            category="vectorization",
            message=f"LOW VECTORIZATION EFFICIENCY ({vec:.1f}% vector instructions)",
            details=["Code is dominated by scalar instructions"],
            recommendations=[
                "Use compiler vectorization (-O3, -march=native) or SIMD intrinsics (AVX2/AVX-512)"
            ],
            data={"vectorization_ratio": vec},
            bottleneck="Poor Vectorization",
        )
    if vec > ctx.t.vectorization_high_above:
        return Insight(
            rule_id="vectorization",
            severity="ok",
            category="vectorization",
            message=f"EXCELLENT VECTORIZATION ({vec:.1f}% vector instructions)",
            data={"vectorization_ratio": vec},
        )
    return None


def icache_pressure(ctx: RuleContext) -> Optional[Insight]:
    misses = ctx.count(ev.L1I_LOAD_MISSES)
    if not misses:
        return None
    per_instruction = ratio(misses, ctx.count(ev.INSTRUCTIONS))
    if per_instruction is None:
        return None
    mpki = per_instruction * 1000.0
    if mpki <= ctx.t.icache_mpki_warn_above:
        return None
    return Insight(
        rule_id="icache_pressure",
        severity="warning",
        category="icache",
        message=f"HIGH I-CACHE MISS RATE ({mpki:.1f} MPKI)",
        details=["CPU Frontend is waiting for instructions"],
        recommendations=[
            "Enable PGO (Profile Guided Optimization), reduce code size, or use Huge Pages for text"
        ],
        data={"icache_mpki": mpki},
        bottleneck="Instruction Cache Pressure",
    )


def store_bound(ctx: RuleContext) -> Optional[Insight]:
    stores = ctx.count(ev.LLC_STORES)
    store_misses = ctx.count(ev.LLC_STORE_MISSES)
    if stores is None or stores <= ctx.t.store_traffic_floor or not store_misses:
        return None
    rate = percent(store_misses, stores)
    if rate is None or rate <= ctx.t.store_miss_warn_above:
        return None
    return Insight(
        rule_id="store_bound",
        severity="warning",
        category="store",
        message=f"HIGH LLC STORE MISS RATE ({rate:.1f}%)",
        details=[
            "High RFO (Request For Ownership) traffic. CPU fetches cache lines just to overwrite them."
        ],
        recommendations=["Use Non-Temporal (Streaming) Stores for large write-only buffers"],
        data={"store_miss_rate": rate},
        bottleneck="RFO / Store Bandwidth",
    )


def _bandwidth_utilization(ctx: RuleContext) -> Optional[Tuple[float, float]]:
    bw = ctx.derived.read_bandwidth_gbps
    if not bw:
        return None
    peak = ctx.config.hardware.peak_bandwidth_gbps
    return bw, bw * 100.0 / peak


def bandwidth_estimate(ctx: RuleContext) -> Optional[Insight]:
    measured = _bandwidth_utilization(ctx)
    if measured is None:
        return None
    bw, utilization = measured
    peak = ctx.config.hardware.peak_bandwidth_gbps
    high = utilization > ctx.t.bandwidth_warn_utilization
    return Insight(
        rule_id="bandwidth_estimate",
        severity="warning" if high else "info",
        category="bandwidth",
        message=f"MEMORY BANDWIDTH: {bw:.2f} GB/s (Read)",
        details=[f"{utilization:.0f}% of ~{peak:.0f} GB/s configured peak"],
        data={"read_bandwidth_gbps": bw, "utilization_pct": utilization},
    )


def branch_penalty(ctx: RuleContext) -> Optional[Insight]:
    misses = ctx.count(ev.BRANCH_MISSES)
    if not misses:
        return None
    penalty = misses * ctx.config.hardware.branch_miss_penalty_cycles
    penalty_pct = percent(penalty, ctx.count(ev.CYCLES), clamp=False)
    if penalty_pct is None or penalty_pct <= ctx.t.branch_penalty_warn_above:
        return None
    return Insight(
        rule_id="branch_penalty",
        severity="warning",
        category="branch",
        message=f"BRANCH MISPREDICTION IMPACT (~{penalty_pct:.1f}% of cycles lost)",
        details=[f"Estimated {penalty_pct:.1f}% of time wasted flushing the pipeline"],
        data={"branch_penalty_pct": penalty_pct},
        bottleneck="Branch Mispredictions",
    )


def residual_core_stalls(ctx: RuleContext) -> Optional[Insight]:
    total = ctx.count(ev.STALLS_TOTAL)
    l1_miss = ctx.count(ev.STALLS_L1D_MISS)
    if not total or not l1_miss:
        return None
    other = total - l1_miss
    if other <= 0:
        return None
    other_pct = percent(other, ctx.count(ev.CYCLES))
    if other_pct is None or other_pct <= ctx.t.residual_stall_warn_above:
        return None
    return Insight(
        rule_id="residual_core_stalls",
        severity="warning",
        category="stall",
        message=f"HIGH CORE/L1 STALLS ({other_pct:.1f}% of cycles)",
        details=[
            "Stalls not due to L1 misses. Likely L1 hit latency (pointer chasing) "
            "or execution dependencies."
        ],
        recommendations=[
            "Check for long dependency chains (div/sqrt) or L1-bound pointer chasing."
        ],
        data={"residual_stall_pct": other_pct},
        bottleneck="Execution/L1 Stalls",
    )


def _tier_advice(tier: str, host: HostFacts, fraction: float) -> Tuple[str, List[str], List[str]]:
    if tier == "DRAM":
        return (
            "DRAM LATENCY DOMINANT",
            ["Memory bandwidth may be saturated"],
            [
                "Use cache blocking/tiling to reduce DRAM accesses",
                "Consider non-temporal stores for write-only buffers",
                "Add software prefetching (prefetcht0/prefetcht1)",
            ],
        )
    if tier == "L3":
        locality = "Improve temporal locality within L2"
        if host.l2_cache_kb > 0:
            locality += f" ({host.l2_cache_mb:.1f} MB per core)"
        return (
            "L3 LATENCY DOMINANT",
            ["Data exceeds L2 but mostly fits in L3"],
            [locality, "Check thread placement for L3 sharing conflicts"],
        )
    tile = "Tile/block to fit working set in L2 cache"
    if host.l2_cache_kb > 0:
        l2_mb = host.l2_cache_mb
        tile = f"Tile/block to fit working set in ~{l2_mb * fraction:.1f} MB (L2 = {l2_mb:.1f} MB)"
    return (
        "L2 LATENCY DOMINANT",
        ["Working set thrashing L2 cache"],
        [tile, "For BF16 GEMM: Try 512x512 tiles", "For FP32 GEMM: Try 256x256 tiles"],
    )


def memory_latency_breakdown(ctx: RuleContext) -> Optional[Insight]:
    breakdown = ctx.derived.stall_breakdown
    if breakdown is None:
        return None
    tier = breakdown.dominant
    shares = {"L2": breakdown.l2_hit_pct, "L3": breakdown.l3_hit_pct, "DRAM": breakdown.dram_pct}
    if tier is None or shares[tier] <= ctx.t.stall_tier_dominance:
        return None
    headline, details, recommendations = _tier_advice(
        tier, ctx.host, ctx.config.hardware.l2_tile_target_fraction
    )
    return Insight(
        rule_id="memory_latency_breakdown",
        severity="info",
        category="memory-latency-breakdown",
        message=f"MEMORY LATENCY BREAKDOWN (dominant: {tier} latency)",
        details=[
            f"L2 Hit Stalls: {breakdown.l2_hit_pct:5.1f}% of memory stalls",
            f"L3 Hit Stalls: {breakdown.l3_hit_pct:5.1f}% of memory stalls",
            f"DRAM/Remote:   {breakdown.dram_pct:5.1f}% of memory stalls",
            headline,
            *details,
        ],
        recommendations=recommendations,
        data={
            "dominant": tier,
            "l2_hit_pct": breakdown.l2_hit_pct,
            "l3_hit_pct": breakdown.l3_hit_pct,
            "dram_pct": breakdown.dram_pct,
        },
    )


def operational_intensity(ctx: RuleContext) -> Optional[Insight]:
    oi = ctx.derived.operational_intensity
    klass = ctx.derived.intensity_class
    if oi is None or klass is None:
        return None
    if klass == "memory_bound":
        details = ["Classification: MEMORY BOUND", "Performance limited by memory bandwidth, not compute"]
        recommendations = ["Data locality, blocking, prefetching, streaming stores"]
    elif klass == "balanced":
        details = ["Classification: BALANCED", "Both memory and compute optimizations will help"]
        recommendations = []
    else:
        details = ["Classification: COMPUTE BOUND", "Performance limited by compute throughput"]
        recommendations = ["Vectorization (AVX-512/AMX), loop unrolling"]
    return Insight(
        rule_id="operational_intensity",
        severity="info",
        category="intensity",
        message=f"OPERATIONAL INTENSITY: {oi:.2f} FLOPs/byte",
        details=details,
        recommendations=recommendations,
        data={"operational_intensity": oi, "classification": klass},
        bottleneck="Memory Bound (low OI)" if klass == "memory_bound" else None,
    )


def vector_width(ctx: RuleContext) -> Optional[Insight]:
    keys = (ev.FP_256B_SINGLE, ev.FP_256B_DOUBLE, ev.FP_512B_SINGLE, ev.FP_512B_DOUBLE)
    if any(ctx.snapshot.is_unavailable(key) for key in keys):
        return None
    parts = [ctx.count(key) for key in keys]
    if all(part is None for part in parts):
        return None
    sp_256, dp_256, sp_512, dp_512 = (part or 0 for part in parts)
    total_256 = sp_256 + dp_256
    total_512 = sp_512 + dp_512
    if total_256 <= ctx.t.vector_width_256b_floor or total_512 <= 0:
        return None
    share_512 = total_512 * 100.0 / (total_256 + total_512)
    if share_512 >= ctx.t.vector_width_512_below:
        return None
    return Insight(
        rule_id="vector_width",
        severity="warning",
        category="vectorization",
        message=f"SUBOPTIMAL VECTOR WIDTH ({share_512:.0f}% using 512-bit)",
        details=["Using mostly 256-bit vectors on AVX-512 capable CPU"],
        recommendations=[
            "Compile with: -march=native -mprefer-vector-width=512",
            "Use explicit AVX-512 intrinsics for hot loops",
            "Check for 256-bit fallbacks in libraries",
        ],
        data={"share_512b_pct": share_512},
        bottleneck="Suboptimal Vector Width",
    )


def matrix_accelerator_hint(ctx: RuleContext) -> Optional[Insight]:
    fp_instructions = ctx.derived.fp_instructions
    if fp_instructions is None or fp_instructions <= ctx.t.matrix_hint_fp_floor:
        return None
    llc_hit = ctx.derived.l3_hit_rate
    oi = ctx.derived.operational_intensity
    streaming = llc_hit is not None and (100.0 - llc_hit) > ctx.t.matrix_hint_llc_miss_above
    low_reuse = oi is not None and oi < ctx.t.matrix_hint_intensity_below
    if not (streaming or low_reuse):
        return None
    return Insight(
        rule_id="matrix_accelerator_hint",
        severity="info",
        category="recommendation",
        message="AMX-BF16 RECOMMENDATION",
        details=[
            "Matrix-like workload detected (advisory, not a measured bottleneck)",
            "Intel AMX can provide 8-16x speedup for BF16/INT8 GEMM",
        ],
        recommendations=[
            "Use: _tile_loadd(), _tile_dpbf16ps(), _tile_stored()",
            "Compile: -mamx-tile -mamx-bf16",
            "Or use oneDNN/MKL for automatic AMX acceleration",
        ],
        data={"fp_instructions": fp_instructions},
    )


def bandwidth_saturation(ctx: RuleContext) -> Optional[Insight]:
    measured = _bandwidth_utilization(ctx)
    if measured is None:
        return None
    bw, utilization = measured
    if utilization <= ctx.t.bandwidth_warn_utilization:
        return None
    peak = ctx.config.hardware.peak_bandwidth_gbps
    return Insight(
        rule_id="bandwidth_saturation",
        severity="warning",
        category="bandwidth",
        message="APPROACHING MEMORY BANDWIDTH LIMIT",
        details=[f"Measured: {bw:.1f} GB/s ({utilization:.0f}% of ~{peak:.0f} GB/s estimated peak)"],
        recommendations=[
            "Use non-temporal stores for write-only buffers",
            "Add software prefetching (prefetcht0/prefetcht1)",
            "For BF16: AMX reduces BW pressure via on-chip accumulation",
        ],
        data={"read_bandwidth_gbps": bw, "utilization_pct": utilization},
        bottleneck="Memory Bandwidth Saturation",
    )


# Evaluation order is the bottleneck priority order.
RULES: Tuple[Rule, ...] = (
    Rule("stall_rate", "stall", "primary", stall_rate),
    Rule("l1_miss_rate", "L1", "any", l1_miss_rate),
    Rule("ipc_level", "ipc", "primary", ipc_level),
    Rule("l2_miss_rate", "L2", "any", l2_miss_rate),
    Rule("l3_hit_rate", "L3", "any", l3_hit_rate),
    Rule("branch_miss_rate", "branch", "secondary", branch_miss_rate),
    Rule("tlb_miss_rate", "TLB", "none", tlb_miss_rate),
    Rule("prefetch_activity", "prefetch", "none", prefetch_activity),
    Rule("vectorization", "vectorization", "secondary", vectorization),
    Rule("icache_pressure", "icache", "secondary", icache_pressure),
    Rule("store_bound", "store", "secondary", store_bound),
    Rule("bandwidth_estimate", "bandwidth", "none", bandwidth_estimate),
    Rule("branch_penalty", "branch", "secondary", branch_penalty),
    Rule("residual_core_stalls", "stall", "primary", residual_core_stalls),
    Rule("memory_latency_breakdown", "memory-latency-breakdown", "none", memory_latency_breakdown),
    Rule("operational_intensity", "intensity", "primary", operational_intensity),
    Rule("vector_width", "vectorization", "secondary", vector_width),
    Rule("matrix_accelerator_hint", "recommendation", "none", matrix_accelerator_hint),
    Rule("bandwidth_saturation", "bandwidth", "primary", bandwidth_saturation),
)

RULE_IDS: Tuple[str, ...] = tuple(rule.rule_id for rule in RULES)


def _claim(summary: dict, claim: Claim, insight: Insight) -> None:
    label = insight.bottleneck
    secondary_label = insight.secondary_bottleneck or label
    if claim == "any":
        if summary["primary"] is None:
            summary["primary"] = label
        elif summary["secondary"] is None:
            summary["secondary"] = secondary_label
    elif claim == "primary":
        if summary["primary"] is None:
            summary["primary"] = label
    elif claim == "secondary":
        if summary["secondary"] is None:
            summary["secondary"] = secondary_label


def evaluate_rules(
    ctx: RuleContext,
    rules: Tuple[Rule, ...] = RULES,
) -> InsightReport:
    """Run rules left-to-right; the first claims fill primary, then secondary."""
    disabled = set(ctx.config.disabled_rules)
    insights: List[Insight] = []
    summary = {"primary": None, "secondary": None}
    for rule in rules:
        if rule.rule_id in disabled:
            logger.debug("Rule %s disabled by config", rule.rule_id)
            continue
        try:
            insight = rule.evaluate(ctx)
        except (ArithmeticError, TypeError, ValueError) as exc:
            logger.warning("Rule %s failed and was skipped: %s", rule.rule_id, exc)
            continue
        if insight is None:
            logger.debug("Rule %s produced no finding", rule.rule_id)
            continue
        insights.append(insight)
        if insight.bottleneck and rule.claim != "none":
            _claim(summary, rule.claim, insight)
    return InsightReport(insights=insights, summary=BottleneckSummary(**summary))


def analyze_snapshot(
    snapshot: MetricsSnapshot,
    config: Optional[AnalysisConfig] = None,
    host: Optional[HostFacts] = None,
    derived: Optional[DerivedMetrics] = None,
) -> InsightReport:
    config = config or AnalysisConfig()
    ctx = RuleContext(
        snapshot=snapshot,
        derived=derived or compute_derived_metrics(snapshot, config),
        config=config,
        host=host or HostFacts(),
    )
    return evaluate_rules(ctx)
