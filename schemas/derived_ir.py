from __future__ import annotations

from typing import Literal, Optional

from schemas.strict_base import FrozenModel

IpcBand = Literal["severe", "low", "moderate", "good", "excellent"]
L2Band = Literal["poor", "moderate", "good"]
L3Band = Literal["excellent", "acceptable", "high_traffic"]
BranchBand = Literal["excellent", "acceptable", "high"]
IntensityClass = Literal["memory_bound", "balanced", "compute_bound"]
StallTier = Literal["L2", "L3", "DRAM"]


class StallBreakdown(FrozenModel):
    """Where L1D-miss stall cycles were finally served.

    The three cycle components always sum to ``l1_miss_stall_cycles``.
    """

    l1_miss_stall_cycles: int
    l2_hit_cycles: int
    l3_hit_cycles: int
    dram_cycles: int
    l2_hit_pct: float
    l3_hit_pct: float
    dram_pct: float

    @property
    def dominant(self) -> Optional[StallTier]:
        tiers = (
            ("L2", self.l2_hit_cycles),
            ("L3", self.l3_hit_cycles),
            ("DRAM", self.dram_cycles),
        )
        best: Optional[StallTier] = None
        best_cycles = 0
        for name, cycles in tiers:
            if cycles > best_cycles:
                best, best_cycles = name, cycles
        return best


class TopDownBreakdown(FrozenModel):
    retiring_pct: float
    bad_speculation_pct: float
    frontend_bound_pct: float
    backend_bound_pct: float
    dominant: Optional[str] = None


class DerivedMetrics(FrozenModel):
    """Ratios and estimates computed from exactly one snapshot.

    ``None`` means "not computable": an input was missing, unavailable, or a
    denominator was zero.
    """

    ipc: Optional[float] = None
    ipc_band: Optional[IpcBand] = None
    cpi: Optional[float] = None
    l1_miss_ratio: Optional[float] = None
    prefetch_active: Optional[bool] = None
    l2_hit_rate: Optional[float] = None
    l2_band: Optional[L2Band] = None
    l3_hit_rate: Optional[float] = None
    l3_band: Optional[L3Band] = None
    cache_hit_rate: Optional[float] = None
    branch_miss_rate: Optional[float] = None
    branch_band: Optional[BranchBand] = None
    stall_pct: Optional[float] = None
    memory_stall_pct: Optional[float] = None
    memory_intensity: Optional[float] = None
    fp_instructions: Optional[int] = None
    total_flops: Optional[int] = None
    gflops: Optional[float] = None
    vectorization_ratio: Optional[float] = None
    operational_intensity: Optional[float] = None
    intensity_class: Optional[IntensityClass] = None
    read_bandwidth_gbps: Optional[float] = None
    stall_breakdown: Optional[StallBreakdown] = None
    topdown: Optional[TopDownBreakdown] = None
    elapsed_seconds: Optional[float] = None
