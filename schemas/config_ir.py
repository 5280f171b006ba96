from __future__ import annotations

from typing import List

from pydantic import Field

from schemas.strict_base import StrictBaseModel


class HardwareConfig(StrictBaseModel):
    """Constants of the microarchitecture the thresholds were calibrated on."""

    cache_line_bytes: int = Field(default=64, ge=1)
    # Single-socket 8-channel DDR5-4800, practical rather than theoretical.
    peak_bandwidth_gbps: float = Field(default=250.0, gt=0.0)
    branch_miss_penalty_cycles: int = Field(default=20, ge=0)
    l2_tile_target_fraction: float = Field(default=0.75, gt=0.0, le=1.0)


class Thresholds(StrictBaseModel):
    # IPC bands: severe < low < moderate < good < excellent
    ipc_severe_below: float = 0.5
    ipc_low_below: float = 1.5
    ipc_moderate_below: float = 3.0
    ipc_good_below: float = 4.0
    ipc_good_note_at: float = 1.0

    l2_hit_poor_below: float = 50.0
    l2_hit_moderate_below: float = 80.0
    l2_miss_warn_above: float = 50.0
    l2_miss_good_below: float = 20.0

    l3_hit_excellent_above: float = 95.0
    l3_hit_acceptable_above: float = 80.0

    branch_miss_excellent_below: float = 1.0
    branch_miss_acceptable_below: float = 5.0

    stall_warn_above: float = 50.0
    l1_miss_warn_above: float = 50.0
    tlb_miss_warn_above: float = 1.0
    vectorization_low_below: float = 10.0
    vectorization_high_above: float = 80.0
    icache_mpki_warn_above: float = 20.0
    store_miss_warn_above: float = 50.0
    bandwidth_warn_utilization: float = 70.0
    branch_penalty_warn_above: float = 5.0
    residual_stall_warn_above: float = 30.0
    stall_tier_dominance: float = 50.0
    intensity_memory_below: float = 5.0
    intensity_balanced_below: float = 15.0
    vector_width_512_below: float = 50.0
    matrix_hint_llc_miss_above: float = 15.0
    matrix_hint_intensity_below: float = 10.0

    topdown_backend_above: float = 20.0
    topdown_frontend_above: float = 20.0
    topdown_bad_spec_above: float = 10.0

    # Noise floors, in raw event counts.
    fp_instruction_floor: int = 1_000_000
    vector_width_256b_floor: int = 1_000_000
    matrix_hint_fp_floor: int = 100_000_000
    store_traffic_floor: int = 100_000


class ComparisonThresholds(StrictBaseModel):
    event_band_pct: float = 5.0
    ipc_band_pct: float = 5.0
    l2_hit_band_pp: float = 5.0
    l3_hit_band_pp: float = 1.0
    elapsed_band_pct: float = 5.0
    l2_traffic_pct: float = 10.0
    l2_stall_reduction_pct: float = 20.0
    l3_traffic_reduction_pct: float = 20.0
    store_reduction_pct: float = 20.0
    intensity_better_ratio: float = 1.5
    intensity_worse_ratio: float = 0.67
    prefetch_reduction_ratio: float = 1.3
    stall_savings_fraction: float = 0.01


class AnalysisConfig(StrictBaseModel):
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    comparison: ComparisonThresholds = Field(default_factory=ComparisonThresholds)
    disabled_rules: List[str] = Field(default_factory=list)
