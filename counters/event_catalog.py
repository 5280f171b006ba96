from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Literal, Tuple

Category = Literal[
    "L1", "L2", "L3", "Cache", "Stalls", "MemoryBW", "FLOPs",
    "TopDown", "Branch", "TLB", "CPU", "Other",
]

# Report order of the category blocks.
CATEGORY_ORDER: Tuple[Category, ...] = (
    "L1", "L2", "L3", "Cache", "Stalls", "MemoryBW",
    "FLOPs", "TopDown", "Branch", "TLB", "CPU", "Other",
)

CATEGORY_TITLES: Dict[str, str] = {
    "L1": "L1 Cache",
    "L2": "L2 Cache",
    "L3": "L3 Cache",
    "Cache": "Cache",
    "Stalls": "Stalls",
    "MemoryBW": "Memory BW",
    "FLOPs": "FLOPs",
    "TopDown": "Top-Down",
    "Branch": "Branch",
    "TLB": "TLB",
    "CPU": "CPU",
    "Other": "Other",
}

L1D_LOADS = "L1-dcache-loads"
L1D_LOAD_MISSES = "L1-dcache-load-misses"
L1D_STORES = "L1-dcache-stores"
L1I_LOAD_MISSES = "L1-icache-load-misses"
L2_REFERENCES = "l2_rqsts.references"
L2_MISSES = "l2_rqsts.miss"
LLC_LOADS = "LLC-loads"
LLC_LOAD_MISSES = "LLC-load-misses"
LLC_STORES = "LLC-stores"
LLC_STORE_MISSES = "LLC-store-misses"
CACHE_REFERENCES = "cache-references"
CACHE_MISSES = "cache-misses"
BRANCH_INSTRUCTIONS = "branch-instructions"
BRANCH_MISSES = "branch-misses"
DTLB_LOAD_MISSES = "dTLB-load-misses"
ITLB_LOAD_MISSES = "iTLB-load-misses"
CYCLES = "cycles"
INSTRUCTIONS = "instructions"
STALLS_TOTAL = "cycle_activity.stalls_total"
CYCLES_MEM_ANY = "cycle_activity.cycles_mem_any"
STALLS_L1D_MISS = "cycle_activity.stalls_l1d_miss"
STALLS_L2_MISS = "cycle_activity.stalls_l2_miss"
STALLS_L3_MISS = "cycle_activity.stalls_l3_miss"
DATA_READS = "offcore_requests.data_rd"
ALL_DATA_READS = "offcore_requests.all_data_rd"
DEMAND_DATA_READS = "offcore_requests.demand_data_rd"
FP_SCALAR_SINGLE = "fp_arith_inst_retired.scalar_single"
FP_SCALAR_DOUBLE = "fp_arith_inst_retired.scalar_double"
FP_128B_SINGLE = "fp_arith_inst_retired.128b_packed_single"
FP_256B_SINGLE = "fp_arith_inst_retired.256b_packed_single"
FP_512B_SINGLE = "fp_arith_inst_retired.512b_packed_single"
FP_128B_DOUBLE = "fp_arith_inst_retired.128b_packed_double"
FP_256B_DOUBLE = "fp_arith_inst_retired.256b_packed_double"
FP_512B_DOUBLE = "fp_arith_inst_retired.512b_packed_double"
TOPDOWN_RETIRING = "topdown-retiring"
TOPDOWN_BAD_SPEC = "topdown-bad-spec"
TOPDOWN_FE_BOUND = "topdown-fe-bound"
TOPDOWN_BE_BOUND = "topdown-be-bound"


@dataclass(frozen=True)
class FpEvent:
    key: str
    width_bits: int  # 0 for scalar
    precision: Literal["single", "double"]
    elements: int  # floating-point operations per retired instruction


FP_EVENTS: Tuple[FpEvent, ...] = (
    FpEvent(FP_SCALAR_SINGLE, 0, "single", 1),
    FpEvent(FP_SCALAR_DOUBLE, 0, "double", 1),
    FpEvent(FP_128B_SINGLE, 128, "single", 4),
    FpEvent(FP_256B_SINGLE, 256, "single", 8),
    FpEvent(FP_512B_SINGLE, 512, "single", 16),
    FpEvent(FP_128B_DOUBLE, 128, "double", 2),
    FpEvent(FP_256B_DOUBLE, 256, "double", 4),
    FpEvent(FP_512B_DOUBLE, 512, "double", 8),
)


@dataclass(frozen=True)
class CounterEvent:
    key: str
    category: Category
    label: str


EVENTS: Tuple[CounterEvent, ...] = (
    CounterEvent(L1D_LOADS, "L1", "L1D Loads"),
    CounterEvent(L1D_LOAD_MISSES, "L1", "L1D Load Misses"),
    CounterEvent(L1D_STORES, "L1", "L1D Stores"),
    CounterEvent(L1I_LOAD_MISSES, "L1", "L1I Misses"),
    CounterEvent(L2_REFERENCES, "L2", "L2 References"),
    CounterEvent(L2_MISSES, "L2", "L2 Misses"),
    CounterEvent(LLC_LOADS, "L3", "L3/LLC Loads"),
    CounterEvent(LLC_LOAD_MISSES, "L3", "L3/LLC Load Misses"),
    CounterEvent(LLC_STORES, "L3", "L3/LLC Stores"),
    CounterEvent(LLC_STORE_MISSES, "L3", "L3/LLC Store Misses"),
    CounterEvent(CACHE_REFERENCES, "Cache", "Total Cache Refs"),
    CounterEvent(CACHE_MISSES, "Cache", "Total Cache Misses"),
    CounterEvent(BRANCH_INSTRUCTIONS, "Branch", "Branch Instructions"),
    CounterEvent(BRANCH_MISSES, "Branch", "Branch Misses"),
    CounterEvent(DTLB_LOAD_MISSES, "TLB", "dTLB Load Misses"),
    CounterEvent(ITLB_LOAD_MISSES, "TLB", "iTLB Load Misses"),
    CounterEvent(CYCLES, "CPU", "CPU Cycles"),
    CounterEvent(INSTRUCTIONS, "CPU", "Instructions"),
    CounterEvent(STALLS_TOTAL, "Stalls", "Total Stall Cycles"),
    CounterEvent(CYCLES_MEM_ANY, "Stalls", "Memory Stall Cycles"),
    CounterEvent(STALLS_L1D_MISS, "Stalls", "L1D Miss Stalls"),
    CounterEvent(STALLS_L2_MISS, "Stalls", "L2 Miss Stalls"),
    CounterEvent(STALLS_L3_MISS, "Stalls", "L3 Miss Stalls"),
    CounterEvent(DATA_READS, "MemoryBW", "All Data Reads"),
    CounterEvent(ALL_DATA_READS, "MemoryBW", "All Data Reads"),
    CounterEvent(DEMAND_DATA_READS, "MemoryBW", "Demand Data Reads"),
    CounterEvent(FP_SCALAR_SINGLE, "FLOPs", "Scalar SP FLOPs"),
    CounterEvent(FP_SCALAR_DOUBLE, "FLOPs", "Scalar DP FLOPs"),
    CounterEvent(FP_128B_SINGLE, "FLOPs", "128b Packed SP"),
    CounterEvent(FP_256B_SINGLE, "FLOPs", "256b Packed SP"),
    CounterEvent(FP_512B_SINGLE, "FLOPs", "512b Packed SP"),
    CounterEvent(FP_128B_DOUBLE, "FLOPs", "128b Packed DP"),
    CounterEvent(FP_256B_DOUBLE, "FLOPs", "256b Packed DP"),
    CounterEvent(FP_512B_DOUBLE, "FLOPs", "512b Packed DP"),
    CounterEvent(TOPDOWN_RETIRING, "TopDown", "Retiring"),
    CounterEvent(TOPDOWN_BAD_SPEC, "TopDown", "Bad Speculation"),
    CounterEvent(TOPDOWN_FE_BOUND, "TopDown", "Frontend Bound"),
    CounterEvent(TOPDOWN_BE_BOUND, "TopDown", "Backend Bound"),
)

_BY_KEY: Dict[str, CounterEvent] = {event.key: event for event in EVENTS}

# Event groups requested from `perf stat`, in recording order.
CORE_EVENTS: Tuple[str, ...] = (
    L1D_LOADS, L1D_LOAD_MISSES, L1D_STORES, L1I_LOAD_MISSES,
    L2_REFERENCES, L2_MISSES,
    LLC_LOADS, LLC_LOAD_MISSES, LLC_STORES, LLC_STORE_MISSES,
    CACHE_REFERENCES, CACHE_MISSES,
    BRANCH_INSTRUCTIONS, BRANCH_MISSES,
    DTLB_LOAD_MISSES, ITLB_LOAD_MISSES,
    CYCLES, INSTRUCTIONS,
)
STALL_EVENTS: Tuple[str, ...] = (
    STALLS_TOTAL, CYCLES_MEM_ANY, STALLS_L1D_MISS, STALLS_L2_MISS, STALLS_L3_MISS,
)
MEMORY_EVENTS: Tuple[str, ...] = (DATA_READS, DEMAND_DATA_READS)
FLOPS_EVENTS: Tuple[str, ...] = tuple(event.key for event in FP_EVENTS)
# Top-down events need system-wide mode (-a); skipped for per-process runs.
TOPDOWN_EVENTS: Tuple[str, ...] = (
    TOPDOWN_RETIRING, TOPDOWN_BAD_SPEC, TOPDOWN_FE_BOUND, TOPDOWN_BE_BOUND,
)

_MODIFIER_RE = re.compile(r":[ukhGHpPSD]+$")
_PMU_RE = re.compile(r"^[\w.-]+/(?P<name>[^/,]+)/$")


def canonical_event(key: str) -> str:
    """Strip PMU prefixes and privilege modifiers: ``cpu_core/cycles/:u`` -> ``cycles``."""
    name = _MODIFIER_RE.sub("", key.strip())
    match = _PMU_RE.match(name)
    if match:
        name = match.group("name")
    return name


def classify(key: str) -> Tuple[Category, str]:
    """Return ``(category, label)``; unknown events are ``("Other", key)``."""
    event = _BY_KEY.get(key) or _BY_KEY.get(canonical_event(key))
    if event is None:
        return "Other", key
    return event.category, event.label


def recording_events(system_wide: bool = False) -> List[str]:
    events = [*CORE_EVENTS, *STALL_EVENTS, *MEMORY_EVENTS, *FLOPS_EVENTS]
    if system_wide:
        events.extend(TOPDOWN_EVENTS)
    return events
