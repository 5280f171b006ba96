from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from counters.compare import compare_snapshots
from counters.derived_metrics import compute_derived_metrics
from counters.insight_rules import analyze_snapshot
from counters.record_files import resolve_record_path
from counters.record_parse import load_record
from schemas.comparison_ir import ComparisonResult
from schemas.config_ir import AnalysisConfig
from schemas.derived_ir import DerivedMetrics
from schemas.host_ir import HostFacts
from schemas.insight_ir import InsightReport
from schemas.snapshot_ir import MetricsSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordAnalysis:
    snapshot: MetricsSnapshot
    derived: DerivedMetrics
    # None when insights were not requested.
    report: Optional[InsightReport]


def analyze_record(
    name: str,
    config: AnalysisConfig,
    host: Optional[HostFacts] = None,
    with_insights: bool = True,
    base_dir: Optional[Path] = None,
) -> RecordAnalysis:
    path = resolve_record_path(name, base_dir)
    snapshot = load_record(path)
    derived = compute_derived_metrics(snapshot, config)
    report = None
    if with_insights:
        report = analyze_snapshot(snapshot, config, host, derived)
        logger.info(
            "%s: %d insights, primary=%s",
            path,
            len(report.insights),
            report.summary.primary,
        )
    return RecordAnalysis(snapshot=snapshot, derived=derived, report=report)


def compare_records(
    baseline_name: str,
    candidate_name: str,
    config: AnalysisConfig,
    base_dir: Optional[Path] = None,
) -> Tuple[ComparisonResult, Path, Path]:
    """Both records are loaded before anything is compared; either missing aborts."""
    baseline_path = resolve_record_path(baseline_name, base_dir)
    candidate_path = resolve_record_path(candidate_name, base_dir)
    baseline = load_record(baseline_path)
    candidate = load_record(candidate_path)
    return compare_snapshots(baseline, candidate, config), baseline_path, candidate_path
