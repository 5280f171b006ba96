from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, TextIO

from counters.compare import format_count
from counters.event_catalog import CATEGORY_ORDER, CATEGORY_TITLES, classify
from counters.perf_record import RecordOutput
from schemas.comparison_ir import ComparisonResult, EventDelta, MetricDelta
from schemas.derived_ir import DerivedMetrics
from schemas.host_ir import HostFacts
from schemas.insight_ir import InsightReport
from schemas.snapshot_ir import MetricsSnapshot


@dataclass(frozen=True)
class Theme:
    red: str = ""
    green: str = ""
    yellow: str = ""
    blue: str = ""
    cyan: str = ""
    bold: str = ""
    dim: str = ""
    reset: str = ""

    def paint(self, text: str, color: str) -> str:
        code = getattr(self, color)
        if not code:
            return text
        return f"{code}{text}{self.reset}"


PLAIN_THEME = Theme()
ANSI_THEME = Theme(
    red="\033[0;31m",
    green="\033[0;32m",
    yellow="\033[1;33m",
    blue="\033[0;34m",
    cyan="\033[0;36m",
    bold="\033[1m",
    dim="\033[2m",
    reset="\033[0m",
)

RULE_WIDTH = 79
_HEAVY = "═" * RULE_WIDTH
_LIGHT = "─" * RULE_WIDTH

_SEVERITY_STYLE = {
    "warning": ("⚠", "yellow"),
    "ok": ("✓", "green"),
    "info": ("ℹ", "cyan"),
}

_IPC_STYLE = {
    "severe": ("red", "Very Low - severe stalling"),
    "low": ("yellow", "Low - significant stalling"),
    "moderate": ("yellow", "Moderate - room for improvement"),
    "good": ("green", "Good"),
    "excellent": ("green", "Excellent - near peak"),
}
_L2_STYLE = {"poor": ("red", "Poor"), "moderate": ("yellow", "Moderate"), "good": ("green", "Good")}
_L3_STYLE = {
    "excellent": ("green", "Excellent"),
    "acceptable": ("yellow", ""),
    "high_traffic": ("red", "High memory traffic"),
}
_BRANCH_STYLE = {"excellent": ("green", "Excellent"), "acceptable": ("yellow", ""), "high": ("red", "High")}
_INTENSITY_STYLE = {
    "memory_bound": ("red", "Memory bound"),
    "balanced": ("yellow", "Balanced"),
    "compute_bound": ("green", "Compute bound"),
}

# Direction that reads as an improvement for each derived comparison metric.
_HIGHER_IS_BETTER = {"ipc": True, "l2_hit_rate": True, "l3_hit_rate": True, "elapsed_seconds": False}


def _banner(title: str, theme: Theme) -> List[str]:
    return [
        theme.paint(_HEAVY, "cyan"),
        theme.paint(title.center(RULE_WIDTH).rstrip(), "bold"),
        theme.paint(_HEAVY, "cyan"),
    ]


def _section(title: str, theme: Theme) -> List[str]:
    return [
        "",
        theme.paint(_HEAVY, "bold"),
        theme.paint(title.center(RULE_WIDTH).rstrip(), "bold"),
        theme.paint(_HEAVY, "bold"),
    ]


def _metric_line(label: str, value: str, theme: Theme) -> str:
    return f"  {theme.paint(label + ':', 'bold')} {value}"


def _banded(text: str, band: Optional[str], styles: Dict[str, tuple], theme: Theme) -> str:
    if band is None:
        return text
    color, note = styles[band]
    painted = theme.paint(text, color)
    return f"{painted} ({note})" if note else painted


def render_counter_table(snapshot: MetricsSnapshot, theme: Theme = PLAIN_THEME) -> List[str]:
    """Category -> event label -> raw count -> rate, in category order."""
    grouped: Dict[str, List[tuple]] = {}
    for event, reading in snapshot.readings.items():
        category, label = classify(event)
        grouped.setdefault(category, []).append((label, reading.raw, reading.rate))

    lines = [
        theme.paint("┌" + "─" * 32 + "┬" + "─" * 20 + "┬" + "─" * 20 + "┐", "bold"),
        theme.paint(f"│ {'Event':<30} │ {'Count':>18} │ {'Rate/Info':>18} │", "bold"),
        theme.paint("├" + "─" * 32 + "┼" + "─" * 20 + "┼" + "─" * 20 + "┤", "bold"),
    ]
    for category in CATEGORY_ORDER:
        rows = grouped.get(category)
        if not rows:
            continue
        header = f"── {CATEGORY_TITLES[category]} ──"
        lines.append(f"│ {theme.paint(f'{header:<30}', 'cyan')} │ {'':>18} │ {'':>18} │")
        for label, raw, rate in rows:
            lines.append(f"│   {label:<28} │ {raw:>18} │ {rate:>18} │")
    lines.append(theme.paint("└" + "─" * 32 + "┴" + "─" * 20 + "┴" + "─" * 20 + "┘", "bold"))
    return lines


def render_derived(derived: DerivedMetrics, theme: Theme = PLAIN_THEME) -> List[str]:
    """Only computable metrics are shown."""
    d = derived
    lines = _section("Derived Metrics", theme)
    if d.ipc is not None:
        lines.append(_metric_line("IPC (Instructions Per Cycle)", _banded(f"{d.ipc:.3f}", d.ipc_band, _IPC_STYLE, theme), theme))
    if d.cpi is not None:
        lines.append(_metric_line("CPI (Cycles Per Instruction)", f"{d.cpi:.3f}", theme))
    if d.l1_miss_ratio is not None:
        if d.prefetch_active:
            value = theme.paint(f"{d.l1_miss_ratio:.1f}%", "yellow") + " (>100% = prefetcher active)"
        else:
            value = theme.paint(f"{d.l1_miss_ratio:.2f}%", "green")
        lines.append(_metric_line("L1D Miss/Load Ratio", value, theme))
    if d.l2_hit_rate is not None:
        lines.append(_metric_line("L2 Cache Hit Rate", _banded(f"{d.l2_hit_rate:.2f}%", d.l2_band, _L2_STYLE, theme), theme))
    if d.l3_hit_rate is not None:
        lines.append(_metric_line("L3/LLC Load Hit Rate", _banded(f"{d.l3_hit_rate:.2f}%", d.l3_band, _L3_STYLE, theme), theme))
    if d.cache_hit_rate is not None:
        lines.append(_metric_line("Overall Cache Hit Rate", theme.paint(f"{d.cache_hit_rate:.2f}%", "green"), theme))
    if d.branch_miss_rate is not None:
        fmt = f"{d.branch_miss_rate:.3f}%" if d.branch_band == "excellent" else f"{d.branch_miss_rate:.2f}%"
        lines.append(_metric_line("Branch Miss Rate", _banded(fmt, d.branch_band, _BRANCH_STYLE, theme), theme))
    if d.stall_pct is not None:
        color = "red" if d.stall_pct > 50 else "yellow" if d.stall_pct > 25 else "green"
        lines.append(_metric_line("Stall Cycles", theme.paint(f"{d.stall_pct:.1f}%", color) + " of cycles", theme))
        if d.memory_stall_pct is not None:
            lines.append(f"    {theme.paint('└─ Memory Stalls:', 'dim')} {d.memory_stall_pct:.1f}% of cycles")
    if d.memory_intensity is not None:
        lines.append(_metric_line("Memory Intensity", f"{d.memory_intensity:.3f} loads/instruction", theme))
    if d.vectorization_ratio is not None:
        lines.append(_metric_line("Vectorization Ratio", f"{d.vectorization_ratio:.1f}% of FP instructions", theme))
    if d.operational_intensity is not None:
        value = _banded(f"{d.operational_intensity:.2f}", d.intensity_class, _INTENSITY_STYLE, theme)
        lines.append(_metric_line("Operational Intensity", f"{value} FLOPs/byte", theme))
    if d.read_bandwidth_gbps is not None:
        lines.append(_metric_line("Read Bandwidth", f"{d.read_bandwidth_gbps:.2f} GB/s", theme))
    if d.gflops is not None:
        lines.append(_metric_line("GFLOPS", theme.paint(f"{d.gflops:.2f}", "green"), theme))
    if d.elapsed_seconds is not None:
        lines.append(_metric_line("Elapsed Time", f"{d.elapsed_seconds:.3f} seconds", theme))
    return lines


def _bar(pct: float, color: str, theme: Theme, width: int = 50) -> str:
    filled = max(0, min(width, int(round(pct * width / 100.0))))
    return theme.paint("█" * filled, color) + theme.paint("░" * (width - filled), "dim")


def render_topdown(derived: DerivedMetrics, theme: Theme = PLAIN_THEME) -> List[str]:
    td = derived.topdown
    if td is None:
        return []
    lines = _section("Top-Down Microarchitecture Analysis", theme)
    for branch, label, pct, color in (
        ("├─", "Retiring:       ", td.retiring_pct, "green"),
        ("├─", "Bad Speculation:", td.bad_speculation_pct, "yellow"),
        ("├─", "Frontend Bound: ", td.frontend_bound_pct, "cyan"),
        ("└─", "Backend Bound:  ", td.backend_bound_pct, "red"),
    ):
        lines.append(f"  {branch} {theme.paint(label, color)} {pct:5.1f}%  {_bar(pct, color, theme)}")
    if td.dominant:
        lines.append("")
        lines.append(f"  {theme.paint('Primary TMA Bottleneck:', 'yellow')} {td.dominant}")
    return lines


def render_insights(report: InsightReport, theme: Theme = PLAIN_THEME) -> List[str]:
    lines = _section("Performance Insights", theme)
    if not report.insights:
        lines.append("  No insights for the recorded counters.")
    for insight in report.insights:
        marker, color = _SEVERITY_STYLE[insight.severity]
        lines.append(theme.paint(f"{marker} {insight.message}", color))
        for detail in insight.details:
            lines.append(f"  └─ {detail}")
        for recommendation in insight.recommendations:
            lines.append(f"  └─ Recommendation: {recommendation}")
        lines.append("")

    summary = report.summary
    lines.append(_LIGHT)
    lines.append("")
    lines.append(theme.paint("BOTTLENECK SUMMARY:", "bold"))
    if summary.primary:
        lines.append("  Primary:   " + theme.paint(summary.primary, "red"))
    else:
        lines.append("  Primary:   " + theme.paint("No major bottleneck identified", "green"))
    if summary.secondary:
        lines.append("  Secondary: " + theme.paint(summary.secondary, "yellow"))
    else:
        lines.append("  Secondary: " + theme.paint("None", "dim"))
    return lines


def render_report(
    snapshot: MetricsSnapshot,
    derived: DerivedMetrics,
    report: Optional[InsightReport] = None,
    host: Optional[HostFacts] = None,
    theme: Theme = PLAIN_THEME,
) -> str:
    """Full single-record report; ``report=None`` omits the insights block."""
    lines = _banner("Performance Analysis Report", theme)
    lines.append("")
    if snapshot.source:
        lines.append(f"{theme.paint('Source:', 'yellow')} {snapshot.source}")
    if host is not None and (host.l2_cache_kb or host.l3_cache_kb):
        lines.append(
            f"{theme.paint('Host:', 'yellow')} L2 {host.l2_cache_mb:.1f} MB/core, "
            f"L3 {host.l3_cache_mb:.1f} MB"
        )
    lines.append("")
    lines.extend(render_counter_table(snapshot, theme))
    if snapshot.user_seconds is not None or snapshot.sys_seconds is not None:
        lines.append(
            f"  user {snapshot.user_seconds or 0.0:.3f}s  sys {snapshot.sys_seconds or 0.0:.3f}s"
        )
    lines.extend(render_derived(derived, theme))
    lines.extend(render_topdown(derived, theme))
    if report is not None:
        lines.extend(render_insights(report, theme))
    lines.append("")
    return "\n".join(lines)


def _change_text(row: EventDelta, theme: Theme) -> str:
    if row.status != "both":
        return "n/a"
    if row.band == "decrease":
        return theme.paint(f"{row.change_pct:.1f}%", "green")
    if row.band == "increase":
        return theme.paint(f"+{row.change_pct:.1f}%", "red")
    return f"{row.change_pct:.1f}%"


def _pad_painted(text: str, plain_len: int, width: int) -> str:
    return " " * max(0, width - plain_len) + text


def _delta_text(delta: MetricDelta, theme: Theme) -> str:
    unit = "pp" if delta.unit == "pp" else "%"
    places = 2 if delta.metric == "l3_hit_rate" else 1
    sep = " " if unit == "pp" else ""
    sign = "+" if delta.delta > 0 else ""
    text = f"{sign}{delta.delta:.{places}f}{sep}{unit}"
    if delta.band == "neutral":
        return text
    improved = (delta.band == "increase") == _HIGHER_IS_BETTER.get(delta.metric, True)
    return theme.paint(text, "green" if improved else "red")


def _delta_values(delta: MetricDelta) -> str:
    if delta.metric == "ipc":
        return f"{delta.baseline:8.3f} → {delta.candidate:8.3f}"
    if delta.metric == "l3_hit_rate":
        return f"{delta.baseline:7.2f}% → {delta.candidate:7.2f}%"
    if delta.metric == "elapsed_seconds":
        return f"{delta.baseline:7.3f}s → {delta.candidate:7.3f}s"
    return f"{delta.baseline:7.1f}% → {delta.candidate:7.1f}%"


def render_comparison(
    result: ComparisonResult,
    theme: Theme = PLAIN_THEME,
    baseline_name: str = "",
    candidate_name: str = "",
) -> str:
    lines = _banner("Performance Comparison", theme)
    lines.append("")
    if baseline_name:
        lines.append(f"{theme.paint('Baseline:', 'yellow')}  {baseline_name}")
    if candidate_name:
        lines.append(f"{theme.paint('Optimized:', 'yellow')} {candidate_name}")
    lines.append("")

    lines.append(theme.paint("┌" + "─" * 32 + "┬" + "─" * 18 + "┬" + "─" * 18 + "┬" + "─" * 14 + "┐", "bold"))
    lines.append(theme.paint(f"│ {'Metric':<30} │ {'Baseline':>16} │ {'Optimized':>16} │ {'Change':>12} │", "bold"))
    lines.append(theme.paint("├" + "─" * 32 + "┼" + "─" * 18 + "┼" + "─" * 18 + "┼" + "─" * 14 + "┤", "bold"))
    by_category: Dict[str, List[EventDelta]] = {}
    for row in result.rows:
        by_category.setdefault(row.category, []).append(row)
    for category in CATEGORY_ORDER:
        rows = by_category.get(category)
        if not rows:
            continue
        header = f"── {CATEGORY_TITLES[category]} ──"
        lines.append(f"│ {theme.paint(f'{header:<30}', 'cyan')} │ {'':>16} │ {'':>16} │ {'':>12} │")
        for row in rows:
            base = format_count(row.baseline) if row.baseline is not None else (row.baseline_raw or "-")
            cand = format_count(row.candidate) if row.candidate is not None else (row.candidate_raw or "-")
            plain = _change_text(row, PLAIN_THEME)
            change = _pad_painted(_change_text(row, theme), len(plain), 12)
            lines.append(f"│   {row.label:<28} │ {base:>16} │ {cand:>16} │ {change} │")
    lines.append(theme.paint("└" + "─" * 32 + "┴" + "─" * 18 + "┴" + "─" * 18 + "┴" + "─" * 14 + "┘", "bold"))

    if result.metric_deltas or result.speedup or result.slowdown:
        lines.extend(_section("Derived Metrics Comparison", theme))
        for delta in result.metric_deltas:
            lines.append(f"  {delta.label + ':':<20} {_delta_values(delta)} ({_delta_text(delta, theme)})")
        if result.speedup:
            lines.append(f"  {'Speedup:':<20} " + theme.paint(f"{result.speedup:.2f}x", "green"))
        elif result.slowdown:
            lines.append(f"  {'Slowdown:':<20} " + theme.paint(f"{result.slowdown:.2f}x", "red"))

    lines.extend(_section("Performance Explanation", theme))
    lines.append("")
    for item in result.explanations:
        if item.direction == "better":
            lines.append("  " + theme.paint(f"✓ {item.message}", "green"))
        elif item.direction == "worse":
            lines.append("  " + theme.paint(f"⚠ {item.message}", "red"))
        else:
            lines.append("  " + theme.paint(item.message, "yellow"))
        for detail in item.details:
            lines.append(f"    └─ {detail}")
    lines.append("")
    return "\n".join(lines)


@dataclass
class ConsoleUI:
    enabled: bool = True
    stream: TextIO = sys.stdout
    theme: Theme = PLAIN_THEME

    def report(
        self,
        snapshot: MetricsSnapshot,
        derived: DerivedMetrics,
        report: Optional[InsightReport] = None,
        host: Optional[HostFacts] = None,
    ) -> None:
        self._write(render_report(snapshot, derived, report, host, self.theme))

    def comparison(self, result: ComparisonResult, baseline_name: str = "", candidate_name: str = "") -> None:
        self._write(render_comparison(result, self.theme, baseline_name, candidate_name))

    def recording_started(
        self,
        output_path: str,
        command: Sequence[str],
        events: Sequence[str],
        env: Dict[str, str],
    ) -> None:
        if not self.enabled:
            return
        for line in _banner("Perf Performance Metrics Recording", self.theme):
            self._print(line)
        self._print("")
        self._kv("Output file", output_path)
        self._kv("Command", " ".join(command))
        self._print("")
        self._print(self.theme.paint("Environment:", "yellow"))
        for key in ("LD_PRELOAD", "OMP_NUM_THREADS"):
            self._print(f"  {key}={env.get(key) or '<not set>'}")
        self._print("")
        self._kv("Events being recorded", str(len(events)))
        self._print("  " + ",".join(events))
        self._print("")
        self._print(self.theme.paint("Starting perf stat...", "green"))

    def recording_done(self, output: RecordOutput, record_name: str) -> None:
        if not self.enabled:
            return
        if output.backup_path:
            self._print(self.theme.paint(f"Existing file renamed to: {output.backup_path}", "yellow"))
        self._print(self.theme.paint("Recording complete!", "green"))
        self._print(f"Metrics saved to: {self.theme.paint(output.record_path, 'bold')}")
        if output.exit_code != 0:
            self._print(self.theme.paint(f"Command exited with code {output.exit_code}", "yellow"))
        self._print(f"To visualize: {self.theme.paint(f'perfdiag --visualize --input {record_name}', 'cyan')}")

    def _kv(self, key: str, value: str) -> None:
        self._print(f"{self.theme.paint(key + ':', 'yellow')} {value}")

    def _write(self, text: str) -> None:
        if not self.enabled:
            return
        self.stream.write(text if text.endswith("\n") else text + "\n")
        self.stream.flush()

    def _print(self, line: str) -> None:
        if not self.enabled:
            return
        self.stream.write(line + "\n")
        self.stream.flush()
