from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from counters.event_catalog import canonical_event
from perfdiag.errors import EmptyRecordError, RecordNotFoundError
from schemas.snapshot_ir import MAX_COUNT, CounterReading, MetricsSnapshot

logger = logging.getLogger(__name__)

# `perf stat` line shapes:
#      976,632,847      L1-dcache-load-misses   #  106.07% of all L1-dcache accesses  (38.45%)
#   <not counted>      cycle_activity.stalls_l3_miss                                  (0.00%)
#       0.391205431 seconds time elapsed
_COUNTER_RE = re.compile(
    r"^(?P<count><not (?:counted|supported)>|\d[\d,]*)\s+"
    r"(?P<event>[^\s#]+)"
    r"(?P<rest>.*)$"
)
_SENTINEL_RE = re.compile(r"^<not (?:counted|supported)>$")
_TIME_RE = re.compile(
    r"^(?P<value>\d+(?:\.\d+)?)\s+(?:\+-\s+\S+\s+)?seconds\s+(?P<kind>time elapsed|user|sys)\b"
)
_MULTIPLEX_RE = re.compile(r"\s*\(\s*[\d.]+%\s*\)\s*$")
_PERCENT_RE = re.compile(r"[\d.]+%")
_IPC_RE = re.compile(r"(?P<value>[\d.]+)\s+insn")

_BOILERPLATE = ("Performance counter stats", "started on")

Lines = Union[str, Iterable[str]]


def parse_count(raw: str) -> Optional[int]:
    """Parse '12,345,678' to int; sentinels give None."""
    raw = raw.strip()
    if _SENTINEL_RE.match(raw):
        return None
    return int(raw.replace(",", ""))


def parse_rate(rest: str) -> str:
    """Extract the display-only rate text after the '#' separator.

    A percentage or an "insn per cycle" hint is normalised; any other
    annotation is kept as printed.
    """
    if "#" not in rest:
        return ""
    annotation = rest.split("#", 1)[1].strip()
    annotation = _MULTIPLEX_RE.sub("", annotation).strip()
    percent = _PERCENT_RE.search(annotation)
    if percent:
        return percent.group(0)
    ipc = _IPC_RE.search(annotation)
    if ipc:
        return f"IPC: {ipc.group('value')}"
    return annotation


def parse_perf_stat(lines: Lines, source: Optional[str] = None) -> MetricsSnapshot:
    """Parse a `perf stat` record into a snapshot.

    Lines that do not look like a counter entry are skipped; a record with no
    counter entries and no elapsed time at all raises EmptyRecordError.
    """
    if isinstance(lines, str):
        lines = lines.splitlines()

    readings: Dict[str, CounterReading] = {}
    times: Dict[str, float] = {}
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if any(marker in line for marker in _BOILERPLATE):
            continue

        time_match = _TIME_RE.match(line)
        if time_match:
            times[time_match.group("kind")] = float(time_match.group("value"))
            continue

        match = _COUNTER_RE.match(line)
        if not match:
            logger.debug("Skipping unrecognised record line: %r", line)
            continue
        raw_count = match.group("count")
        count = parse_count(raw_count)
        if count is not None and count > MAX_COUNT:
            logger.debug("Skipping out-of-range count: %r", line)
            continue
        # `cycles:u`, `cpu_core/cycles/` and `cycles` share one key.
        event = canonical_event(match.group("event"))
        readings[event] = CounterReading(
            event=event,
            count=count,
            raw=raw_count,
            rate=parse_rate(match.group("rest")),
        )

    if not readings and "time elapsed" not in times:
        raise EmptyRecordError(
            f"No counter entries found in record{f' {source}' if source else ''}"
        )

    return MetricsSnapshot(
        readings=readings,
        elapsed_seconds=times.get("time elapsed"),
        user_seconds=times.get("user"),
        sys_seconds=times.get("sys"),
        source=source,
    )


def load_record(path: Path) -> MetricsSnapshot:
    path = Path(path)
    if not path.is_file():
        raise RecordNotFoundError(f"Record file not found: {path}")
    text = path.read_text(encoding="utf-8", errors="replace")
    snapshot = parse_perf_stat(text, source=str(path))
    logger.info(
        "Loaded record %s (%d events, elapsed=%s)",
        path,
        len(snapshot.readings),
        snapshot.elapsed_seconds,
    )
    return snapshot
