from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import psutil

from counters.event_catalog import recording_events
from counters.record_files import rotate_existing
from perfdiag.errors import RecordingError

logger = logging.getLogger(__name__)


@dataclass
class RecordOutput:
    record_path: str
    backup_path: Optional[str]
    exit_code: int
    runtime_seconds: float
    events: List[str]


def build_perf_stat_cmd(
    command: Sequence[str],
    output_path: Path,
    events: Sequence[str],
    system_wide: bool = False,
    perf_bin: str = "perf",
) -> List[str]:
    cmd = [perf_bin, "stat", "-e", ",".join(events), "-o", str(output_path)]
    if system_wide:
        cmd.append("-a")
    return cmd + ["--", *command]


def record_counters(
    command: Sequence[str],
    output_path: Path,
    system_wide: bool = False,
    env_overrides: Optional[Dict[str, str]] = None,
    workdir: Optional[Path] = None,
) -> RecordOutput:
    """Run ``perf stat`` around a command and write the counter record.

    An existing record at ``output_path`` is renamed aside first.
    """
    if not command:
        raise RecordingError("No command given to record")
    perf_bin = shutil.which("perf")
    if not perf_bin:
        raise RecordingError("perf not found on PATH (install linux-tools for this kernel)")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    backup = rotate_existing(output_path)

    events = recording_events(system_wide=system_wide)
    cmd = build_perf_stat_cmd(command, output_path, events, system_wide, perf_bin=perf_bin)
    env = os.environ.copy()
    env.update(env_overrides or {})

    logger.info("Recording %d events into %s: %s", len(events), output_path, " ".join(command))
    start = time.monotonic()
    try:
        proc = psutil.Popen(cmd, cwd=str(workdir) if workdir else None, env=env)
        exit_code = proc.wait()
    except OSError as exc:
        raise RecordingError(f"Failed to launch perf: {exc}") from exc
    runtime = time.monotonic() - start

    if not output_path.exists():
        raise RecordingError(f"perf stat exited with code {exit_code} and wrote no record")
    if exit_code != 0:
        logger.warning("Recorded command exited with code %d", exit_code)
    logger.info("Recording complete in %.2fs", runtime)
    return RecordOutput(
        record_path=str(output_path),
        backup_path=str(backup) if backup else None,
        exit_code=exit_code,
        runtime_seconds=runtime,
        events=events,
    )
