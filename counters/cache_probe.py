from __future__ import annotations

import logging
import os
import platform
import re
from pathlib import Path
from typing import Optional

import psutil

from schemas.host_ir import HostFacts

logger = logging.getLogger(__name__)

SYSFS_CPU_ROOT = Path("/sys/devices/system/cpu")

_SIZE_RE = re.compile(r"^\s*(?P<value>\d+)\s*(?P<unit>[KMG]?)i?B?\s*$", re.IGNORECASE)


def parse_cache_size_kb(text: str) -> int:
    """'2048K' -> 2048, '105M' -> 107520, '2048' -> 2048; unparseable text gives 0."""
    match = _SIZE_RE.match(text or "")
    if not match:
        return 0
    value = int(match.group("value"))
    unit = match.group("unit").upper()
    if unit == "M":
        return value * 1024
    if unit == "G":
        return value * 1024 * 1024
    # sysfs reports kilobytes when no unit is given
    return value


def _read_cache_level(root: Path, index: int) -> int:
    size_path = root / "cpu0" / "cache" / f"index{index}" / "size"
    if not size_path.exists():
        return 0
    try:
        text = size_path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.debug("Cannot read %s: %s", size_path, exc)
        return 0
    return parse_cache_size_kb(text)


def probe_host(root: Optional[Path] = None) -> HostFacts:
    """Detect L2/L3 sizes (kB, 0 = unknown) and core counts of this machine."""
    root = root or SYSFS_CPU_ROOT
    l2_kb = l3_kb = 0
    if platform.system() == "Linux" or root != SYSFS_CPU_ROOT:
        l2_kb = _read_cache_level(root, 2)
        l3_kb = _read_cache_level(root, 3)
    physical = psutil.cpu_count(logical=False) or os.cpu_count()
    logical = psutil.cpu_count(logical=True) or os.cpu_count() or physical
    facts = HostFacts(
        l2_cache_kb=l2_kb,
        l3_cache_kb=l3_kb,
        physical_cores=int(physical) if physical else None,
        logical_cores=int(logical) if logical else None,
    )
    logger.debug("Host facts: %s", facts)
    return facts
