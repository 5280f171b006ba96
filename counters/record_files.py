from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".txt"


def resolve_record_path(name: str, base_dir: Optional[Path] = None) -> Path:
    """Map a record name to its file: ``gemm`` -> ``gemm.txt``."""
    path = Path(name)
    if path.suffix != RECORD_SUFFIX:
        path = path.with_name(path.name + RECORD_SUFFIX)
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path
    return path


def rotate_existing(path: Path, now: Optional[datetime] = None) -> Optional[Path]:
    """Move an existing record aside as ``<stem>_<YYYYmmdd_HHMMSS>.txt``.

    Returns the backup path, or None when there was nothing to move.
    """
    if not path.exists():
        return None
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    backup = path.with_name(f"{path.stem}_{stamp}{path.suffix}")
    counter = 1
    while backup.exists():
        backup = path.with_name(f"{path.stem}_{stamp}_{counter}{path.suffix}")
        counter += 1
    path.rename(backup)
    logger.info("Existing record renamed to %s", backup)
    return backup
