from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import ValidationError

from perfdiag.errors import ConfigError
from schemas.config_ir import AnalysisConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "analysis.yaml"


def load_yaml(path: Path) -> Dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")
    return data


def _deep_merge_dicts(base: Dict[str, object], overlay: Dict[str, object]) -> Dict[str, object]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge_dicts(current, value)
        else:
            merged[key] = value
    return merged


def local_override_path(path: Path) -> Path:
    """analysis.yaml -> analysis.local.yaml"""
    return path.with_name(f"{path.stem}.local{path.suffix}")


def load_analysis_config(path: Optional[Path] = None) -> AnalysisConfig:
    """Load thresholds from YAML, merging an untracked ``*.local.yaml`` on top.

    A missing default file yields the built-in defaults; a missing explicit
    path is an error.
    """
    explicit = path is not None
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data: Dict[str, object] = {}
    if path.exists():
        data = load_yaml(path)
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")
    local_path = local_override_path(path)
    if local_path.exists():
        logger.info("Merging local config overrides from %s", local_path)
        data = _deep_merge_dicts(data, load_yaml(local_path))
    try:
        return AnalysisConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid analysis config {path}: {exc}") from exc
