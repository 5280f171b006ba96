"""Pydantic schemas for the perf counter analysis engine."""

from schemas.strict_base import FrozenModel, StrictBaseModel

__all__ = ["FrozenModel", "StrictBaseModel"]
