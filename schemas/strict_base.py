from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class StrictBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class FrozenModel(StrictBaseModel):
    """Read-only value object; built once and never mutated afterwards."""

    model_config = ConfigDict(extra="forbid", frozen=True)
