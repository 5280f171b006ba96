from __future__ import annotations

from typing import Optional

from pydantic import Field

from schemas.strict_base import FrozenModel


class HostFacts(FrozenModel):
    """Facts about the analysing machine; 0 / None mean unknown.

    Only used to parameterise advice text, never to decide whether a rule
    fires.
    """

    l2_cache_kb: int = Field(default=0, ge=0)
    l3_cache_kb: int = Field(default=0, ge=0)
    physical_cores: Optional[int] = None
    logical_cores: Optional[int] = None

    @property
    def l2_cache_mb(self) -> float:
        return self.l2_cache_kb / 1024.0

    @property
    def l3_cache_mb(self) -> float:
        return self.l3_cache_kb / 1024.0
