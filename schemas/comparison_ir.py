from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import Field

from schemas.strict_base import FrozenModel

ChangeBand = Literal["decrease", "increase", "neutral"]
RowStatus = Literal["both", "baseline_only", "candidate_only"]
Direction = Literal["better", "worse", "neutral"]


class EventDelta(FrozenModel):
    event: str
    label: str
    category: str
    baseline: Optional[int] = None
    candidate: Optional[int] = None
    baseline_raw: str = ""
    candidate_raw: str = ""
    # 0.0 when the baseline is zero or missing; see ``status``.
    change_pct: float = 0.0
    band: ChangeBand = "neutral"
    status: RowStatus = "both"


class MetricDelta(FrozenModel):
    metric: str
    label: str
    baseline: float
    candidate: float
    delta: float
    unit: Literal["pct", "pp"]
    band: ChangeBand = "neutral"


class Explanation(FrozenModel):
    kind: str
    direction: Direction
    message: str
    details: List[str] = Field(default_factory=list)
    data: Dict[str, float] = Field(default_factory=dict)


class ComparisonResult(FrozenModel):
    rows: List[EventDelta] = Field(default_factory=list)
    metric_deltas: List[MetricDelta] = Field(default_factory=list)
    baseline_elapsed: Optional[float] = None
    candidate_elapsed: Optional[float] = None
    speedup: Optional[float] = None
    slowdown: Optional[float] = None
    explanations: List[Explanation] = Field(default_factory=list)

    def row(self, event: str) -> Optional[EventDelta]:
        for item in self.rows:
            if item.event == event:
                return item
        return None

    def metric(self, name: str) -> Optional[MetricDelta]:
        for item in self.metric_deltas:
            if item.metric == name:
                return item
        return None

    @property
    def no_significant_difference(self) -> bool:
        return all(item.direction == "neutral" for item in self.explanations)
