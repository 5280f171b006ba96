from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import Field

from schemas.strict_base import FrozenModel

Severity = Literal["ok", "info", "warning"]


class Insight(FrozenModel):
    rule_id: str
    severity: Severity
    category: str
    message: str
    details: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    data: Dict[str, object] = Field(default_factory=dict)
    # Label offered to the bottleneck summary; None means the finding never
    # competes for a slot.
    bottleneck: Optional[str] = None
    # Shorter label used when the finding lands in the secondary slot.
    secondary_bottleneck: Optional[str] = None


class BottleneckSummary(FrozenModel):
    primary: Optional[str] = None
    secondary: Optional[str] = None


class InsightReport(FrozenModel):
    insights: List[Insight] = Field(default_factory=list)
    summary: BottleneckSummary = Field(default_factory=BottleneckSummary)

    @property
    def warnings(self) -> List[Insight]:
        return [item for item in self.insights if item.severity == "warning"]
