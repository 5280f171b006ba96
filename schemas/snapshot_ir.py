from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from pydantic import Field

from schemas.strict_base import FrozenModel

MAX_COUNT = 2**64 - 1


class CounterReading(FrozenModel):
    """One counter line of a record.

    ``count`` is ``None`` when the source printed a sentinel such as
    ``<not counted>``; that is "unavailable", never zero.
    """

    event: str
    count: Optional[int] = Field(default=None, ge=0, le=MAX_COUNT)
    raw: str = ""
    rate: str = ""

    @property
    def available(self) -> bool:
        return self.count is not None


class MetricsSnapshot(FrozenModel):
    readings: Dict[str, CounterReading] = Field(default_factory=dict)
    elapsed_seconds: Optional[float] = Field(default=None, ge=0.0)
    user_seconds: Optional[float] = Field(default=None, ge=0.0)
    sys_seconds: Optional[float] = Field(default=None, ge=0.0)
    source: Optional[str] = None

    @property
    def events(self) -> List[str]:
        return list(self.readings)

    def count(self, event: str) -> Optional[int]:
        reading = self.readings.get(event)
        if reading is None:
            return None
        return reading.count

    def is_unavailable(self, event: str) -> bool:
        """True when the event was reported with a sentinel value."""
        reading = self.readings.get(event)
        return reading is not None and reading.count is None

    def rate(self, event: str) -> str:
        reading = self.readings.get(event)
        return reading.rate if reading is not None else ""

    @classmethod
    def from_counts(
        cls,
        counts: Mapping[str, Optional[int]],
        elapsed_seconds: Optional[float] = None,
        source: Optional[str] = None,
    ) -> "MetricsSnapshot":
        readings = {
            event: CounterReading(
                event=event,
                count=value,
                raw=f"{value:,}" if value is not None else "<not counted>",
            )
            for event, value in counts.items()
        }
        return cls(readings=readings, elapsed_seconds=elapsed_seconds, source=source)
