from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# MPU records are free-form; a sub-field may hold a scalar, list or map.
MotionValue = Any


class MotionSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    state: Optional[MotionValue] = None
    result: Optional[MotionValue] = None
    raised: Optional[MotionValue] = None
    lowered: Optional[MotionValue] = None

    def compact(self) -> dict:
        """Only the populated sub-fields."""
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.compact()


class SensorSnapshot(BaseModel):
    """Latest reading per sensor stream. A stream with no records stays None."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    heart_rate_bpm: Optional[Union[int, float]] = None   # ppg_data.bpm
    motion_summary: Optional[MotionSummary] = None       # mpu_data
    flex_bent: Optional[Union[int, float, str]] = None   # flex_data.bent
    pressure: Optional[Union[int, float]] = None         # fsr_data.pressure
