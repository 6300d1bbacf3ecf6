"""Pydantic v2 models for vessel position reports.

Field names are descriptive; the wire names used by trackers and
subscribers are carried as aliases, so always dump with ``by_alias=True``.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def is_number(value: Any) -> bool:
    """Return ``True`` for finite ints and floats (``bool`` excluded).

    Ints too large to convert to a float are not numbers here.
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


class GpsFix(BaseModel):
    """One antenna/sensor reading.

    Required fields are strict: a missing source tag or a non-numeric
    coordinate fails validation.  Optional fields are lenient and fall back
    to ``None`` (or ``[]``) rather than rejecting the fix.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source_tag: str = Field(alias="gps", min_length=1)
    latitude: float
    longitude: float
    altitude_m: float | None = Field(default=None, alias="altitude")
    speed: float | None = None
    satellite_count: int | None = Field(default=None, alias="satellites")
    satellite_ids: list[str] = Field(default_factory=list, alias="satellite_prns")

    @field_validator("source_tag", mode="before")
    @classmethod
    def _require_string_tag(cls, value: Any) -> Any:
        if not isinstance(value, str):
            raise ValueError("source tag must be a string")
        return value

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _require_number(cls, value: Any) -> Any:
        if not is_number(value):
            raise ValueError("coordinate must be a finite number")
        return value

    @field_validator("altitude_m", "speed", mode="before")
    @classmethod
    def _optional_number(cls, value: Any) -> Any:
        return value if is_number(value) else None

    @field_validator("satellite_count", mode="before")
    @classmethod
    def _optional_int(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    @field_validator("satellite_ids", mode="before")
    @classmethod
    def _prn_list(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [str(prn) for prn in value]


class PositionReport(BaseModel):
    """A vessel's most recent validated fix set (one Position Store entry)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    observed_at: datetime = Field(alias="timestamp")
    vessel_id: str = Field(alias="ship_id", min_length=1)
    device_id: str | None = None
    heading_degrees: float | None = Field(default=None, alias="heading")
    fixes: list[GpsFix] = Field(alias="gps_data", min_length=1)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict subscribers and the log sink see."""
        return self.model_dump(mode="json", by_alias=True)
