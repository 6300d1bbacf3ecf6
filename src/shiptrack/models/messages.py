"""Outbound message shapes: welcome, broadcast packet, and log record."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from shiptrack.models.position import PositionReport


class WelcomeMessage(BaseModel):
    """Sent once to each newly admitted connection."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["welcome"] = "welcome"
    message: str
    client_count: int = Field(alias="clientCount", ge=1)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ShipsLogRecord(BaseModel):
    """One log sink record: the ``ships`` and ``timestamp`` that were sent."""

    ships: list[PositionReport]
    timestamp: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ShipsUpdate(BaseModel):
    """Periodic snapshot packet fanned out to every open connection.

    ``ships`` is ordered by ``ship_id`` ascending.
    """

    type: Literal["ships_update"] = "ships_update"
    ships: list[PositionReport]
    timestamp: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def log_record(self) -> ShipsLogRecord:
        """Return the sink record describing this exact packet."""
        return ShipsLogRecord(ships=self.ships, timestamp=self.timestamp)
