from __future__ import annotations

from shiptrack.models.config import ServerSettings
from shiptrack.models.messages import ShipsLogRecord, ShipsUpdate, WelcomeMessage
from shiptrack.models.position import GpsFix, PositionReport

__all__ = [
    # config
    "ServerSettings",
    # messages
    "ShipsLogRecord",
    "ShipsUpdate",
    "WelcomeMessage",
    # position
    "GpsFix",
    "PositionReport",
]
