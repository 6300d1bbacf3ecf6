"""Error taxonomy for the aggregation server.

None of these are fatal to the process: each is logged where it is caught
and the server carries on with the next message, connection, or cycle.
"""

from __future__ import annotations

from enum import StrEnum


class RejectReason(StrEnum):
    """Why an inbound telemetry message was dropped."""

    MALFORMED_PAYLOAD = "malformed_payload"
    MISSING_VESSEL_ID = "missing_vessel_id"
    EMPTY_FIX_LIST = "empty_fix_list"
    NO_VALID_FIXES = "no_valid_fixes"


class ShiptrackError(Exception):
    """Base class for all shiptrack errors."""


class TransportError(ShiptrackError):
    """A connection failed at the transport level (abnormal close, reset)."""


class ValidationError(ShiptrackError):
    """An inbound message could not be turned into a position report."""

    def __init__(self, reason: RejectReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class CapacityError(ShiptrackError):
    """The connection registry is full."""

    reason = "capacity_exceeded"

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(f"Maximum clients reached ({capacity})")


class SinkError(ShiptrackError):
    """Writing a broadcast record to the log sink failed."""
