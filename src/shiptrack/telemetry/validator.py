"""Turn inbound tracker messages into validated position reports.

Inbound wire format (one JSON object per WebSocket message)::

    {
      "ship_id": "SHIP1",
      "device_id": "dev-7",            # optional
      "heading": 87.5,                  # optional
      "timestamp": "2026-10-18T09:00Z", # optional, ISO-8601
      "gps_data": [
        {"gps": "top_gps", "latitude": 16.8, "longitude": 96.2,
         "altitude": 4.1, "speed": 11.2, "satellites": 9,
         "satellite_prns": ["G01", "G07"]}
      ]
    }

Both functions here are pure: they never log and never touch shared
state.  Failures are raised as :class:`~shiptrack.errors.ValidationError`
and the caller decides what to log.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import pydantic

from shiptrack.errors import RejectReason, ValidationError
from shiptrack.models.position import GpsFix, PositionReport, is_number


def decode_message(raw: str | bytes) -> Any:
    """Parse one raw WebSocket message as JSON.

    Binary frames are accepted as UTF-8 text.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise ValidationError(RejectReason.MALFORMED_PAYLOAD, str(exc)) from exc


def validate_report(message: Any, *, received_at: datetime) -> PositionReport:
    """Validate a decoded message and build its :class:`PositionReport`.

    Invalid fixes are dropped one by one; the report is rejected only when
    nothing usable is left.  *received_at* becomes ``observed_at`` unless
    the tracker supplied a parseable timestamp.

    Raises :class:`ValidationError` with the matching :class:`RejectReason`.
    """
    if not isinstance(message, dict):
        raise ValidationError(
            RejectReason.MALFORMED_PAYLOAD,
            f"expected a JSON object, got {type(message).__name__}",
        )

    vessel_id = message.get("ship_id")
    if not isinstance(vessel_id, str) or not vessel_id:
        raise ValidationError(RejectReason.MISSING_VESSEL_ID)

    entries = message.get("gps_data")
    if entries is None or entries == []:
        raise ValidationError(RejectReason.EMPTY_FIX_LIST, f"ship {vessel_id}")
    if not isinstance(entries, list):
        raise ValidationError(
            RejectReason.MALFORMED_PAYLOAD,
            f"gps_data for ship {vessel_id} is not a list",
        )

    fixes = [fix for fix in map(_parse_fix, entries) if fix is not None]
    if not fixes:
        raise ValidationError(
            RejectReason.NO_VALID_FIXES,
            f"none of {len(entries)} gps_data entries from ship {vessel_id} are usable",
        )

    device_id = message.get("device_id")
    heading = message.get("heading")
    return PositionReport(
        observed_at=_parse_timestamp(message.get("timestamp")) or received_at,
        vessel_id=vessel_id,
        device_id=device_id if isinstance(device_id, str) and device_id else None,
        heading_degrees=heading if is_number(heading) else None,
        fixes=fixes,
    )


def _parse_fix(entry: Any) -> GpsFix | None:
    """Return a :class:`GpsFix` for *entry*, or ``None`` if it is unusable."""
    if not isinstance(entry, dict):
        return None
    try:
        return GpsFix.model_validate(entry)
    except pydantic.ValidationError:
        return None


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
