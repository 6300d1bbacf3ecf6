"""Vessel telemetry aggregation: validation, state, fan-out, and server."""

from __future__ import annotations

from shiptrack.telemetry.cycle import BroadcastCycle, CycleOutcome, format_local_time
from shiptrack.telemetry.fanout import Broadcaster
from shiptrack.telemetry.log_sink import ShipLogSink, default_log_path
from shiptrack.telemetry.registry import AdmissionReceipt, ConnectionRegistry
from shiptrack.telemetry.server import ShipTrackServer
from shiptrack.telemetry.staleness import StalenessMonitor
from shiptrack.telemetry.state import FleetState
from shiptrack.telemetry.store import PositionStore
from shiptrack.telemetry.validator import decode_message, validate_report

__all__ = [
    "AdmissionReceipt",
    "BroadcastCycle",
    "Broadcaster",
    "ConnectionRegistry",
    "CycleOutcome",
    "FleetState",
    "PositionStore",
    "ShipLogSink",
    "ShipTrackServer",
    "StalenessMonitor",
    "decode_message",
    "default_log_path",
    "format_local_time",
    "validate_report",
]
