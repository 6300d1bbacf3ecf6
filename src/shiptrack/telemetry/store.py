"""In-memory store for the latest position report per vessel.

Owned by a single event loop (see :class:`~shiptrack.telemetry.state.FleetState`);
every method is synchronous, so calls can never interleave.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shiptrack.models.position import PositionReport


class PositionStore:
    """Latest :class:`PositionReport` per ``vessel_id``, last write wins."""

    def __init__(self) -> None:
        self._reports: dict[str, PositionReport] = {}

    def upsert(self, report: PositionReport) -> None:
        """Record or overwrite the entry for ``report.vessel_id``."""
        self._reports[report.vessel_id] = report

    def get(self, vessel_id: str) -> PositionReport | None:
        return self._reports.get(vessel_id)

    def snapshot(self) -> list[PositionReport]:
        """Return every current report, ordered by ``vessel_id`` ascending."""
        return [self._reports[key] for key in sorted(self._reports)]

    def clear(self) -> None:
        self._reports.clear()

    def __len__(self) -> int:
        return len(self._reports)

    def __contains__(self, vessel_id: object) -> bool:
        return vessel_id in self._reports
