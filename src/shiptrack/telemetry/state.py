"""The single aggregate that owns all mutable server state.

Position store, connection registry and staleness monitor live together
in one :class:`FleetState` owned by the asyncio event loop.  Every method
is synchronous, so no coroutine can observe a half-applied update: an
:meth:`accept` followed by a snapshot in the same loop iteration always
sees the write, and the broadcast cycle never snapshots mid-upsert.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shiptrack.telemetry.registry import (
    DEFAULT_CAPACITY,
    AdmissionReceipt,
    ConnectionRegistry,
)
from shiptrack.telemetry.staleness import StalenessMonitor
from shiptrack.telemetry.store import PositionStore

if TYPE_CHECKING:
    from shiptrack.models.position import PositionReport

logger = logging.getLogger(__name__)


class FleetState:
    """Position store + connection registry + staleness monitor.

    Parameters:
        capacity: Maximum number of admitted connections.
        reset_on_empty: Clear reports and staleness when the last
            connection leaves.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, *, reset_on_empty: bool = True) -> None:
        self.store = PositionStore()
        self.registry = ConnectionRegistry(capacity)
        self.monitor = StalenessMonitor()
        self._reset_on_empty = reset_on_empty
        self._accepted_since_log = 0
        self._accepted_total = 0

    @property
    def reset_on_empty(self) -> bool:
        return self._reset_on_empty

    @property
    def accepted_total(self) -> int:
        """Reports accepted since the server started."""
        return self._accepted_total

    # -- Ingestion ------------------------------------------------------------

    def accept(self, report: PositionReport, now: float) -> None:
        """Store *report* and mark the fleet fresh at monotonic time *now*."""
        self.store.upsert(report)
        self.monitor.mark_fresh(now)
        self._accepted_since_log += 1
        self._accepted_total += 1

    def take_new_data(self) -> bool:
        """Return whether reports arrived since the previous call, and reset."""
        fresh = self._accepted_since_log > 0
        self._accepted_since_log = 0
        return fresh

    def snapshot(self) -> list[PositionReport]:
        return self.store.snapshot()

    # -- Connections ----------------------------------------------------------

    def admit(self, connection: Any) -> AdmissionReceipt:
        """Admit *connection*; raises :class:`~shiptrack.errors.CapacityError`."""
        return self.registry.try_admit(connection)

    def remove(self, connection: Any) -> bool:
        """Drop *connection*; returns ``True`` if the registry just became empty.

        On that transition the reports and staleness mark are reset right
        away, without waiting for the next broadcast cycle.
        """
        emptied = self.registry.remove(connection)
        if emptied and self._reset_on_empty:
            self.reset()
            logger.info("All clients disconnected, cleared ship positions")
        return emptied

    # -- Reset ----------------------------------------------------------------

    def reset(self) -> None:
        """Forget every report and the staleness mark.  Registry is untouched."""
        self.store.clear()
        self.monitor.reset()
        self._accepted_since_log = 0
