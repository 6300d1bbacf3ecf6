"""Capacity-bounded registry of admitted subscriber connections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from websockets.protocol import State

from shiptrack.errors import CapacityError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

DEFAULT_CAPACITY = 200


@dataclass(frozen=True, slots=True)
class AdmissionReceipt:
    """Returned on admission; ``client_count`` includes the new connection."""

    client_count: int


def is_open(connection: Any) -> bool:
    """Return ``True`` if the connection's transport state is OPEN."""
    return getattr(connection, "state", None) is State.OPEN


class ConnectionRegistry:
    """Ordered set of admitted connection handles.

    The registry is the only long-lived owner of connection handles; other
    components get them one at a time through :meth:`for_each_open`.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._connections: dict[Any, None] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count(self) -> int:
        return len(self._connections)

    def is_empty(self) -> bool:
        return not self._connections

    def try_admit(self, connection: Any) -> AdmissionReceipt:
        """Admit *connection* for broadcast fan-out.

        Raises :class:`CapacityError` when the registry is full; the caller
        is responsible for closing the rejected connection.
        """
        if connection in self._connections:
            return AdmissionReceipt(client_count=self.count)
        if self.count >= self._capacity:
            raise CapacityError(self._capacity)
        self._connections[connection] = None
        return AdmissionReceipt(client_count=self.count)

    def remove(self, connection: Any) -> bool:
        """Forget *connection*.  Safe to call more than once.

        Returns ``True`` only when this call removed the connection and left
        the registry empty, so the non-empty → empty transition is reported
        exactly once.
        """
        if connection not in self._connections:
            return False
        del self._connections[connection]
        return not self._connections

    def for_each_open(self, fn: Callable[[Any], object]) -> int:
        """Apply *fn* to every admitted connection that is still open.

        Iterates over a copy, so connections closing mid-iteration are just
        skipped.  Returns the number of connections *fn* was applied to.
        """
        applied = 0
        for connection in list(self._connections):
            if not is_open(connection):
                continue
            fn(connection)
            applied += 1
        return applied

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._connections))

    def __contains__(self, connection: object) -> bool:
        return connection in self._connections

    def __len__(self) -> int:
        return len(self._connections)
