"""Shared fixtures for shiptrack tests."""

from __future__ import annotations

from typing import Any

import pytest

from tests.fakes import FakeConnection


@pytest.fixture()
def make_conn() -> Any:
    """Factory for :class:`FakeConnection` objects."""

    def _make(name: str = "client", **kwargs: Any) -> FakeConnection:
        return FakeConnection(name, **kwargs)

    return _make


@pytest.fixture()
def ship1_message() -> dict[str, Any]:
    return {
        "ship_id": "SHIP1",
        "gps_data": [{"gps": "top_gps", "latitude": 16.8, "longitude": 96.2}],
    }
