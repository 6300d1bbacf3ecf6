"""Tests for the broadcast/log cycle."""

from __future__ import annotations

import asyncio
import json
import re
import time
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest
from websockets.protocol import State

from shiptrack.errors import SinkError
from shiptrack.models.messages import ShipsLogRecord
from shiptrack.models.position import GpsFix, PositionReport
from shiptrack.telemetry.cycle import BroadcastCycle, CycleOutcome, format_local_time
from shiptrack.telemetry.fanout import Broadcaster
from shiptrack.telemetry.state import FleetState


def _report(vessel_id: str, lat: float = 16.8) -> PositionReport:
    return PositionReport(
        observed_at=datetime(2026, 10, 18, 9, 0, tzinfo=UTC),
        vessel_id=vessel_id,
        fixes=[GpsFix(source_tag="top_gps", latitude=lat, longitude=96.2)],
    )


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> _Clock:
    return _Clock()


@pytest.fixture()
def sink() -> MagicMock:
    return MagicMock()


def _cycle(state: FleetState, sink: Any, clock: _Clock, **kwargs: Any) -> BroadcastCycle:
    return BroadcastCycle(state, Broadcaster(), sink, clock=clock, **kwargs)


class TestCycleOutcomes:
    @pytest.mark.asyncio
    async def test_idle_resets_everything(self, sink: MagicMock, clock: _Clock) -> None:
        state = FleetState()
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock)

        assert cycle.run_once() is CycleOutcome.IDLE
        assert len(state.store) == 0
        assert state.monitor.last_mark is None
        sink.write.assert_not_called()

    @pytest.mark.asyncio
    async def test_idle_without_reset_on_empty(self, sink: MagicMock, clock: _Clock) -> None:
        state = FleetState(reset_on_empty=False)
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock)

        assert cycle.run_once() is CycleOutcome.IDLE
        assert "SHIP1" in state.store

    @pytest.mark.asyncio
    async def test_stale_clears_store_only(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        conn = make_conn()
        state.admit(conn)
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock, stale_after=5.0)

        clock.now += 5.5
        assert cycle.run_once() is CycleOutcome.STALE
        assert len(state.store) == 0
        assert conn in state.registry
        await asyncio.sleep(0.01)
        assert conn.sent == []
        sink.write.assert_not_called()

    @pytest.mark.asyncio
    async def test_never_fresh_is_stale(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        state.admit(make_conn())
        assert _cycle(state, sink, clock).run_once() is CycleOutcome.STALE

    @pytest.mark.asyncio
    async def test_stale_reset_disabled_still_broadcasts(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        state.admit(make_conn())
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock, reset_on_stale=False)

        clock.now += 60
        assert cycle.run_once() is CycleOutcome.SENT
        assert "SHIP1" in state.store

    @pytest.mark.asyncio
    async def test_empty_snapshot(self, make_conn: Any, sink: MagicMock, clock: _Clock) -> None:
        state = FleetState()
        state.admit(make_conn())
        state.monitor.mark_fresh(clock.now)
        assert _cycle(state, sink, clock).run_once() is CycleOutcome.EMPTY
        sink.write.assert_not_called()


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_identical_packet_to_every_open_connection(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        conns = [make_conn(name) for name in ("a", "b", "c")]
        for conn in conns:
            state.admit(conn)
        conns[2].state = State.CLOSED
        state.accept(_report("SHIP2"), now=clock.now)
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock)

        assert cycle.run_once() is CycleOutcome.SENT
        await asyncio.sleep(0.01)

        assert len(conns[0].sent) == 1
        assert conns[0].sent == conns[1].sent
        assert conns[2].sent == []
        assert cycle.broadcast_count == 1

        packet = json.loads(conns[0].sent[0])
        assert packet["type"] == "ships_update"
        assert [s["ship_id"] for s in packet["ships"]] == ["SHIP1", "SHIP2"]
        assert packet["ships"][0]["gps_data"] == [
            {
                "gps": "top_gps",
                "latitude": 16.8,
                "longitude": 96.2,
                "altitude": None,
                "speed": None,
                "satellites": None,
                "satellite_prns": [],
            }
        ]

    @pytest.mark.asyncio
    async def test_log_record_matches_broadcast(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        conn = make_conn()
        state.admit(conn)
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock)

        cycle.run_once()
        await asyncio.sleep(0.01)

        sink.write.assert_called_once()
        record = sink.write.call_args.args[0]
        assert isinstance(record, ShipsLogRecord)
        packet = json.loads(conn.sent[0])
        logged = json.loads(record.to_json())
        assert logged == {"ships": packet["ships"], "timestamp": packet["timestamp"]}

    @pytest.mark.asyncio
    async def test_one_log_record_per_cycle(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        state.admit(make_conn())
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock)
        for _ in range(3):
            clock.now += 1
            cycle.run_once()
        assert sink.write.call_count == 3

    @pytest.mark.asyncio
    async def test_log_only_on_new_data(
        self, make_conn: Any, sink: MagicMock, clock: _Clock
    ) -> None:
        state = FleetState()
        state.admit(make_conn())
        state.accept(_report("SHIP1"), now=clock.now)
        cycle = _cycle(state, sink, clock, log_only_on_new_data=True)

        assert cycle.run_once() is CycleOutcome.SENT
        clock.now += 1
        assert cycle.run_once() is CycleOutcome.SENT
        assert sink.write.call_count == 1

        state.accept(_report("SHIP1", lat=17.0), now=clock.now)
        cycle.run_once()
        assert sink.write.call_count == 2

    @pytest.mark.asyncio
    async def test_sink_error_does_not_break_cycle(
        self, make_conn: Any, sink: MagicMock, clock: _Clock, caplog: pytest.LogCaptureFixture
    ) -> None:
        state = FleetState()
        conn = make_conn()
        state.admit(conn)
        state.accept(_report("SHIP1"), now=clock.now)
        sink.write.side_effect = SinkError("disk full")
        cycle = _cycle(state, sink, clock)

        assert cycle.run_once() is CycleOutcome.SENT
        await asyncio.sleep(0.01)
        assert len(conn.sent) == 1
        assert "Error writing to ship log" in caplog.text

    @pytest.mark.asyncio
    async def test_no_sink(self, make_conn: Any, clock: _Clock) -> None:
        state = FleetState()
        state.admit(make_conn())
        state.accept(_report("SHIP1"), now=clock.now)
        assert _cycle(state, None, clock).run_once() is CycleOutcome.SENT


class TestScheduling:
    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError, match="interval"):
            BroadcastCycle(FleetState(), Broadcaster(), interval=0)

    @pytest.mark.asyncio
    async def test_runs_periodically_until_stopped(self, make_conn: Any) -> None:
        state = FleetState()
        conn = make_conn()
        state.admit(conn)
        cycle = BroadcastCycle(state, Broadcaster(), interval=0.02, stale_after=60.0)
        state.accept(_report("SHIP1"), now=time.monotonic())

        cycle.start()
        assert cycle.is_running
        await asyncio.sleep(0.15)
        await cycle.stop()
        assert not cycle.is_running

        sent = len(conn.sent)
        assert sent >= 2
        await asyncio.sleep(0.06)
        assert len(conn.sent) == sent

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        cycle = BroadcastCycle(FleetState(), Broadcaster())
        await cycle.stop()

    @pytest.mark.asyncio
    async def test_exception_in_run_is_logged_and_schedule_continues(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        cycle = BroadcastCycle(FleetState(), Broadcaster(), interval=0.01)
        calls = 0

        def flaky(now: float | None = None) -> CycleOutcome:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return CycleOutcome.IDLE

        cycle.run_once = flaky  # type: ignore[method-assign]
        cycle.start()
        await asyncio.sleep(0.08)
        await cycle.stop()
        assert calls >= 2
        assert "Broadcast cycle failed" in caplog.text


class TestFormatLocalTime:
    def test_format(self) -> None:
        text = format_local_time(datetime(2026, 10, 18, 9, 5, 7, tzinfo=UTC))
        assert re.fullmatch(r"\d{2}/\d{2}/2026, \d{2}:\d{2}:\d{2} \S.*", text)

    def test_default_is_now(self) -> None:
        assert re.fullmatch(r"\d{2}/\d{2}/\d{4}, \d{2}:\d{2}:\d{2} .+", format_local_time())
