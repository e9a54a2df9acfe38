"""Tests for the status provider."""

import asyncio
from typing import Any, Optional

import pytest

from resin_link.adapters.nanodlp import NanoDlpClient
from resin_link.config import BackendConfig, PollingConfig
from resin_link.core.errors import RequestTimeoutError, TransportError
from resin_link.core.models import KinematicStatus, PrinterStatus, RawStatus
from resin_link.status.normalizers import NanoDlpNormalizer
from resin_link.status.provider import StatusProvider, StatusSnapshot


class FakeClient:
    """Scripted backend: each status call pops the next outcome."""

    def __init__(self) -> None:
        self.statuses: list[Any] = []
        self.default: Any = RawStatus(state_code=0)
        self.kinematics: list[Any] = []
        self.status_calls = 0
        self.kinematic_calls = 0
        self.delays: dict[int, float] = {}
        self.closed = False

    async def get_status(self) -> RawStatus:
        self.status_calls += 1
        call = self.status_calls
        delay = self.delays.get(call)
        if delay:
            await asyncio.sleep(delay)
        outcome = self.statuses.pop(0) if self.statuses else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def get_kinematic_status(self) -> KinematicStatus:
        self.kinematic_calls += 1
        outcome = (
            self.kinematics.pop(0) if self.kinematics else KinematicStatus(homed=True)
        )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def create_normalizer(self) -> NanoDlpNormalizer:
        return NanoDlpNormalizer()

    async def aclose(self) -> None:
        self.closed = True


def _polling(**overrides: Any) -> PollingConfig:
    values = dict(
        interval_seconds=0.05,
        continuous_interval_seconds=0.01,
        backoff_max_seconds=0.2,
        startup_backoff_max_seconds=0.05,
        startup_max_attempts=3,
        backoff_jitter_ratio=0.0,
        kinematic_max_attempts=3,
        kinematic_retry_seconds=0.001,
    )
    values.update(overrides)
    return PollingConfig(**values)


@pytest.mark.asyncio
async def test_refresh_publishes_snapshot_and_sets_connected():
    client = FakeClient()
    client.statuses = [RawStatus(state_code=5, printing=True, layer_id=3, layers_count=9)]
    provider = StatusProvider(client, _polling())
    received: list[StatusSnapshot] = []
    provider.add_listener(received.append)

    assert await provider.refresh(force=True) is True

    snapshot = provider.snapshot()
    assert snapshot.connected and snapshot.has_ever_connected
    assert snapshot.status.status is PrinterStatus.PRINTING
    assert snapshot.status.layer == 3
    assert received == [snapshot]


@pytest.mark.asyncio
async def test_refresh_without_force_respects_interval():
    client = FakeClient()
    provider = StatusProvider(client, _polling(interval_seconds=60.0))

    await provider.refresh()
    await provider.refresh()
    await provider.refresh(force=True)

    assert client.status_calls == 2


@pytest.mark.asyncio
async def test_failure_keeps_last_good_status_and_has_ever_connected():
    client = FakeClient()
    client.statuses = [RawStatus(state_code=3, paused=True), TransportError("refused")]
    provider = StatusProvider(client, _polling())
    received: list[StatusSnapshot] = []
    provider.add_listener(received.append)

    assert await provider.refresh(force=True) is True
    assert await provider.refresh(force=True) is False

    snapshot = provider.snapshot()
    assert snapshot.connected is False
    assert snapshot.has_ever_connected is True
    assert snapshot.status.status is PrinterStatus.PAUSED
    assert "refused" in snapshot.error
    assert [item.connected for item in received] == [True, False]


@pytest.mark.asyncio
async def test_stale_response_is_discarded():
    client = FakeClient()
    client.statuses = [
        RawStatus(state_code=5, printing=True),
        RawStatus(state_code=0),
    ]
    client.delays = {1: 0.05}
    provider = StatusProvider(client, _polling())
    sequences: list[int] = []
    provider.add_listener(lambda snapshot: sequences.append(snapshot.sequence))

    slow = asyncio.create_task(provider.refresh(force=True))
    await asyncio.sleep(0)
    fast = asyncio.create_task(provider.refresh(force=True))
    await asyncio.gather(slow, fast)

    assert sequences == [2]
    assert provider.snapshot().sequence == 2
    assert provider.status.status is PrinterStatus.PRINTING


@pytest.mark.asyncio
async def test_async_listener_and_failing_listener():
    client = FakeClient()
    provider = StatusProvider(client, _polling())
    seen: list[int] = []

    async def async_listener(snapshot: StatusSnapshot) -> None:
        seen.append(snapshot.sequence)

    def broken_listener(snapshot: StatusSnapshot) -> None:
        raise RuntimeError("listener bug")

    provider.add_listener(broken_listener)
    provider.add_listener(async_listener)
    provider.add_listener(async_listener)

    await provider.refresh(force=True)
    await asyncio.sleep(0)
    provider.remove_listener(async_listener)
    await provider.refresh(force=True)
    await asyncio.sleep(0)

    assert seen == [1]


@pytest.mark.asyncio
async def test_listener_can_refresh_from_inside_a_notification():
    client = FakeClient()
    provider = StatusProvider(client, _polling())
    sequences: list[int] = []

    async def refreshing_listener(snapshot: StatusSnapshot) -> None:
        sequences.append(snapshot.sequence)
        if snapshot.sequence == 1:
            await provider.refresh(force=True)

    provider.add_listener(refreshing_listener)

    await asyncio.wait_for(provider.refresh(force=True), timeout=1.0)
    for _ in range(50):
        if len(sequences) == 2:
            break
        await asyncio.sleep(0.01)

    assert sequences == [1, 2]
    assert client.status_calls == 2


@pytest.mark.asyncio
async def test_hung_listener_does_not_block_refresh():
    client = FakeClient()
    provider = StatusProvider(client, _polling())
    never = asyncio.Event()
    received: list[int] = []

    async def hung_listener(snapshot: StatusSnapshot) -> None:
        await never.wait()

    provider.add_listener(hung_listener)
    provider.add_listener(lambda snapshot: received.append(snapshot.sequence))

    assert await asyncio.wait_for(provider.refresh(force=True), timeout=1.0)
    assert await asyncio.wait_for(provider.refresh(force=True), timeout=1.0)
    assert received == [1, 2]

    await provider.aclose()
    assert client.closed is True


@pytest.mark.asyncio
async def test_establish_connection_is_bounded():
    client = FakeClient()
    client.default = RequestTimeoutError("slow")
    provider = StatusProvider(client, _polling())

    assert await provider.establish_connection(max_attempts=3) is False
    assert client.status_calls == 3
    assert provider.has_ever_connected is False


@pytest.mark.asyncio
async def test_establish_connection_succeeds_after_retry():
    client = FakeClient()
    client.statuses = [TransportError("refused"), RawStatus(state_code=0)]
    provider = StatusProvider(client, _polling())

    assert await provider.establish_connection() is True
    assert client.status_calls == 2
    assert provider.has_ever_connected is True


@pytest.mark.asyncio
async def test_poll_loop_recovers_after_outage():
    client = FakeClient()
    client.statuses = [TransportError("down"), TransportError("down")]
    provider = StatusProvider(client, _polling())
    connected = asyncio.Event()

    def on_snapshot(snapshot: StatusSnapshot) -> None:
        if snapshot.connected:
            connected.set()

    provider.add_listener(on_snapshot)
    await provider.start()
    try:
        await asyncio.wait_for(connected.wait(), timeout=2.0)
    finally:
        await provider.stop()

    assert provider.is_running is False
    assert client.status_calls >= 3


@pytest.mark.asyncio
async def test_continuous_polling_tracks_kinematics():
    client = FakeClient()
    provider = StatusProvider(client, _polling(interval_seconds=5.0))
    await provider.start()
    try:
        await asyncio.sleep(0.02)
        baseline_calls = client.status_calls

        provider.set_continuous_kinematic_polling(True)
        assert provider.current_interval == pytest.approx(0.01)
        await asyncio.sleep(0.1)
        assert client.status_calls > baseline_calls + 2
        assert client.kinematic_calls > 0
        assert provider.kinematic == KinematicStatus(homed=True)

        provider.set_continuous_kinematic_polling(False)
        assert provider.current_interval == pytest.approx(5.0)
    finally:
        await provider.stop()


@pytest.mark.asyncio
async def test_refresh_kinematic_status_retries_until_valid():
    client = FakeClient()
    client.kinematics = [
        TransportError("down"),
        KinematicStatus(homed=True, position=4.0),
    ]
    provider = StatusProvider(client, _polling())

    reading = await provider.refresh_kinematic_status(3)

    assert reading == KinematicStatus(homed=True, position=4.0)
    assert client.kinematic_calls == 2
    assert provider.kinematic == reading


@pytest.mark.asyncio
async def test_refresh_kinematic_status_waits_for_change():
    client = FakeClient()
    same = KinematicStatus(homed=True, position=1.0)
    moved = KinematicStatus(homed=True, position=2.0)
    client.kinematics = [same, same, moved]
    provider = StatusProvider(client, _polling())

    await provider.refresh_kinematic_status(1)
    reading = await provider.refresh_kinematic_status(3, require_change=True)

    assert reading == moved
    assert client.kinematic_calls == 3


@pytest.mark.asyncio
async def test_refresh_kinematic_status_gives_up():
    client = FakeClient()
    client.kinematics = [TransportError("down")] * 2
    provider = StatusProvider(client, _polling())

    reading: Optional[KinematicStatus] = await provider.refresh_kinematic_status(2)

    assert reading is None
    assert client.kinematic_calls == 2


@pytest.mark.asyncio
async def test_clear_homed_status():
    client = FakeClient()
    provider = StatusProvider(client, _polling())
    await provider.refresh_kinematic_status(1)
    assert provider.kinematic.homed is True

    provider.clear_homed_status()

    assert provider.kinematic.homed is False


@pytest.mark.asyncio
async def test_aclose_closes_client():
    client = FakeClient()
    provider = StatusProvider(client, _polling())
    await provider.start()

    await provider.aclose()

    assert client.closed is True


class DerivingClient(FakeClient):
    """Client that reads the Z axis out of the status it already returned."""

    def kinematic_from_status(self, raw: RawStatus) -> KinematicStatus:
        return KinematicStatus(homed=bool(raw.homed), position=2.5)


@pytest.mark.asyncio
async def test_continuous_polling_derives_kinematics_from_status():
    client = DerivingClient()
    client.default = RawStatus(state_code=0, homed=True)
    provider = StatusProvider(client, _polling(interval_seconds=5.0))
    provider.set_continuous_kinematic_polling(True)
    await provider.start()
    try:
        for _ in range(100):
            if provider.snapshot().sequence >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await provider.stop()

    assert provider.snapshot().sequence >= 3
    assert client.kinematic_calls == 0
    assert provider.kinematic == KinematicStatus(homed=True, position=2.5)


@pytest.mark.asyncio
async def test_continuous_nanodlp_poll_fetches_status_once_per_cycle(nanodlp_server):
    nanodlp_server.status.update({"CurrentHeight": 150000, "Homed": True})
    client = NanoDlpClient(BackendConfig(url=nanodlp_server.make_url("/")))
    provider = StatusProvider(client, _polling(interval_seconds=5.0))
    provider.set_continuous_kinematic_polling(True)
    await provider.start()
    try:
        for _ in range(200):
            if provider.snapshot().sequence >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await provider.aclose()

    applied = provider.snapshot().sequence
    assert applied >= 3
    # A cancelled in-flight poll may have reached the server without applying.
    assert nanodlp_server.calls["status"] <= applied + 1
    assert provider.kinematic == KinematicStatus(homed=True, position=150.0)
