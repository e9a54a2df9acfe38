"""Tests for the boolean command facade."""

import pytest

from resin_link.adapters.nanodlp import NanoDlpClient
from resin_link.commands import PrinterCommands
from resin_link.config import BackendConfig, PollingConfig
from resin_link.core.models import KinematicStatus
from resin_link.status.provider import StatusProvider


def _client(server, *, timeout: float = 1.0) -> NanoDlpClient:
    return NanoDlpClient(
        BackendConfig(url=server.make_url("/"), request_timeout_seconds=timeout)
    )


@pytest.mark.asyncio
async def test_successful_commands_return_true(nanodlp_server):
    client = _client(nanodlp_server)
    commands = PrinterCommands(client)
    try:
        assert await commands.home() is True
        assert await commands.move_delta(0.5) is True
        assert await commands.move_to_floor() is True
        assert await commands.pause() is True
        assert await commands.resume() is True
        assert await commands.cancel() is True
    finally:
        await client.aclose()

    assert nanodlp_server.requests[:2] == [
        "/z-axis/calibrate",
        "/z-axis/move/up/micron/500",
    ]


@pytest.mark.asyncio
async def test_unsupported_commands_return_false(nanodlp_server):
    client = _client(nanodlp_server)
    commands = PrinterCommands(client)
    try:
        assert await commands.set_z_offset(0.1) is False
        assert await commands.reset_z_offset() is False
        assert await commands.cure(True) is False
        assert await commands.display_test("grid") is False
        assert await commands.tare_force_sensor() is False
    finally:
        await client.aclose()

    assert nanodlp_server.calls["command"] == 0


@pytest.mark.asyncio
async def test_backend_failures_return_false(nanodlp_server, unused_tcp_port_factory):
    nanodlp_server.command_reply = {"result": "error"}
    client = _client(nanodlp_server)
    offline = NanoDlpClient(
        BackendConfig(url=f"http://127.0.0.1:{unused_tcp_port_factory()}")
    )
    try:
        assert await PrinterCommands(client).home() is False
        assert await PrinterCommands(offline).home() is False
        assert await PrinterCommands(client).start_print("local", "missing.zip") is False
        assert await PrinterCommands(client).manual_command("  ") is False
    finally:
        await client.aclose()
        await offline.aclose()


@pytest.mark.asyncio
async def test_emergency_stop_clears_homed_status(nanodlp_server):
    client = _client(nanodlp_server)
    provider = StatusProvider(client, PollingConfig())
    commands = PrinterCommands(client, provider)
    try:
        nanodlp_server.status["Homed"] = True
        assert (await provider.refresh_kinematic_status(1)).homed is True

        assert await commands.emergency_stop() is True
    finally:
        await client.aclose()

    assert provider.kinematic == KinematicStatus(homed=False, position=12.34)
    assert nanodlp_server.requests[-1] == "/printer/stop"
