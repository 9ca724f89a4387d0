"""Tests for factory_monitor.control - channels, gateway, factory."""

from __future__ import annotations

import json

import httpx
import pytest

from factory_monitor.control import (
    CallbackControlChannel,
    ControlChannel,
    ControlGateway,
    RestControlChannel,
    create_channel,
)
from factory_monitor.errors import DeliveryError
from factory_monitor.models import MachineCommand

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


class _StubChannel(ControlChannel):
    """Channel with a scripted outcome."""

    def __init__(self, name: str, *, result: bool = True, error: Exception | None = None) -> None:
        self.name = name
        self.result = result
        self.error = error
        self.sent: list[tuple[str, MachineCommand]] = []
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def send(self, device_id: str, command: MachineCommand) -> bool:
        self.sent.append((device_id, command))
        if self.error is not None:
            raise self.error
        return self.result

    async def close(self) -> None:
        self.closed = True


def _rest(handler) -> RestControlChannel:
    return RestControlChannel(base_url="https://api.test/", transport=httpx.MockTransport(handler))


# -----------------------------------------------------------------------
# Gateway
# -----------------------------------------------------------------------


class TestControlGateway:
    @pytest.mark.asyncio
    async def test_primary_success_skips_fallback(self) -> None:
        primary, fallback = _StubChannel("p"), _StubChannel("f")
        gateway = ControlGateway(primary, fallback)
        assert await gateway.send("d1", "stop") is True
        assert primary.sent == [("d1", MachineCommand.STOP)]
        assert fallback.sent == []

    @pytest.mark.asyncio
    async def test_fallback_after_exception(self) -> None:
        primary = _StubChannel("p", error=ConnectionError("offline"))
        fallback = _StubChannel("f")
        gateway = ControlGateway(primary, fallback)
        assert await gateway.send("d1", MachineCommand.RUN) is True
        assert fallback.sent == [("d1", MachineCommand.RUN)]
        assert gateway.last_failures == ["p: offline"]

    @pytest.mark.asyncio
    async def test_fallback_after_false(self) -> None:
        gateway = ControlGateway(_StubChannel("p", result=False), _StubChannel("f"))
        assert await gateway.send("d1", "IDLE") is True
        assert gateway.last_failures == ["p: not confirmed"]

    @pytest.mark.asyncio
    async def test_both_fail(self) -> None:
        gateway = ControlGateway(
            _StubChannel("p", error=RuntimeError("boom")),
            _StubChannel("f", result=False),
        )
        assert await gateway.send("d1", "RUN") is False
        assert len(gateway.last_failures) == 2

    @pytest.mark.asyncio
    async def test_send_or_raise(self) -> None:
        gateway = ControlGateway(_StubChannel("p", result=False))
        with pytest.raises(DeliveryError) as exc_info:
            await gateway.send_or_raise("d1", "STOP")
        assert exc_info.value.command == "STOP"
        assert exc_info.value.reasons == ["p: not confirmed"]

    @pytest.mark.asyncio
    async def test_validation(self) -> None:
        gateway = ControlGateway(_StubChannel("p"))
        with pytest.raises(ValueError, match="Invalid machine command"):
            await gateway.send("d1", "REVERSE")
        with pytest.raises(ValueError, match="Device ID"):
            await gateway.send("", "RUN")

    @pytest.mark.asyncio
    async def test_connect_and_close(self) -> None:
        primary, fallback = _StubChannel("p"), _StubChannel("f")
        gateway = ControlGateway(primary, fallback)
        await gateway.connect()
        await gateway.close()
        assert primary.connected and fallback.connected
        assert primary.closed and fallback.closed


# -----------------------------------------------------------------------
# Channels
# -----------------------------------------------------------------------


class TestRestControlChannel:
    @pytest.mark.asyncio
    async def test_posts_state_update(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        channel = _rest(handler)
        await channel.connect()
        try:
            assert await channel.send("d1", MachineCommand.STOP) is True
        finally:
            await channel.close()

        (request,) = seen
        assert request.method == "POST"
        assert request.url == "https://api.test/update-state-details"
        body = json.loads(request.content)
        assert body["deviceId"] == "d1"
        assert body["topic"] == "fmc/machineControl"
        assert body["payload"]["status"] == "STOP"
        assert "timestamp" in body["payload"]

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        channel = _rest(lambda request: httpx.Response(503))
        await channel.connect()
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await channel.send("d1", MachineCommand.RUN)
        finally:
            await channel.close()

    @pytest.mark.asyncio
    async def test_gateway_falls_back_from_rest(self) -> None:
        fallback = _StubChannel("stream")
        gateway = ControlGateway(_rest(lambda request: httpx.Response(500)), fallback)
        await gateway.connect()
        try:
            assert await gateway.send("d1", "STOP") is True
        finally:
            await gateway.close()
        assert fallback.sent == [("d1", MachineCommand.STOP)]
        assert gateway.last_failures[0].startswith("rest:")
        assert "500" in gateway.last_failures[0]

    @pytest.mark.asyncio
    async def test_send_before_connect_raises(self) -> None:
        channel = _rest(lambda request: httpx.Response(200))
        with pytest.raises(RuntimeError, match="not connected"):
            await channel.send("d1", MachineCommand.STOP)


class TestCallbackControlChannel:
    @pytest.mark.asyncio
    async def test_sync_callback(self) -> None:
        calls = []

        def publish(device_id, command):
            calls.append((device_id, command))
            return True

        assert await CallbackControlChannel(publish).send("d1", MachineCommand.RUN) is True
        assert calls == [("d1", MachineCommand.RUN)]

    @pytest.mark.asyncio
    async def test_async_callback_false(self) -> None:
        async def publish(device_id, command):
            return False

        channel = CallbackControlChannel(publish, name="mqtt")
        assert channel.name == "mqtt"
        assert await channel.send("d1", MachineCommand.RUN) is False


class TestCreateChannel:
    def test_rest(self) -> None:
        channel = create_channel({"type": "REST", "base_url": "https://api.test"})
        assert isinstance(channel, RestControlChannel)

    def test_callback(self) -> None:
        channel = create_channel({"type": "callback", "callback": lambda d, c: True})
        assert isinstance(channel, CallbackControlChannel)

    def test_missing_type(self) -> None:
        with pytest.raises(ValueError, match="'type'"):
            create_channel({"base_url": "x"})

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown channel type"):
            create_channel({"type": "carrier-pigeon"})
