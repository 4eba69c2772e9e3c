"""
Tests for the WebSocket relay and transport binding

Runs a real RelayServer on a free local port and connects sessions to it
with the websocket transport.
"""

import asyncio
import json
import logging

import pytest
import pytest_asyncio
import websockets

from qa_client import ClientConfig, InitializationError, MessageCallbacks, SessionManager
from qa_relay import RelayServer

TOPIC = "/audience-qa/1/data/proto"


async def wait_for(predicate, timeout=5.0):
    """Poll until predicate() is true."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


@pytest_asyncio.fixture
async def relay():
    server = RelayServer("127.0.0.1", 0)
    await server.start()
    yield server
    await server.stop()


def websocket_config(relay):
    return ClientConfig(
        transport="websocket", relay_url=f"ws://127.0.0.1:{relay.port}"
    )


class TestRelayServer:
    """Frame handling of the relay itself."""

    @pytest.mark.asyncio
    async def test_binds_free_port(self, relay):
        """Test that port 0 is replaced by the bound port."""
        assert relay.port != 0
        assert relay.bound_port == relay.port

    @pytest.mark.asyncio
    async def test_start_logs_bound_address(self, caplog):
        """Test that the startup line names the port actually bound."""
        caplog.set_level(logging.INFO, logger="qa_relay.server")
        server = RelayServer("127.0.0.1", 0)
        await server.start()
        try:
            assert f"Relay server started on ws://127.0.0.1:{server.port}" in caplog.text
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_publish_is_broadcast_to_subscribers(self, relay):
        """Test that a publish reaches every subscriber, publisher included."""
        url = f"ws://127.0.0.1:{relay.port}"
        subscribe = json.dumps({"op": "subscribe", "topic": TOPIC, "channel": "R1"})
        async with websockets.connect(url) as first, websockets.connect(url) as second:
            await first.send(subscribe)
            await second.send(subscribe)
            await wait_for(lambda: relay.subscriber_count(TOPIC, "R1") == 2)

            frame = {"op": "publish", "topic": TOPIC, "channel": "R1", "payload": "AA=="}
            await first.send(json.dumps(frame))

            echoed = json.loads(await asyncio.wait_for(first.recv(), 5))
            relayed = json.loads(await asyncio.wait_for(second.recv(), 5))

        assert echoed == frame
        assert relayed == frame

    @pytest.mark.asyncio
    async def test_disconnect_drops_subscriptions(self, relay):
        """Test that a closed client is unsubscribed."""
        url = f"ws://127.0.0.1:{relay.port}"
        async with websockets.connect(url) as client:
            await client.send(
                json.dumps({"op": "subscribe", "topic": TOPIC, "channel": "R1"})
            )
            await wait_for(lambda: relay.subscriber_count(TOPIC, "R1") == 1)

        await wait_for(lambda: relay.subscriber_count(TOPIC, "R1") == 0)


class TestWebSocketTransport:
    """Sessions talking through the relay."""

    @pytest.mark.asyncio
    async def test_message_and_acknowledgement(self, relay):
        """Test delivery to a peer and acknowledgement of the sender."""
        config = websocket_config(relay)
        alice = SessionManager(config)
        bob = SessionManager(config)
        await alice.join("R1", "alice")
        await bob.join("R1", "bob")
        await wait_for(lambda: relay.subscriber_count(TOPIC, "R1") == 2)

        assert alice.is_connected

        received = []
        bob.on_message("R1", received.append)
        acknowledged = asyncio.Event()

        handle = await alice.send_message(
            "R1",
            "PING",
            {"n": 1},
            callbacks=MessageCallbacks(on_acknowledged=acknowledged.set),
        )
        await asyncio.wait_for(acknowledged.wait(), 5)
        await wait_for(lambda: received)

        assert received[0].sender_id == "alice"
        assert received[0].payload == '{"n":1}'
        assert handle not in alice.get_room("R1").tracker

        await alice.stop()
        await bob.stop()

    @pytest.mark.asyncio
    async def test_unreachable_relay(self):
        """Test that a failed connection surfaces as InitializationError."""
        config = ClientConfig(transport="websocket", relay_url="ws://127.0.0.1:1")
        session = SessionManager(config)

        with pytest.raises(InitializationError):
            await session.join("R1", "u1")
