"""
Tests for the WebSocket transport binding against a mock socket
"""

import asyncio
import base64
import gc
import json

import pytest

from qa_client.transport import (
    MESSAGE_ACKNOWLEDGED,
    MESSAGE_RECEIVED,
    MESSAGE_SENT,
    SENDING_MESSAGE,
    SENDING_MESSAGE_IRRECOVERABLE_ERROR,
    HealthStatus,
    WebSocketNode,
)

TOPIC = "/t"


class MockWebSocket:
    """Socket whose inbound frames are pushed by the test."""

    def __init__(self):
        self.sent_messages = []
        self.fail_sends = False
        self.echo_before_return = False
        self.closed = False
        self._inbox = asyncio.Queue()

    async def send(self, message):
        if self.fail_sends:
            raise ConnectionError("socket gone")
        frame = json.loads(message)
        self.sent_messages.append(frame)
        if self.echo_before_return and frame["op"] == "publish":
            # the relay answers before the write call returns
            self.push(frame)
            await asyncio.sleep(0.01)

    def push(self, frame):
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def hang_up(self):
        self._inbox.put_nowait(None)

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message


async def wait_for(predicate, timeout=2.0):
    """Poll until predicate() is true."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


async def start_node():
    mock_ws = MockWebSocket()

    async def factory(url):
        return mock_ws

    node = WebSocketNode("ws://relay.test", websocket_factory=factory)
    await node.start()
    channel = await node.create_channel(
        "R1", "u1", node.create_encoder(TOPIC), node.create_decoder(TOPIC)
    )
    return node, channel, mock_ws


def publish_frame(origin, handle, payload, channel="R1"):
    return {
        "op": "publish",
        "topic": TOPIC,
        "channel": channel,
        "origin": origin,
        "handle": handle,
        "payload": base64.b64encode(payload).decode("ascii"),
    }


@pytest.mark.asyncio
async def test_start_and_subscribe():
    """Test that start() is healthy and channels subscribe on the relay."""
    node, channel, mock_ws = await start_node()

    assert node.health is HealthStatus.SUFFICIENTLY_HEALTHY
    assert mock_ws.sent_messages == [
        {"op": "subscribe", "topic": TOPIC, "channel": "R1"}
    ]
    await node.stop()
    assert mock_ws.closed
    assert node.health is HealthStatus.UNHEALTHY


@pytest.mark.asyncio
async def test_connect_failure():
    """Test that a factory error becomes ConnectionError."""

    async def factory(url):
        raise OSError("refused")

    node = WebSocketNode("ws://relay.test", websocket_factory=factory)
    with pytest.raises(ConnectionError):
        await node.start()


@pytest.mark.asyncio
async def test_own_echo_acknowledges_send():
    """Test sending -> sent on write and acknowledged on echo."""
    node, channel, mock_ws = await start_node()
    events = []
    for name in (SENDING_MESSAGE, MESSAGE_SENT, MESSAGE_ACKNOWLEDGED):
        channel.add_listener(name, lambda d, name=name: events.append((name, d)))
    received = []
    channel.add_listener(MESSAGE_RECEIVED, received.append)

    handle = await channel.send(b"data")
    await wait_for(lambda: len(mock_ws.sent_messages) == 2)

    published = mock_ws.sent_messages[1]
    assert published == publish_frame(node.node_id, handle, b"data")

    mock_ws.push(published)
    await wait_for(lambda: len(events) == 3)

    assert events == [
        (SENDING_MESSAGE, handle),
        (MESSAGE_SENT, handle),
        (MESSAGE_ACKNOWLEDGED, handle),
    ]
    assert received == []
    await node.stop()


@pytest.mark.asyncio
async def test_foreign_frame_is_received():
    """Test that another node's publish becomes message-received."""
    node, channel, mock_ws = await start_node()
    received = []
    channel.add_listener(MESSAGE_RECEIVED, received.append)

    mock_ws.push(publish_frame("other-node", "h9", b"\x01\x02"))
    await wait_for(lambda: received)

    assert received == [{"payload": b"\x01\x02"}]
    await node.stop()


@pytest.mark.asyncio
async def test_unroutable_frames_are_ignored():
    """Test malformed JSON, unknown rooms and bad payloads."""
    node, channel, mock_ws = await start_node()
    received = []
    channel.add_listener(MESSAGE_RECEIVED, received.append)

    mock_ws.push("not json")
    mock_ws.push({"op": "hello"})
    mock_ws.push(publish_frame("other-node", "h1", b"x", channel="R2"))
    bad = publish_frame("other-node", "h2", b"x")
    bad["payload"] = "***"
    mock_ws.push(bad)
    mock_ws.push(publish_frame("other-node", "h3", b"ok"))
    await wait_for(lambda: received)

    assert received == [{"payload": b"ok"}]
    await node.stop()


@pytest.mark.asyncio
async def test_failed_write_is_irrecoverable():
    """Test that a socket error fails the send's handle."""
    node, channel, mock_ws = await start_node()
    errors = []
    channel.add_listener(SENDING_MESSAGE_IRRECOVERABLE_ERROR, errors.append)
    mock_ws.fail_sends = True

    handle = await channel.send(b"data")
    await wait_for(lambda: errors)

    assert errors[0]["handle"] == handle
    assert "socket gone" in errors[0]["error"]
    await node.stop()


@pytest.mark.asyncio
async def test_relay_hang_up_reports_unhealthy():
    """Test that the end of the inbound stream marks the node unhealthy."""
    node, channel, mock_ws = await start_node()
    statuses = []
    node.events.add_listener("health", statuses.append)

    mock_ws.hang_up()
    await wait_for(lambda: statuses)

    assert statuses == [HealthStatus.UNHEALTHY]
    await node.stop()


@pytest.mark.asyncio
async def test_echo_before_write_returns_still_reports_sent():
    """Test that an early echo is acknowledged only after message-sent."""
    node, channel, mock_ws = await start_node()
    mock_ws.echo_before_return = True
    events = []
    for name in (SENDING_MESSAGE, MESSAGE_SENT, MESSAGE_ACKNOWLEDGED):
        channel.add_listener(name, lambda d, name=name: events.append((name, d)))

    handle = await channel.send(b"data")
    await wait_for(lambda: len(events) == 3)

    assert events == [
        (SENDING_MESSAGE, handle),
        (MESSAGE_SENT, handle),
        (MESSAGE_ACKNOWLEDGED, handle),
    ]
    await node.stop()


@pytest.mark.asyncio
async def test_released_channel_is_forgotten():
    """Test that the node does not keep channels nobody references."""
    node, channel, mock_ws = await start_node()
    other = await node.create_channel(
        "R2", "u1", node.create_encoder(TOPIC), node.create_decoder(TOPIC)
    )
    assert len(node.channels()) == 2

    del other
    gc.collect()

    assert node.channels() == [channel]
    await node.stop()
