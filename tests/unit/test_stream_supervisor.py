"""
Unit Tests for the Stream Supervisor

These tests drive StreamSupervisor with scripted fake connections and a
recording sleep, so no network or real delays are involved. They verify:
- Undecodable frames are dropped without ending the stream
- Closing the consumer channel ends the subscription cleanly
- Server closes, errors and connect failures reconnect after the fixed back-off
- PING frames are answered and a failed pong forces a reconnect
- Cancellation propagates and closes the open socket
- Malformed base URLs fail before any connection attempt

Run with:
    pytest tests/unit/test_stream_supervisor.py -v
"""

import asyncio
import json
import logging

import aiohttp
import pytest
from aiohttp import WSMsgType

from core.exceptions import ChannelClosed, StreamSetupError
from core.schemas import TradeEvent
from exchanges.binance.stream import (
    EventChannel,
    StreamState,
    StreamSupervisor,
    Subscription,
    json_decoder,
)

BASE_URL = "wss://stream.binance.com/ws/"
STREAM = "btcusdt@trade"


# ============================================
# Fakes
# ============================================

class MockWSMessage:
    """Mock aiohttp WebSocket message"""

    def __init__(self, msg_type, data=None):
        self.type = msg_type
        self.data = data


def text(payload) -> MockWSMessage:
    return MockWSMessage(WSMsgType.TEXT, payload if isinstance(payload, str) else json.dumps(payload))


def trade_frame(trade_id: int) -> MockWSMessage:
    return text({
        "e": "trade",
        "E": 1672515782136,
        "s": "BTCUSDT",
        "t": trade_id,
        "p": "0.00100000",
        "q": "100.00000000",
        "T": 1672515782136,
        "m": True,
        "M": True,
    })


CLOSE = MockWSMessage(WSMsgType.CLOSE, 1000)


class FakeConnection:
    """
    Scripted socket. Each entry is a frame to return or an exception to raise.
    Once the script runs out, the server closes the connection.
    """

    def __init__(self, *script, pong_error=None, block_when_empty=False):
        self.script = list(script)
        self.pong_error = pong_error
        self.block_when_empty = block_when_empty
        self.pongs = []
        self.closed = False
        self.close_calls = 0
        self.receiving = asyncio.Event()

    async def receive(self):
        self.receiving.set()
        if not self.script:
            if self.block_when_empty:
                await asyncio.Event().wait()
            return MockWSMessage(WSMsgType.CLOSED)
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def pong(self, message=b""):
        if self.pong_error is not None:
            raise self.pong_error
        self.pongs.append(message)

    async def close(self):
        self.close_calls += 1
        self.closed = True
        return True


class FakeConnector:
    """Connection factory handing out connections (or raising errors) in order"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.urls = []

    async def __call__(self, url):
        self.urls.append(url)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    """Records back-off delays; cancels the supervisor on the Nth sleep"""

    def __init__(self, stop_after: int):
        self.delays = []
        self.stop_after = stop_after

    async def __call__(self, delay):
        self.delays.append(delay)
        if len(self.delays) >= self.stop_after:
            raise asyncio.CancelledError()


class CollectingSink:
    """Sink that accepts `capacity` events, then reports the consumer gone"""

    def __init__(self, capacity: int = 1000):
        self.events = []
        self.capacity = capacity

    async def send(self, event):
        if len(self.events) >= self.capacity:
            raise ChannelClosed("consumer gone")
        self.events.append(event)


def trade_subscription(base_url: str = BASE_URL) -> Subscription:
    return Subscription(base_url, STREAM, json_decoder(TradeEvent))


def make_supervisor(connector, sleep, states=None) -> StreamSupervisor:
    return StreamSupervisor(
        connector,
        sleep=sleep,
        on_state_change=(lambda subscription, state: states.append(state)) if states is not None else None,
    )


# ============================================
# Tests for Subscription
# ============================================

class TestSubscription:
    """Tests for subscription URL handling"""

    def test_url_joins_base_and_suffix(self):
        assert trade_subscription().url == "wss://stream.binance.com/ws/btcusdt@trade"

    def test_base_without_trailing_slash(self):
        assert trade_subscription("wss://testnet.binance.vision/ws").url == "wss://testnet.binance.vision/ws/btcusdt@trade"

    @pytest.mark.parametrize("base_url", ["https://stream.binance.com/ws/", "wss://", "not a url"])
    def test_malformed_base_url_rejected(self, base_url):
        with pytest.raises(StreamSetupError):
            trade_subscription(base_url).url

    @pytest.mark.asyncio
    async def test_stream_fails_before_connecting(self):
        """A bad base URL is a setup error, not something to retry"""
        connector = FakeConnector()
        sleep = RecordingSleep(stop_after=1)

        with pytest.raises(StreamSetupError):
            await make_supervisor(connector, sleep).stream(trade_subscription("http://example.com/"), CollectingSink())

        assert connector.urls == []
        assert sleep.delays == []


# ============================================
# Tests for Frame Dispatch
# ============================================

class TestDispatch:
    """Tests for the STREAMING state"""

    @pytest.mark.asyncio
    async def test_undecodable_frames_dropped(self, caplog):
        """Bad frames are logged and skipped; later frames still arrive in order"""
        conn = FakeConnection(
            trade_frame(1),
            text("not json at all"),
            text({"e": "trade", "E": 1}),
            trade_frame(2),
        )
        sink = CollectingSink()
        sleep = RecordingSleep(stop_after=1)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(asyncio.CancelledError):
                await make_supervisor(FakeConnector(conn), sleep).stream(trade_subscription(), sink)

        assert [event.trade_id for event in sink.events] == [1, 2]
        assert "Failed to decode" in caplog.text

    @pytest.mark.asyncio
    async def test_events_are_typed(self):
        conn = FakeConnection(trade_frame(7))
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(FakeConnector(conn), RecordingSleep(stop_after=1)).stream(trade_subscription(), sink)

        assert isinstance(sink.events[0], TradeEvent)
        assert sink.events[0].symbol == "BTCUSDT"

    @pytest.mark.asyncio
    async def test_ping_answered_with_same_payload(self):
        conn = FakeConnection(MockWSMessage(WSMsgType.PING, b"heartbeat"), trade_frame(1))
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(FakeConnector(conn), RecordingSleep(stop_after=1)).stream(trade_subscription(), sink)

        assert conn.pongs == [b"heartbeat"]
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_pong_failure_reconnects(self):
        """Frames after a failed pong are never read from the abandoned socket"""
        broken = FakeConnection(
            MockWSMessage(WSMsgType.PING, b"hb"),
            trade_frame(1),
            pong_error=ConnectionResetError("gone"),
        )
        fresh = FakeConnection(trade_frame(2), CLOSE)
        connector = FakeConnector(broken, fresh)
        sleep = RecordingSleep(stop_after=2)
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(connector, sleep).stream(trade_subscription(), sink)

        assert [event.trade_id for event in sink.events] == [2]
        assert broken.closed
        assert sleep.delays == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_other_frame_types_ignored(self):
        conn = FakeConnection(MockWSMessage(WSMsgType.PONG, b""), MockWSMessage(WSMsgType.BINARY, b"\x00"), trade_frame(1))
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(FakeConnector(conn), RecordingSleep(stop_after=1)).stream(trade_subscription(), sink)

        assert len(sink.events) == 1


# ============================================
# Tests for Reconnection
# ============================================

class TestReconnect:
    """Tests for the fixed back-off reconnect loop"""

    @pytest.mark.asyncio
    async def test_server_close_reconnects_after_backoff(self):
        first = FakeConnection(trade_frame(1), CLOSE)
        second = FakeConnection(trade_frame(2), CLOSE)
        connector = FakeConnector(first, second)
        sleep = RecordingSleep(stop_after=2)
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(connector, sleep).stream(trade_subscription(), sink)

        assert [event.trade_id for event in sink.events] == [1, 2]
        assert sleep.delays == [5.0, 5.0]
        assert connector.urls == ["wss://stream.binance.com/ws/btcusdt@trade"] * 2
        assert first.close_calls == 1

    @pytest.mark.asyncio
    async def test_connect_failures_retry_forever(self):
        conn = FakeConnection(trade_frame(1))
        connector = FakeConnector(
            aiohttp.ClientConnectionError("refused"),
            OSError("network unreachable"),
            conn,
        )
        sleep = RecordingSleep(stop_after=3)
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(connector, sleep).stream(trade_subscription(), sink)

        assert len(connector.urls) == 3
        assert sleep.delays == [5.0, 5.0, 5.0]
        assert [event.trade_id for event in sink.events] == [1]

    @pytest.mark.asyncio
    async def test_error_frame_reconnects(self):
        first = FakeConnection(MockWSMessage(WSMsgType.ERROR, ValueError("bad frame")), trade_frame(1))
        second = FakeConnection(trade_frame(2))
        sleep = RecordingSleep(stop_after=2)
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(FakeConnector(first, second), sleep).stream(trade_subscription(), sink)

        assert [event.trade_id for event in sink.events] == [2]

    @pytest.mark.asyncio
    async def test_receive_exception_reconnects(self):
        first = FakeConnection(trade_frame(1), aiohttp.ClientPayloadError("reset"))
        second = FakeConnection(trade_frame(2))
        sleep = RecordingSleep(stop_after=2)
        sink = CollectingSink()

        with pytest.raises(asyncio.CancelledError):
            await make_supervisor(FakeConnector(first, second), sleep).stream(trade_subscription(), sink)

        assert [event.trade_id for event in sink.events] == [1, 2]
        assert first.closed

    @pytest.mark.asyncio
    async def test_custom_backoff(self):
        sleep = RecordingSleep(stop_after=1)
        supervisor = StreamSupervisor(FakeConnector(OSError("down")), sleep=sleep, backoff=0.25)

        with pytest.raises(asyncio.CancelledError):
            await supervisor.stream(trade_subscription(), CollectingSink())

        assert sleep.delays == [0.25]


# ============================================
# Tests for Termination
# ============================================

class TestTermination:
    """Tests for the CLOSED state and cancellation"""

    @pytest.mark.asyncio
    async def test_closed_sink_ends_subscription(self):
        conn = FakeConnection(trade_frame(1), trade_frame(2), trade_frame(3))
        states = []
        sleep = RecordingSleep(stop_after=1)
        sink = CollectingSink(capacity=1)
        supervisor = make_supervisor(FakeConnector(conn), sleep, states)

        result = await supervisor.stream(trade_subscription(), sink)

        assert result is None
        assert [event.trade_id for event in sink.events] == [1]
        assert states == [StreamState.CONNECTING, StreamState.STREAMING, StreamState.CLOSED]
        assert sleep.delays == []
        assert conn.closed

    @pytest.mark.asyncio
    async def test_consumer_closing_event_channel(self):
        """Consumer reads one event, closes its channel; the supervisor returns normally"""
        conn = FakeConnection(*[trade_frame(i) for i in range(1, 10)], block_when_empty=True)
        channel = EventChannel(maxsize=1)
        states = []
        supervisor = make_supervisor(FakeConnector(conn), RecordingSleep(stop_after=1), states)

        task = asyncio.create_task(supervisor.stream(trade_subscription(), channel))
        first = await channel.receive()
        channel.close()

        await asyncio.wait_for(task, timeout=1.0)

        assert first.trade_id == 1
        assert states[-1] == StreamState.CLOSED
        assert conn.closed

    @pytest.mark.asyncio
    async def test_cancellation_closes_socket(self):
        conn = FakeConnection(block_when_empty=True)
        supervisor = make_supervisor(FakeConnector(conn), RecordingSleep(stop_after=1))

        task = asyncio.create_task(supervisor.stream(trade_subscription(), CollectingSink()))
        await asyncio.wait_for(conn.receiving.wait(), timeout=1.0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert conn.closed

    @pytest.mark.asyncio
    async def test_setup_error_from_factory_not_retried(self):
        connector = FakeConnector(StreamSetupError("no session"))
        sleep = RecordingSleep(stop_after=1)

        with pytest.raises(StreamSetupError):
            await make_supervisor(connector, sleep).stream(trade_subscription(), CollectingSink())

        assert len(connector.urls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_concurrent_subscriptions_keep_their_own_state(self):
        """One subscription closing does not change the state reported for another"""
        latest = {}
        long_lived = FakeConnection(block_when_empty=True)
        short_lived = FakeConnection(trade_frame(1), trade_frame(2))
        supervisor = StreamSupervisor(
            FakeConnector(long_lived, short_lived),
            sleep=RecordingSleep(stop_after=1),
            on_state_change=lambda subscription, state: latest.__setitem__(subscription.stream_suffix, state),
        )

        task = asyncio.create_task(supervisor.stream(trade_subscription(), CollectingSink()))
        await asyncio.wait_for(long_lived.receiving.wait(), timeout=1.0)

        other = Subscription(BASE_URL, "ethusdt@trade", json_decoder(TradeEvent))
        await supervisor.stream(other, CollectingSink(capacity=1))

        assert latest == {STREAM: StreamState.STREAMING, "ethusdt@trade": StreamState.CLOSED}

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


# ============================================
# Tests for EventChannel
# ============================================

class TestEventChannel:
    """Tests for the consumer channel"""

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        channel = EventChannel()
        for i in range(3):
            await channel.send(i)

        assert [await channel.receive() for _ in range(3)] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        channel = EventChannel()
        channel.close()

        with pytest.raises(ChannelClosed):
            await channel.send("event")

    @pytest.mark.asyncio
    async def test_blocked_send_released_by_close(self):
        """A send suspended on a full channel fails once the consumer closes"""
        channel = EventChannel(maxsize=1)
        await channel.send(1)

        pending = asyncio.create_task(channel.send(2))
        await asyncio.sleep(0)
        assert not pending.done()

        channel.close()
        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(pending, timeout=1.0)

    @pytest.mark.asyncio
    async def test_blocked_send_resumes_when_space_frees(self):
        channel = EventChannel(maxsize=1)
        await channel.send(1)

        pending = asyncio.create_task(channel.send(2))
        await asyncio.sleep(0)
        assert await channel.receive() == 1

        await asyncio.wait_for(pending, timeout=1.0)
        assert await channel.receive() == 2

    @pytest.mark.asyncio
    async def test_async_iteration_stops_after_close(self):
        channel = EventChannel()
        await channel.send("a")
        await channel.send("b")
        channel.close()

        assert [event async for event in channel] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_receive_released_by_close(self):
        channel = EventChannel()
        waiter = asyncio.create_task(channel.receive())
        await asyncio.sleep(0)

        channel.close()
        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(waiter, timeout=1.0)
