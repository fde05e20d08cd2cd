"""
Stream Supervisor

Keeps one WebSocket subscription alive and feeds its decoded events to a
single consumer channel for as long as the consumer keeps accepting them.

State Machine (per subscription):
    CONNECTING -> open socket to base_url + stream_suffix
        success -> STREAMING
        failure -> log, wait `backoff` seconds, retry (no retry limit)
        StreamSetupError from the factory -> raised to the caller, no retry

    STREAMING -> read frames one at a time
        TEXT    -> decode; undecodable frames are logged and dropped,
                   decoded events go to the sink in wire order
        PING    -> reply with a PONG carrying the same payload;
                   if the pong cannot be sent -> reconnect
        CLOSE / ERROR / receive failure -> reconnect after `backoff`
        sink closed -> CLOSED

    CLOSED -> terminal, stream() returns normally

A closed consumer channel ends a subscription normally; a setup error ends it
with StreamSetupError. State is reported per subscription through the
`on_state_change(subscription, state)` callback. Cancelling the task that
runs stream() stops it at the next await (connect, receive, back-off sleep,
or a send into a full channel) and closes the open socket.

Usage:
    channel = EventChannel(maxsize=100)
    subscription = Subscription(
        base_url="wss://stream.binance.com/ws/",
        stream_suffix="btcusdt@trade",
        decoder=json_decoder(TradeEvent),
    )
    supervisor = StreamSupervisor(AiohttpConnector(session))
    task = asyncio.create_task(supervisor.stream(subscription, channel))

    async for event in channel:
        print(event.price)
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Protocol, Type, TypeVar
from urllib.parse import urlsplit

import aiohttp
from aiohttp import WSMsgType
from pydantic import BaseModel

from core.exceptions import ChannelClosed, StreamSetupError
from core.logging import get_logger, log_websocket_event

E = TypeVar("E")
M = TypeVar("M", bound=BaseModel)

RECONNECT_DELAY = 5.0

_CLOSE_TYPES = (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED)

# Decoders signal a bad frame by raising one of these
# (json.JSONDecodeError and pydantic.ValidationError are ValueErrors)
DECODE_ERRORS = (ValueError, TypeError, KeyError)


class StreamState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


# ============================================
# Collaborator Interfaces
# ============================================

class Connection(Protocol):
    """The subset of aiohttp.ClientWebSocketResponse the supervisor uses"""

    closed: bool

    async def receive(self) -> aiohttp.WSMessage: ...

    async def pong(self, message: bytes = b"") -> None: ...

    async def close(self) -> bool: ...


ConnectionFactory = Callable[[str], Awaitable[Connection]]


class EventSink(Protocol[E]):
    async def send(self, event: E) -> None:
        """Deliver one event; raise ChannelClosed if the consumer is gone"""
        ...


class AiohttpConnector:
    """
    Default connection factory backed by an aiohttp ClientSession.

    Automatic pings are turned off so that PING frames reach the supervisor,
    which answers them itself.
    """

    def __init__(self, session: aiohttp.ClientSession):
        self.session = session

    async def __call__(self, url: str) -> aiohttp.ClientWebSocketResponse:
        return await self.session.ws_connect(url, autoping=False)


# ============================================
# Subscription Descriptor
# ============================================

@dataclass(frozen=True)
class Subscription(Generic[E]):
    """
    One logical stream and the decoder for its payload shape.

    Attributes:
        base_url: WebSocket base URL (e.g., "wss://stream.binance.com/ws/")
        stream_suffix: Stream name (e.g., "btcusdt@kline_1m")
        decoder: Turns one text frame into an event; raises ValueError on mismatch
    """

    base_url: str
    stream_suffix: str
    decoder: Callable[[str], E]

    @property
    def url(self) -> str:
        """
        Full stream URL.

        Raises:
            StreamSetupError: If the base URL is not a ws:// or wss:// URL with a host
        """
        parts = urlsplit(self.base_url)
        if parts.scheme not in ("ws", "wss") or not parts.netloc:
            raise StreamSetupError(f"Invalid WebSocket base URL: {self.base_url!r}")
        return f"{self.base_url.rstrip('/')}/{self.stream_suffix.lstrip('/')}"


def json_decoder(model: Type[M]) -> Callable[[str], M]:
    """
    Build a decoder that validates a JSON text frame against `model`.

    Raises pydantic.ValidationError (a ValueError) when the frame does not
    match, including frames that are not JSON at all.
    """

    def decode(text: str) -> M:
        return model.model_validate_json(text)

    decode.__name__ = f"decode_{model.__name__}"
    return decode


# ============================================
# Consumer Channel
# ============================================

class EventChannel(Generic[E]):
    """
    Single-consumer event channel with an explicit close.

    Bounded when maxsize > 0: send() then suspends while the channel is full,
    which is how a slow consumer pushes back on the stream. Closing the
    channel makes every pending and future send() raise ChannelClosed.

    Example:
        >>> channel = EventChannel(maxsize=10)
        >>> async for event in channel:
        ...     if done(event):
        ...         channel.close()
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "asyncio.Queue[E]" = asyncio.Queue(maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Signal that the consumer will not read any more events"""
        self._closed.set()

    async def send(self, event: E) -> None:
        """
        Enqueue one event, waiting for room if the channel is full.

        Raises:
            ChannelClosed: If the channel is (or becomes) closed first
        """
        if self._closed.is_set():
            raise ChannelClosed("Event channel is closed")

        if not self._queue.full():
            self._queue.put_nowait(event)
            return

        put = asyncio.ensure_future(self._queue.put(event))
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (put, closed):
                if not task.done():
                    task.cancel()

        if put not in done:
            raise ChannelClosed("Event channel closed while waiting for room")

    async def receive(self) -> E:
        """
        Take the next event.

        Raises:
            ChannelClosed: If the channel is closed and nothing is buffered
        """
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self._closed.is_set():
            raise ChannelClosed("Event channel is closed")

        get = asyncio.ensure_future(self._queue.get())
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait({get, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (get, closed):
                if not task.done():
                    task.cancel()

        if get in done:
            return get.result()
        raise ChannelClosed("Event channel is closed")

    def __aiter__(self) -> "EventChannel[E]":
        return self

    async def __anext__(self) -> E:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration


# ============================================
# Supervisor
# ============================================

class StreamSupervisor:
    """
    Runs the connect / dispatch / reconnect loop for subscriptions.

    Every collaborator is injectable so the loop can be driven without a
    network or real delays.

    Attributes:
        backoff: Fixed delay before every reconnect attempt (seconds)
        logger: Where connection events and dropped frames are reported
    """

    def __init__(
        self,
        connect: ConnectionFactory,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        backoff: float = RECONNECT_DELAY,
        logger: Optional[logging.Logger] = None,
        on_state_change: Optional[Callable[[Subscription, StreamState], None]] = None,
    ):
        self._connect = connect
        self._sleep = sleep
        self.backoff = backoff
        self.logger = logger or get_logger(__name__)
        self._on_state_change = on_state_change

    def _enter(self, subscription: Subscription, state: StreamState) -> None:
        if self._on_state_change is not None:
            self._on_state_change(subscription, state)

    async def stream(self, subscription: Subscription[E], sink: EventSink[E]) -> None:
        """
        Deliver decoded events from `subscription` into `sink` until the sink closes.

        Occupies the caller for the subscription's whole lifetime.

        Raises:
            StreamSetupError: If the subscription URL is malformed (before any connect)
                or the connection factory cannot be used at all
        """
        url = subscription.url
        name = subscription.stream_suffix

        while True:
            self._enter(subscription, StreamState.CONNECTING)
            try:
                ws = await self._connect(url)
            except StreamSetupError:
                raise
            except Exception as e:
                log_websocket_event("error", name, f"Connection failed: {e}", sink=self.logger)
                await self._backoff(name)
                continue

            self._enter(subscription, StreamState.STREAMING)
            log_websocket_event("connected", name, sink=self.logger)

            try:
                consumer_gone = await self._dispatch(ws, subscription, sink)
            finally:
                await self._close_socket(ws, name)

            if consumer_gone:
                self._enter(subscription, StreamState.CLOSED)
                log_websocket_event("closed", name, "Receiver dropped, stopping subscription", sink=self.logger)
                return

            await self._backoff(name)

    async def _backoff(self, name: str) -> None:
        log_websocket_event("reconnecting", name, f"Reconnecting in {self.backoff:g}s", sink=self.logger)
        await self._sleep(self.backoff)

    async def _dispatch(self, ws: Connection, subscription: Subscription[E], sink: EventSink[E]) -> bool:
        """
        Read frames until the connection must be abandoned.

        Returns:
            True if the consumer closed its channel, False if the socket
            should be replaced
        """
        name = subscription.stream_suffix

        while True:
            try:
                msg = await ws.receive()
            except Exception as e:
                log_websocket_event("error", name, f"Receive failed: {e}", sink=self.logger)
                return False

            if msg.type == WSMsgType.TEXT:
                try:
                    event = subscription.decoder(msg.data)
                except DECODE_ERRORS as e:
                    self.logger.error(f"Failed to decode {name} frame: {e}")
                    continue

                try:
                    await sink.send(event)
                except ChannelClosed:
                    return True

            elif msg.type == WSMsgType.PING:
                try:
                    await ws.pong(msg.data)
                except Exception as e:
                    log_websocket_event("error", name, f"Failed to send pong: {e}", sink=self.logger)
                    return False

            elif msg.type in _CLOSE_TYPES:
                log_websocket_event("disconnected", name, "Connection closed by server", sink=self.logger)
                return False

            elif msg.type == WSMsgType.ERROR:
                log_websocket_event("error", name, f"WebSocket error: {msg.data}", sink=self.logger)
                return False

            else:
                self.logger.debug(f"Ignoring {msg.type} frame on {name}")

    async def _close_socket(self, ws: Connection, name: str) -> None:
        if ws.closed:
            return
        try:
            await ws.close()
        except Exception as e:
            self.logger.debug(f"Error while closing {name} socket: {e}")
