from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, Callable, Optional, Tuple

import websockets
from websockets.exceptions import WebSocketException

logger = logging.getLogger(__name__)

OUTBOX_SIZE = 1000

InboundCallback = Callable[[bytes], None]


def encode_message(channel: str, data: Any) -> str:
    return json.dumps({"channel": channel, "data": data}, ensure_ascii=True)


def decode_message(raw: Any) -> Tuple[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid_json: {exc}") from None
    if not isinstance(message, dict):
        raise ValueError("message must be an object")
    channel = message.get("channel")
    if not isinstance(channel, str):
        raise ValueError("message 'channel' must be a string")
    return channel, message.get("data")


def payload_bytes(data: Any) -> bytes:
    if not isinstance(data, list):
        raise ValueError("'data' must be a list of byte values")
    try:
        return bytes(data)
    except (TypeError, ValueError):
        raise ValueError("'data' must contain integers 0..255") from None


class TelemetryRelay:
    """Forwards raw device bytes to a websocket relay and feeds back the
    bytes published on the inbound channel."""

    def __init__(
        self,
        ws_url: str,
        api_key: Optional[str] = None,
        channel: str = "trax2",
        inbound_channel: str = "trax-in",
        events_channel: str = "serialport-events",
        on_inbound: Optional[InboundCallback] = None,
        reconnect_s: float = 2.0,
    ) -> None:
        self.ws_url = ws_url
        self.api_key = api_key
        self.channel = channel
        self.inbound_channel = inbound_channel
        self.events_channel = events_channel
        self.reconnect_s = float(reconnect_s)
        self._on_inbound = on_inbound

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._task: Optional[asyncio.Task] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._connected = threading.Event()

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.new_event_loop()
        self._outbox = asyncio.Queue(maxsize=OUTBOX_SIZE)
        self._task = self._loop.create_task(self._run())
        self._thread = threading.Thread(target=self._thread_main, daemon=True, name="trax2-relay")
        self._thread.start()

    def stop(self) -> None:
        if self._loop is None or self._thread is None:
            return
        if self._task is not None:
            self._loop.call_soon_threadsafe(self._task.cancel)
        self._thread.join(timeout=2.0)
        self._thread = None
        self._loop = None
        self._connected.clear()

    def forward(self, data: bytes) -> None:
        self.publish(self.channel, list(data))

    def send_event(self, event: dict) -> None:
        self.publish(self.events_channel, event)

    def publish(self, channel: str, data: Any) -> None:
        if self._loop is None:
            return
        message = encode_message(channel, data)
        self._loop.call_soon_threadsafe(self._enqueue, message)

    def handle_inbound(self, raw: Any) -> None:
        try:
            channel, data = decode_message(raw)
            if channel != self.inbound_channel:
                return
            payload = payload_bytes(data)
        except ValueError as exc:
            logger.warning("Skipping relay message: %s", exc)
            return

        logger.debug("%s: %s", channel, payload.hex(" "))
        if self._on_inbound is not None:
            self._on_inbound(payload)

    def _enqueue(self, message: str) -> None:
        if self._outbox.full():
            self._outbox.get_nowait()
        self._outbox.put_nowait(message)

    def _thread_main(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._task)
        except asyncio.CancelledError:
            pass
        finally:
            self._loop.close()

    async def _run(self) -> None:
        while True:
            try:
                async with websockets.connect(self.ws_url) as websocket:
                    logger.info("Relay connected to %s", self.ws_url)
                    self._connected.set()
                    await self._subscribe(websocket)
                    await self._pump(websocket)
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("Relay connection to %s lost: %s", self.ws_url, exc)
            finally:
                self._connected.clear()
            await asyncio.sleep(self.reconnect_s)

    async def _subscribe(self, websocket) -> None:
        if self.api_key:
            await websocket.send(json.dumps({"action": "auth", "apiKey": self.api_key}, ensure_ascii=True))
        await websocket.send(json.dumps({"action": "subscribe", "channel": self.inbound_channel}, ensure_ascii=True))

    async def _pump(self, websocket) -> None:
        sender = asyncio.ensure_future(self._send_loop(websocket))
        try:
            async for raw in websocket:
                self.handle_inbound(raw)
        finally:
            sender.cancel()

    async def _send_loop(self, websocket) -> None:
        while True:
            message = await self._outbox.get()
            await websocket.send(message)
