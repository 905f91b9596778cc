from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import serial

from .decoder import Decoder
from .frames import DecodedFrame
from .protocol import FrameId

logger = logging.getLogger(__name__)

DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_BAUD = 38400
DEFAULT_REQUEST_TIMEOUT_S = 5.0
READ_SIZE = 256

FrameListener = Callable[[DecodedFrame], None]
RawListener = Callable[[bytes], None]


@dataclass(slots=True)
class CommsStats:
    tx_frames_ok: int = 0
    tx_errors: int = 0
    rx_bytes: int = 0
    rx_frames_ok: int = 0
    rx_crc_errors: int = 0
    rx_resync_bytes: int = 0


class _Waiter:
    __slots__ = ("event", "frame")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.frame: Optional[DecodedFrame] = None


class Trax2Client:
    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baud: int = DEFAULT_BAUD,
        skip_on_checksum_error: bool = True,
        request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
    ) -> None:
        if request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be > 0")

        self.port = port
        self.baud = int(baud)
        self.request_timeout_s = float(request_timeout_s)

        self._decoder = Decoder(skip_on_checksum_error=skip_on_checksum_error)
        self._decoder_lock = threading.Lock()

        self._latest: Dict[int, DecodedFrame] = {}
        self._waiters: Dict[int, List[_Waiter]] = {}
        self._frames_lock = threading.Lock()

        self._frame_listeners: List[FrameListener] = []
        self._raw_listeners: List[RawListener] = []

        self._stats = CommsStats()
        self._stats_lock = threading.Lock()

        self._serial: Optional[serial.Serial] = None
        self._serial_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._rx_thread: Optional[threading.Thread] = None

        self._running = False
        self._log_enabled = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return

        ser = serial.Serial(
            port=self.port,
            baudrate=self.baud,
            timeout=0.05,
            write_timeout=0.5,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
        )
        ser.reset_input_buffer()
        ser.reset_output_buffer()

        with self._serial_lock:
            self._serial = ser

        self._stop_event.clear()
        self._rx_thread = threading.Thread(target=self._rx_loop, name="trax2-uart-rx", daemon=True)
        self._rx_thread.start()
        self._running = True
        logger.info("Opened %s @ %d baud", self.port, self.baud)

    def stop(self) -> None:
        if not self._running:
            return

        self._stop_event.set()
        if self._rx_thread is not None:
            self._rx_thread.join(timeout=1.5)

        with self._serial_lock:
            if self._serial is not None:
                try:
                    self._serial.close()
                finally:
                    self._serial = None

        self._running = False
        logger.info("Closed %s", self.port)

    def add_frame_listener(self, listener: FrameListener) -> None:
        self._frame_listeners.append(listener)

    def add_raw_listener(self, listener: RawListener) -> None:
        self._raw_listeners.append(listener)

    def set_log_enabled(self, enabled: bool) -> None:
        self._log_enabled = bool(enabled)

    def get_latest(self, frame_id: int) -> Optional[DecodedFrame]:
        with self._frames_lock:
            return self._latest.get(int(frame_id))

    def get_stats(self) -> CommsStats:
        with self._stats_lock:
            return CommsStats(
                tx_frames_ok=self._stats.tx_frames_ok,
                tx_errors=self._stats.tx_errors,
                rx_bytes=self._stats.rx_bytes,
                rx_frames_ok=self._stats.rx_frames_ok,
                rx_crc_errors=self._stats.rx_crc_errors,
                rx_resync_bytes=self._stats.rx_resync_bytes,
            )

    def send(self, frame: bytes) -> None:
        try:
            self._serial_write(frame)
        except Exception:
            with self._stats_lock:
                self._stats.tx_errors += 1
            raise
        with self._stats_lock:
            self._stats.tx_frames_ok += 1
        if self._log_enabled:
            print(f"[TX] {bytes(frame).hex(' ')}")

    def request(self, frame: bytes, expect: int, timeout_s: Optional[float] = None) -> DecodedFrame:
        """Send ``frame`` and wait for the next decoded frame with id ``expect``.

        Responses are matched by frame id only; callers must not keep two
        requests of the same kind outstanding.
        """
        waiter = _Waiter()
        key = int(expect)
        with self._frames_lock:
            self._waiters.setdefault(key, []).append(waiter)

        try:
            self.send(frame)
            timeout = self.request_timeout_s if timeout_s is None else float(timeout_s)
            if not waiter.event.wait(timeout):
                raise TimeoutError(f"no {FrameId(key).name} response within {timeout:.1f}s")
            return waiter.frame
        finally:
            with self._frames_lock:
                pending = self._waiters.get(key, [])
                if waiter in pending:
                    pending.remove(waiter)

    def handle_rx_chunk(self, chunk: bytes) -> List[DecodedFrame]:
        if not chunk:
            return []

        for listener in self._raw_listeners:
            try:
                listener(bytes(chunk))
            except Exception:
                logger.exception("Raw listener failed")

        with self._decoder_lock:
            frames = self._decoder.decode(chunk)
            crc_errors = self._decoder.crc_error_frames
            resync = self._decoder.resync_bytes

        with self._stats_lock:
            self._stats.rx_bytes += len(chunk)
            self._stats.rx_frames_ok += len(frames)
            self._stats.rx_crc_errors = crc_errors
            self._stats.rx_resync_bytes = resync

        for frame in frames:
            self._deliver(frame)
        return frames

    def _deliver(self, frame: DecodedFrame) -> None:
        if self._log_enabled:
            print(f"[RX] {frame.frame_id.name} {frame.as_dict()}")

        with self._frames_lock:
            self._latest[frame.id] = frame
            waiters = self._waiters.pop(frame.id, [])
        for waiter in waiters:
            waiter.frame = frame
            waiter.event.set()

        for listener in self._frame_listeners:
            try:
                listener(frame)
            except Exception:
                logger.exception("Frame listener failed for frame id %d", frame.id)

    def _serial_write(self, payload: bytes) -> None:
        with self._serial_lock:
            if self._serial is None or not self._serial.is_open:
                raise RuntimeError("serial not open")
            self._serial.write(bytes(payload))

    def _rx_loop(self) -> None:
        while not self._stop_event.is_set():
            with self._serial_lock:
                ser = self._serial

            if ser is None or not ser.is_open:
                self._stop_event.wait(0.02)
                continue

            try:
                chunk = ser.read(READ_SIZE)
            except serial.SerialException as exc:
                logger.warning("Serial read failed: %s", exc)
                self._stop_event.wait(0.02)
                continue

            if not chunk:
                continue

            self.handle_rx_chunk(chunk)
