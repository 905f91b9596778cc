from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Iterable, List, Mapping, Optional

from .frames import FRAME_REGISTRY, DecodedFrame
from .protocol import (
    CRC_SIZE,
    LENGTH_FIELD_SIZE,
    MIN_FRAME_LENGTH,
    bytes_to_uint16,
    crc16_ccitt,
)

logger = logging.getLogger(__name__)

FrameHandler = Callable[[DecodedFrame], None]


class ParseStatus(Enum):
    PARSED = "parsed"
    NEED_MORE_DATA = "need_more_data"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class ParseOutcome:
    status: ParseStatus
    length: int = 0
    frame: Optional[DecodedFrame] = None


NEED_MORE_DATA = ParseOutcome(ParseStatus.NEED_MORE_DATA)
INVALID = ParseOutcome(ParseStatus.INVALID)


class UnhandledPolicy(Enum):
    IGNORE = "ignore"
    BUFFER = "buffer"
    ERROR = "error"


class UnhandledFrameError(RuntimeError):
    def __init__(self, frames: List[DecodedFrame]) -> None:
        ids = ", ".join(str(f.id) for f in frames)
        super().__init__(f"no handler registered for frame id(s): {ids}")
        self.frames = frames


class Decoder:
    """Streaming TRAX2 frame decoder.

    Bytes may arrive in arbitrary chunks; an incomplete trailing frame is kept
    and completed by the next ``decode`` call. Anything that does not parse as a
    frame (bad CRC under the default policy, unknown id, wrong length) is
    skipped one byte at a time until the stream lines up again.

    Decoded frames are returned in stream order and, when a handler is
    registered for their frame id, passed to it before ``decode`` returns.
    """

    __slots__ = (
        "_pending",
        "_handlers",
        "_processing",
        "skip_on_checksum_error",
        "unhandled_policy",
        "unhandled_frames",
        "frame_count",
        "crc_error_frames",
        "resync_bytes",
    )

    def __init__(
        self,
        handlers: Optional[Mapping[int, FrameHandler]] = None,
        *,
        skip_on_checksum_error: bool = True,
        unhandled_policy: UnhandledPolicy = UnhandledPolicy.IGNORE,
    ) -> None:
        handlers = dict(handlers or {})
        unknown = [frame_id for frame_id in handlers if frame_id not in FRAME_REGISTRY]
        if unknown:
            raise ValueError(f"no decodable frame for handler id(s): {unknown}")

        self._pending = bytearray()
        self._handlers = handlers
        self._processing = False
        self.skip_on_checksum_error = bool(skip_on_checksum_error)
        self.unhandled_policy = unhandled_policy
        self.unhandled_frames: Deque[DecodedFrame] = deque()
        self.frame_count = 0
        self.crc_error_frames = 0
        self.resync_bytes = 0

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    def reset(self) -> None:
        self._pending.clear()
        self.unhandled_frames.clear()
        self.frame_count = 0
        self.crc_error_frames = 0
        self.resync_bytes = 0

    def decode(self, chunk: bytes) -> List[DecodedFrame]:
        if self._processing:
            raise RuntimeError("decode() called re-entrantly on the same Decoder")
        self._processing = True

        buffer = bytes(self._pending) + bytes(chunk)
        self._pending.clear()
        cursor = 0
        decoded: List[DecodedFrame] = []
        unhandled: List[DecodedFrame] = []

        try:
            while True:
                outcome = self._parse_at(buffer, cursor)
                if outcome.status is ParseStatus.NEED_MORE_DATA:
                    break
                if outcome.status is ParseStatus.INVALID:
                    cursor += 1
                    self.resync_bytes += 1
                    continue

                cursor += outcome.length
                frame = outcome.frame
                decoded.append(frame)
                if not self._dispatch(frame):
                    unhandled.append(frame)
        finally:
            self._pending.extend(buffer[cursor:])
            self._processing = False

        if unhandled and self.unhandled_policy is UnhandledPolicy.ERROR:
            raise UnhandledFrameError(unhandled)
        return decoded

    def decode_all(self, chunks: Iterable[bytes]) -> List[DecodedFrame]:
        out: List[DecodedFrame] = []
        for chunk in chunks:
            out.extend(self.decode(chunk))
        return out

    def _dispatch(self, frame: DecodedFrame) -> bool:
        handler = self._handlers.get(frame.id)
        if handler is not None:
            handler(frame)
            return True
        if self.unhandled_policy is UnhandledPolicy.BUFFER:
            self.unhandled_frames.append(frame)
            return True
        return self.unhandled_policy is UnhandledPolicy.IGNORE

    def _parse_at(self, buffer: bytes, cursor: int) -> ParseOutcome:
        remaining = len(buffer) - cursor
        if remaining < LENGTH_FIELD_SIZE:
            return NEED_MORE_DATA

        length = bytes_to_uint16(buffer[cursor : cursor + LENGTH_FIELD_SIZE])
        if length > remaining:
            return NEED_MORE_DATA

        if length != 0:
            self.frame_count += 1
        if length < MIN_FRAME_LENGTH:
            return INVALID

        candidate = buffer[cursor : cursor + length]
        frame_id = candidate[2]
        crc16_expected = bytes_to_uint16(candidate[-CRC_SIZE:])
        crc16_actual = crc16_ccitt(candidate[:-CRC_SIZE])

        crc_error = crc16_actual != crc16_expected
        if crc_error:
            self.crc_error_frames += 1
            logger.debug(
                "CRC error (length=%d, frame_id=%d, expected=0x%04X, actual=0x%04X)",
                length,
                frame_id,
                crc16_expected,
                crc16_actual,
            )
            if self.skip_on_checksum_error:
                return INVALID

        spec = FRAME_REGISTRY.get(frame_id)
        if spec is None:
            logger.debug("Unhandled frame id %d at offset %d", frame_id, cursor)
            return INVALID
        if not spec.accepts(length):
            return INVALID

        frame = spec.parse(candidate, crc16_expected, crc_error)
        if frame is None:
            return INVALID
        return ParseOutcome(ParseStatus.PARSED, length=length, frame=frame)
