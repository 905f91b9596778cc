import math

from trax2_serialport.trax2_comms.protocol import (
    FRAME_OVERHEAD,
    FrameId,
    bytes_to_float,
    bytes_to_uint16,
    bytes_to_uint32,
    crc16_ccitt,
    float_to_bytes,
    make_frame,
    uint16_to_bytes,
)


def test_crc16_known_vectors() -> None:
    assert crc16_ccitt(b"") == 0x0000
    assert crc16_ccitt(bytes([0x00, 0x05, 0x01])) == 0xEFD4
    assert crc16_ccitt(bytes([0x00, 0x05, 0x04])) == 0xBF71
    assert crc16_ccitt(bytes([0x00, 0x06, 0x4F, 0x01])) == 0xBF73


def test_crc16_appended_to_frame_leaves_zero_remainder() -> None:
    body = bytes([0x00, 0x09, 0x35, 0x00, 0x0F, 0xBE, 0x43])
    frame = body + uint16_to_bytes(crc16_ccitt(body))

    assert crc16_ccitt(frame) == 0


def test_uint16_helpers() -> None:
    assert uint16_to_bytes(0x1234) == b"\x12\x34"
    assert uint16_to_bytes(0x1234, little_endian=True) == b"\x34\x12"
    assert uint16_to_bytes(0x12345) == b"\x23\x45"
    assert bytes_to_uint16(b"\xA2\x3E") == 0xA23E
    assert bytes_to_uint16(b"\xA2\x3E", little_endian=True) == 0x3EA2


def test_uint32_helper() -> None:
    assert bytes_to_uint32(bytes([0x00, 0x0F, 0xBE, 0x43])) == 1031747
    assert bytes_to_uint32(bytes([0x43, 0xBE, 0x0F, 0x00]), little_endian=True) == 1031747


def test_float_helpers() -> None:
    assert float_to_bytes(10.0) == bytes([0x41, 0x20, 0x00, 0x00])
    assert float_to_bytes(10.0, little_endian=True) == bytes([0x00, 0x00, 0x20, 0x41])
    assert bytes_to_float(bytes([0x41, 0x48, 0x00, 0x00])) == 12.5
    assert math.isclose(bytes_to_float(bytes([0x43, 0x8E, 0x96, 0x70])), 285.1753, abs_tol=1e-4)


def test_float_overflow_saturates() -> None:
    assert bytes_to_float(float_to_bytes(1e39)) == math.inf
    assert bytes_to_float(float_to_bytes(-1e39)) == -math.inf
    assert math.isnan(bytes_to_float(float_to_bytes(math.nan)))


def test_make_frame() -> None:
    frame = make_frame(FrameId.GET_CONFIG, b"\x01")

    assert frame == bytes([0x00, 0x06, 0x07, 0x01, 0x3B, 0x16])
    assert len(make_frame(FrameId.GET_DATA)) == FRAME_OVERHEAD
