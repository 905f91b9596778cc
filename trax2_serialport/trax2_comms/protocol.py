from __future__ import annotations

import math
import struct
from enum import IntEnum
from typing import Iterable

LENGTH_FIELD_SIZE = 2
CRC_SIZE = 2
# length(2) + frame id(1) + crc(2)
FRAME_OVERHEAD = LENGTH_FIELD_SIZE + 1 + CRC_SIZE
MIN_FRAME_LENGTH = FRAME_OVERHEAD


class FrameId(IntEnum):
    GET_MOD_INFO = 1
    GET_MOD_INFO_RESP = 2
    SET_DATA_COMPONENTS = 3
    GET_DATA = 4
    GET_DATA_RESP = 5
    SET_CONFIG = 6
    GET_CONFIG = 7
    GET_CONFIG_RESP = 8
    SAVE = 9
    START_CAL = 10
    STOP_CAL = 11
    SET_FIR_FILTERS = 12
    GET_FIR_FILTERS = 13
    GET_FIR_FILTERS_RESP = 14
    POWER_DOWN = 15
    SAVE_DONE = 16
    USER_CAL_SAMPLE_COUNT = 17
    USER_CAL_SCORE = 18
    SET_CONFIG_DONE = 19
    SET_FIR_FILTERS_DONE = 20
    START_CONTINUOUS_MODE = 21
    STOP_CONTINUOUS_MODE = 22
    POWER_UP_DONE = 23
    SET_ACQ_PARAMS = 24
    GET_ACQ_PARAMS = 25
    SET_ACQ_PARAMS_DONE = 26
    GET_ACQ_PARAMS_RESP = 27
    POWER_DOWN_DONE = 28
    FACTORY_MAG_COEFF = 29
    FACTORY_MAG_COEFF_DONE = 30
    TAKE_USER_CAL_SAMPLE = 31
    FACTORY_ACCEL_COEFF = 36
    FACTORY_ACCEL_COEFF_DONE = 37
    COPY_COEFF_SET = 43
    COPY_COEFF_SET_DONE = 44
    SERIAL_NUMBER = 52
    SERIAL_NUMBER_RESP = 53
    SET_FUNCTIONAL_MODE = 79
    GET_FUNCTIONAL_MODE = 80
    GET_FUNCTIONAL_MODE_RESP = 81
    SET_DISTORT_MODE = 107
    GET_DISTORT_MODE = 108
    GET_DISTORT_MODE_RESP = 109
    SET_RESET_REF = 110
    SET_MAG_TRUTH_METHOD = 119
    GET_MAG_TRUTH_METHOD = 120
    GET_MAG_TRUTH_METHOD_RESP = 121
    SET_MERGE_RATE = 128
    GET_MERGE_RATE = 129
    GET_MERGE_RATE_RESP = 130


class ConfigId(IntEnum):
    DECLINATION = 1
    TRUE_NORTH = 2
    BIG_ENDIAN = 6
    MOUNTING_REF = 10
    USER_CAL_NUM_POINTS = 12
    USER_CAL_AUTO_SAMPLING = 13
    BAUD_RATE = 14
    MIL_OUT = 15
    HPR_DURING_CAL = 16
    MAG_COEFF_SET = 18
    ACCEL_COEFF_SET = 19


class ComponentId(IntEnum):
    HEADING = 5
    TEMPERATURE = 7
    DISTORTION = 8
    CAL_STATUS = 9
    ACCEL_X = 21
    ACCEL_Y = 22
    ACCEL_Z = 23
    PITCH = 24
    ROLL = 25
    MAG_X = 27
    MAG_Y = 28
    MAG_Z = 29
    GYRO_X = 74
    GYRO_Y = 75
    GYRO_Z = 76
    QUATERNION = 77
    HEADING_STATUS = 79


def crc16_ccitt(data: Iterable[int]) -> int:
    """CRC-CCITT (x^16 + x^12 + x^5 + 1), initial register 0, byte at a time."""
    crc = 0x0000
    for byte in data:
        crc = ((crc >> 8) | (crc << 8)) & 0xFFFF
        crc ^= byte & 0xFF
        crc ^= (crc & 0xFF) >> 4
        crc = (crc ^ (crc << 12)) & 0xFFFF
        crc ^= (crc & 0xFF) << 5
    return crc


def _order(little_endian: bool) -> str:
    return "<" if little_endian else ">"


def uint16_to_bytes(value: int, little_endian: bool = False) -> bytes:
    return struct.pack(_order(little_endian) + "H", int(value) & 0xFFFF)


def bytes_to_uint16(data: bytes, little_endian: bool = False) -> int:
    return struct.unpack(_order(little_endian) + "H", bytes(data[:2]))[0]


def bytes_to_uint32(data: bytes, little_endian: bool = False) -> int:
    return struct.unpack(_order(little_endian) + "I", bytes(data[:4]))[0]


def float_to_bytes(value: float, little_endian: bool = False) -> bytes:
    fmt = _order(little_endian) + "f"
    try:
        return struct.pack(fmt, float(value))
    except OverflowError:
        # float32 saturates like an IEEE-754 narrowing conversion
        return struct.pack(fmt, math.copysign(math.inf, float(value)))


def bytes_to_float(data: bytes, little_endian: bool = False) -> float:
    return struct.unpack(_order(little_endian) + "f", bytes(data[:4]))[0]


def make_frame(frame_id: int, payload: bytes = b"") -> bytes:
    body = uint16_to_bytes(len(payload) + FRAME_OVERHEAD) + bytes([int(frame_id) & 0xFF]) + bytes(payload)
    return body + uint16_to_bytes(crc16_ccitt(body))
