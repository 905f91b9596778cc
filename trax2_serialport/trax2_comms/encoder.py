from __future__ import annotations

from typing import Iterable

from .protocol import ConfigId, FrameId, float_to_bytes, make_frame

ACQ_RESERVED = b"\x00\x00\x00\x00"


class Encoder:
    """Builds TRAX2 command frames.

    Every method returns ``[length:u16][frame id][payload][crc16:u16]`` ready to
    be written to the port. Numeric arguments are not range checked.
    """

    __slots__ = ("little_endian",)

    def __init__(self, little_endian: bool = False) -> None:
        # Byte order of float payload fields only; framing is always big-endian.
        self.little_endian = bool(little_endian)

    def _float(self, value: float) -> bytes:
        return float_to_bytes(value, little_endian=self.little_endian)

    def get_module_info(self) -> bytes:
        return make_frame(FrameId.GET_MOD_INFO)

    def get_serial_number(self) -> bytes:
        return make_frame(FrameId.SERIAL_NUMBER)

    def set_data_components(self, component_ids: Iterable[int]) -> bytes:
        ids = [int(c) & 0xFF for c in component_ids]
        return make_frame(FrameId.SET_DATA_COMPONENTS, bytes([len(ids) & 0xFF, *ids]))

    def set_acquisition_params(
        self,
        is_poll_mode: bool,
        flush_filters: bool = False,
        sample_delay: float = 0.0,
    ) -> bytes:
        """Poll mode answers each kGetData; continuous mode streams with
        ``sample_delay`` seconds between data sets. ``flush_filters`` clears the
        FIR taps after every measurement (compass mode only)."""
        payload = (
            bytes([1 if is_poll_mode else 0, 1 if flush_filters else 0])
            + ACQ_RESERVED
            + self._float(sample_delay)
        )
        return make_frame(FrameId.SET_ACQ_PARAMS, payload)

    def get_acquisition_params(self) -> bytes:
        return make_frame(FrameId.GET_ACQ_PARAMS)

    def get_data(self) -> bytes:
        return make_frame(FrameId.GET_DATA)

    def start_continuous_mode(self) -> bytes:
        return make_frame(FrameId.START_CONTINUOUS_MODE)

    def stop_continuous_mode(self) -> bytes:
        return make_frame(FrameId.STOP_CONTINUOUS_MODE)

    def set_declination(self, value: float) -> bytes:
        return make_frame(FrameId.SET_CONFIG, bytes([ConfigId.DECLINATION]) + self._float(value))

    def get_declination(self) -> bytes:
        return make_frame(FrameId.GET_CONFIG, bytes([ConfigId.DECLINATION]))

    def set_config_flag(self, config_id: int, enabled: bool) -> bytes:
        return make_frame(FrameId.SET_CONFIG, bytes([int(config_id) & 0xFF, 1 if enabled else 0]))

    def reset_ref(self) -> bytes:
        return make_frame(FrameId.SET_RESET_REF)

    def set_functional_mode(self, is_ahrs_mode: bool) -> bytes:
        return make_frame(FrameId.SET_FUNCTIONAL_MODE, bytes([1 if is_ahrs_mode else 0]))

    def get_functional_mode(self) -> bytes:
        return make_frame(FrameId.GET_FUNCTIONAL_MODE)

    def save(self) -> bytes:
        return make_frame(FrameId.SAVE)

    def power_down(self) -> bytes:
        return make_frame(FrameId.POWER_DOWN)
