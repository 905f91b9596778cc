from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from .protocol import (
    CRC_SIZE,
    ComponentId,
    ConfigId,
    FrameId,
    bytes_to_float,
    bytes_to_uint32,
)

# Payload starts right after length(2) + frame id(1).
PAYLOAD_OFFSET = 3

STATUS_WIDTH = 1
SCALAR_WIDTH = 4
QUATERNION_WIDTH = 16

COMPONENT_WIDTHS: Dict[int, int] = {
    ComponentId.DISTORTION: STATUS_WIDTH,
    ComponentId.CAL_STATUS: STATUS_WIDTH,
    ComponentId.HEADING_STATUS: STATUS_WIDTH,
    ComponentId.HEADING: SCALAR_WIDTH,
    ComponentId.PITCH: SCALAR_WIDTH,
    ComponentId.ROLL: SCALAR_WIDTH,
    ComponentId.TEMPERATURE: SCALAR_WIDTH,
    ComponentId.ACCEL_X: SCALAR_WIDTH,
    ComponentId.ACCEL_Y: SCALAR_WIDTH,
    ComponentId.ACCEL_Z: SCALAR_WIDTH,
    ComponentId.MAG_X: SCALAR_WIDTH,
    ComponentId.MAG_Y: SCALAR_WIDTH,
    ComponentId.MAG_Z: SCALAR_WIDTH,
    ComponentId.GYRO_X: SCALAR_WIDTH,
    ComponentId.GYRO_Y: SCALAR_WIDTH,
    ComponentId.GYRO_Z: SCALAR_WIDTH,
    ComponentId.QUATERNION: QUATERNION_WIDTH,
}


@dataclass(slots=True)
class FrameBase:
    id: int
    crc16_expected: int
    crc16_error_status: bool

    @property
    def frame_id(self) -> FrameId:
        return FrameId(self.id)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "crc16_expected": self.crc16_expected,
            "crc16_error_status": self.crc16_error_status,
        }


@dataclass(slots=True)
class DoneFrame(FrameBase):
    """Payload-less acknowledgement (SetConfigDone, SetAcqParamsDone)."""


@dataclass(slots=True)
class ModuleInfo(FrameBase):
    name: str
    rev: str

    def as_dict(self) -> dict:
        out = FrameBase.as_dict(self)
        out.update(name=self.name, rev=self.rev)
        return out


@dataclass(slots=True)
class SerialNumber(FrameBase):
    serial_number: int

    def as_dict(self) -> dict:
        out = FrameBase.as_dict(self)
        out["serial_number"] = self.serial_number
        return out


@dataclass(slots=True)
class Declination(FrameBase):
    declination: float

    def as_dict(self) -> dict:
        out = FrameBase.as_dict(self)
        out["declination"] = self.declination
        return out


@dataclass(slots=True)
class AcquisitionParams(FrameBase):
    is_poll_mode: bool
    flush_filters: bool
    sample_delay: float

    def as_dict(self) -> dict:
        out = FrameBase.as_dict(self)
        out.update(
            is_poll_mode=self.is_poll_mode,
            flush_filters=self.flush_filters,
            sample_delay=self.sample_delay,
        )
        return out


@dataclass(slots=True)
class FunctionalMode(FrameBase):
    is_ahrs_mode: bool

    def as_dict(self) -> dict:
        out = FrameBase.as_dict(self)
        out["is_ahrs_mode"] = self.is_ahrs_mode
        return out


@dataclass(slots=True)
class DataComponent:
    id: int
    values: List[Union[int, float]]

    @property
    def name(self) -> str:
        return ComponentId(self.id).name

    def as_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "values": list(self.values)}


@dataclass(slots=True)
class DataFrame(FrameBase):
    components: List[DataComponent] = field(default_factory=list)

    def get(self, component_id: int) -> Optional[DataComponent]:
        for component in self.components:
            if component.id == component_id:
                return component
        return None

    def as_dict(self) -> dict:
        out = FrameBase.as_dict(self)
        out["components"] = [c.as_dict() for c in self.components]
        return out


DecodedFrame = Union[
    DoneFrame,
    ModuleInfo,
    SerialNumber,
    Declination,
    AcquisitionParams,
    FunctionalMode,
    DataFrame,
]

# (frame bytes, crc16 trailer as read, crc mismatch) -> frame, or None when the
# payload does not match the layout for that id.
FrameParser = Callable[[bytes, int, bool], Optional[DecodedFrame]]


@dataclass(frozen=True, slots=True)
class FrameSpec:
    frame_id: FrameId
    parse: FrameParser
    length: Optional[int] = None
    min_length: int = 0

    def accepts(self, frame_length: int) -> bool:
        if self.length is not None:
            return frame_length == self.length
        return frame_length >= self.min_length


def _parse_done(frame: bytes, crc16_expected: int, crc_error: bool) -> DoneFrame:
    return DoneFrame(id=frame[2], crc16_expected=crc16_expected, crc16_error_status=crc_error)


def _parse_module_info(frame: bytes, crc16_expected: int, crc_error: bool) -> ModuleInfo:
    return ModuleInfo(
        id=frame[2],
        crc16_expected=crc16_expected,
        crc16_error_status=crc_error,
        name=frame[3:7].decode("ascii", errors="replace"),
        rev=frame[7:11].decode("ascii", errors="replace"),
    )


def _parse_serial_number(frame: bytes, crc16_expected: int, crc_error: bool) -> SerialNumber:
    return SerialNumber(
        id=frame[2],
        crc16_expected=crc16_expected,
        crc16_error_status=crc_error,
        serial_number=bytes_to_uint32(frame[3:7]),
    )


def _parse_acq_params(frame: bytes, crc16_expected: int, crc_error: bool) -> AcquisitionParams:
    # frame[5:9] is reserved
    return AcquisitionParams(
        id=frame[2],
        crc16_expected=crc16_expected,
        crc16_error_status=crc_error,
        is_poll_mode=frame[3] != 0,
        flush_filters=frame[4] != 0,
        sample_delay=bytes_to_float(frame[9:13]),
    )


def _parse_functional_mode(frame: bytes, crc16_expected: int, crc_error: bool) -> FunctionalMode:
    return FunctionalMode(
        id=frame[2],
        crc16_expected=crc16_expected,
        crc16_error_status=crc_error,
        is_ahrs_mode=frame[3] != 0,
    )


def _parse_component_values(component_id: int, block: bytes) -> List[Union[int, float]]:
    width = COMPONENT_WIDTHS[component_id]
    if width == STATUS_WIDTH:
        return [block[0]]
    return [bytes_to_float(block[i : i + SCALAR_WIDTH]) for i in range(0, width, SCALAR_WIDTH)]


def _parse_data(frame: bytes, crc16_expected: int, crc_error: bool) -> DataFrame:
    end = len(frame) - CRC_SIZE
    count = frame[PAYLOAD_OFFSET]
    offset = PAYLOAD_OFFSET + 1
    components: List[DataComponent] = []

    # A truncated or unknown component ends the list; what was read is kept.
    while len(components) < count and offset < end:
        component_id = frame[offset]
        width = COMPONENT_WIDTHS.get(component_id)
        if width is None or offset + 1 + width > end:
            break
        block = frame[offset + 1 : offset + 1 + width]
        components.append(DataComponent(id=component_id, values=_parse_component_values(component_id, block)))
        offset += 1 + width

    return DataFrame(
        id=frame[2],
        crc16_expected=crc16_expected,
        crc16_error_status=crc_error,
        components=components,
    )


DECLINATION_FRAME_LENGTH = 10


def _parse_config(frame: bytes, crc16_expected: int, crc_error: bool) -> Optional[Declination]:
    config_id = frame[PAYLOAD_OFFSET]
    if config_id != ConfigId.DECLINATION or len(frame) != DECLINATION_FRAME_LENGTH:
        return None
    return Declination(
        id=frame[2],
        crc16_expected=crc16_expected,
        crc16_error_status=crc_error,
        declination=bytes_to_float(frame[4:8]),
    )


FRAME_REGISTRY: Dict[int, FrameSpec] = {
    spec.frame_id: spec
    for spec in (
        FrameSpec(FrameId.GET_MOD_INFO_RESP, _parse_module_info, length=13),
        FrameSpec(FrameId.SERIAL_NUMBER_RESP, _parse_serial_number, length=9),
        FrameSpec(FrameId.SET_CONFIG_DONE, _parse_done, length=5),
        FrameSpec(FrameId.SET_ACQ_PARAMS_DONE, _parse_done, length=5),
        FrameSpec(FrameId.GET_ACQ_PARAMS_RESP, _parse_acq_params, length=15),
        FrameSpec(FrameId.GET_FUNCTIONAL_MODE_RESP, _parse_functional_mode, length=6),
        FrameSpec(FrameId.GET_DATA_RESP, _parse_data, min_length=6),
        FrameSpec(FrameId.GET_CONFIG_RESP, _parse_config, min_length=7),
    )
}
