from .decoder import Decoder, ParseOutcome, ParseStatus, UnhandledFrameError, UnhandledPolicy
from .encoder import Encoder
from .frames import FRAME_REGISTRY, DecodedFrame
from .protocol import ComponentId, ConfigId, FrameId, crc16_ccitt
from .transport import CommsStats, Trax2Client

__all__ = [
    "CommsStats",
    "ComponentId",
    "ConfigId",
    "DecodedFrame",
    "Decoder",
    "Encoder",
    "FRAME_REGISTRY",
    "FrameId",
    "ParseOutcome",
    "ParseStatus",
    "Trax2Client",
    "UnhandledFrameError",
    "UnhandledPolicy",
    "crc16_ccitt",
]
