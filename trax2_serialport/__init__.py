from .bridge import Trax2Bridge
from .config import BridgeConfig, load_config
from .relay import TelemetryRelay
from .trax2_comms import Decoder, Encoder, FrameId, Trax2Client

__all__ = [
    "BridgeConfig",
    "Decoder",
    "Encoder",
    "FrameId",
    "TelemetryRelay",
    "Trax2Bridge",
    "Trax2Client",
    "load_config",
]
