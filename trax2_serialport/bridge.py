from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .config import BridgeConfig, build_arg_parser, resolve_config
from .relay import TelemetryRelay
from .trax2_comms.cli import configure_logging, run_shell
from .trax2_comms.transport import Trax2Client

logger = logging.getLogger(__name__)


class Trax2Bridge:
    def __init__(self, config: BridgeConfig) -> None:
        self.config = config
        self.client = Trax2Client(
            port=config.port,
            baud=config.baud,
            skip_on_checksum_error=config.skip_on_checksum_error,
            request_timeout_s=config.request_timeout_s,
        )
        self.relay: Optional[TelemetryRelay] = None
        if config.ws_url:
            self.relay = TelemetryRelay(
                config.ws_url,
                api_key=config.api_key,
                channel=config.channel,
                inbound_channel=config.inbound_channel,
                events_channel=config.events_channel,
                on_inbound=self.on_inbound,
                reconnect_s=config.reconnect_s,
            )
            self.client.add_raw_listener(self.relay.forward)

    def _device_info(self) -> dict:
        return {"name": self.config.channel, "port": self.config.port, "baud": self.config.baud}

    def on_inbound(self, data: bytes) -> None:
        try:
            self.client.send(data)
        except RuntimeError as exc:
            logger.warning("Dropped %d inbound byte(s): %s", len(data), exc)

    def start(self) -> None:
        if self.relay is not None:
            self.relay.start()
        self.client.start()
        if self.relay is not None:
            self.relay.send_event({"type": "open", "serialDevice": self._device_info()})
        logger.info("Bridge started: %s", self.config.as_dict())

    def stop(self) -> None:
        self.client.stop()
        if self.relay is not None:
            self.relay.send_event({"type": "close", "serialDevice": self._device_info()})
            self.relay.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config = resolve_config(args)
    configure_logging(config.debug)

    bridge = Trax2Bridge(config)
    bridge.start()
    try:
        if config.shell:
            return run_shell(bridge.client, config.log_file)
        print("Relaying; press Ctrl+C to stop.")
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        bridge.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
