from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Tuple

from .encoder import Encoder
from .frames import DecodedFrame
from .protocol import ComponentId, ConfigId, FrameId
from .transport import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_REQUEST_TIMEOUT_S, Trax2Client

PROMPT = "trax2 % "

HELP_TEXT = """Commands:
  kGetModInfo                      device type and firmware revision
  kSerialNumber                    unit serial number
  kSetDataComponents <comp...>     components output by kGetData (see 'components')
  kGetData                         query one data set
  kStartContinuousMode
  kStopContinuousMode
  kGetAcqParams
  kSetAcqParams <0|1> [flush 0|1] [delay s]   0=continuous, 1=polled
  kSetFunctionalMode <0|1>         0=compass, 1=AHRS
  kGetFunctionalMode
  kGetDeclination
  kSetDeclination <deg>
  kSetTrueNorth on|off
  kSetMilOut on|off
  kSetResetRef                     re-align 9-axis heading to 6-axis heading
  kSave                            persist configuration
  kPowerDown
  components
  stats
  log on|off
  help
  quit
"""

COMPONENT_NAMES = {
    "kHeading": ComponentId.HEADING,
    "kDistortion": ComponentId.DISTORTION,
    "kCalStatus": ComponentId.CAL_STATUS,
    "kTemperature": ComponentId.TEMPERATURE,
    "kAccelX": ComponentId.ACCEL_X,
    "kAccelY": ComponentId.ACCEL_Y,
    "kAccelZ": ComponentId.ACCEL_Z,
    "kPitch": ComponentId.PITCH,
    "kRoll": ComponentId.ROLL,
    "kMagX": ComponentId.MAG_X,
    "kMagY": ComponentId.MAG_Y,
    "kMagZ": ComponentId.MAG_Z,
    "kGyroX": ComponentId.GYRO_X,
    "kGyroY": ComponentId.GYRO_Y,
    "kGyroZ": ComponentId.GYRO_Z,
    "kQuaternion": ComponentId.QUATERNION,
    "kHeadingStatus": ComponentId.HEADING_STATUS,
}


ON_OFF = {"on": True, "off": False}
ZERO_ONE = {"1": True, "0": False}


class SessionLogger:
    """One JSON line per shell command: the decoded response frame, or the
    error that ended it. Without a path nothing is written."""

    def __init__(self, path: Optional[str]) -> None:
        self._file: Optional[TextIO] = None
        if path:
            log_path = Path(path).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = log_path.open("a", encoding="utf-8")

    def __enter__(self) -> SessionLogger:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def record(
        self,
        event: str,
        command: str,
        frame: Optional[DecodedFrame] = None,
        error: Optional[str] = None,
    ) -> None:
        if self._file is None:
            return
        entry = {"ts": datetime.now(timezone.utc).isoformat(), "event": event, "command": command}
        if frame is not None:
            entry["frame"] = frame.frame_id.name
            entry["crc16_error"] = frame.crc16_error_status
            entry["response"] = frame.as_dict()
        if error is not None:
            entry["error"] = error
        self._file.write(json.dumps(entry, ensure_ascii=True) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def parse_switch(raw: str, choices: Dict[str, bool]) -> bool:
    value = choices.get(raw.lower())
    if value is None:
        raise ValueError(f"expected {' or '.join(repr(c) for c in choices)}, got {raw!r}")
    return value


def parse_components(names: List[str]) -> Tuple[List[int], List[str]]:
    ids: List[int] = []
    unknown: List[str] = []
    for name in names:
        component = COMPONENT_NAMES.get(name)
        if component is None:
            unknown.append(name)
        else:
            ids.append(int(component))
    return ids, unknown


def parse_acq_params(args: List[str]) -> Tuple[bool, bool, float]:
    if not args:
        raise ValueError("usage: kSetAcqParams <0|1> [flush 0|1] [delay s]")
    if len(args) > 3:
        raise ValueError("too many arguments")
    is_poll_mode = parse_switch(args[0], ZERO_ONE)
    flush_filters = parse_switch(args[1], ZERO_ONE) if len(args) > 1 else False
    try:
        sample_delay = float(args[2]) if len(args) > 2 else 0.0
    except ValueError:
        raise ValueError("delay must be a float") from None
    return is_poll_mode, flush_filters, sample_delay


def _format_frame(frame: DecodedFrame) -> str:
    fid = frame.frame_id
    if fid == FrameId.GET_MOD_INFO_RESP:
        text = f"GetModInfo: '{frame.name} {frame.rev}'."
    elif fid == FrameId.SERIAL_NUMBER_RESP:
        text = f"SerialNumber: '{frame.serial_number}'."
    elif fid == FrameId.GET_ACQ_PARAMS_RESP:
        mode = "Polled" if frame.is_poll_mode else "Continuous"
        text = (
            f"Acquisition params: '{mode} Mode', "
            f"'flushFilters={frame.flush_filters}', "
            f"'sampleDelay={frame.sample_delay:.5g}'."
        )
    elif fid == FrameId.GET_FUNCTIONAL_MODE_RESP:
        text = f"FunctionalMode: '{'AHRS Mode' if frame.is_ahrs_mode else 'Compass Mode'}'."
    elif fid == FrameId.GET_CONFIG_RESP:
        text = f"Declination: {frame.declination:.5g} deg."
    elif fid == FrameId.GET_DATA_RESP:
        parts = [
            f"{c.name}={','.join(f'{v:.5g}' if isinstance(v, float) else str(v) for v in c.values)}"
            for c in frame.components
        ]
        text = "Data: " + (" ".join(parts) if parts else "(no components)")
    elif fid == FrameId.SET_ACQ_PARAMS_DONE:
        text = "Acquisition params were set."
    elif fid == FrameId.SET_CONFIG_DONE:
        text = "Configuration was set."
    else:
        text = repr(frame)
    if frame.crc16_error_status:
        text += " (crc16 error)"
    return text


def run_command(client: Trax2Client, encoder: Encoder, parts: List[str]) -> Tuple[str, Optional[DecodedFrame]]:
    """Execute one shell command; returns the text to print and the response frame."""
    cmd, args = parts[0], parts[1:]

    def expect_args(count: int, usage: str) -> None:
        if len(args) != count:
            raise ValueError(f"usage: {usage}")

    if cmd == "kGetModInfo":
        frame = client.request(encoder.get_module_info(), FrameId.GET_MOD_INFO_RESP)
    elif cmd == "kSerialNumber":
        frame = client.request(encoder.get_serial_number(), FrameId.SERIAL_NUMBER_RESP)
    elif cmd == "kGetData":
        frame = client.request(encoder.get_data(), FrameId.GET_DATA_RESP)
    elif cmd == "kGetAcqParams":
        frame = client.request(encoder.get_acquisition_params(), FrameId.GET_ACQ_PARAMS_RESP)
    elif cmd == "kSetAcqParams":
        is_poll_mode, flush_filters, sample_delay = parse_acq_params(args)
        frame = client.request(
            encoder.set_acquisition_params(is_poll_mode, flush_filters, sample_delay),
            FrameId.SET_ACQ_PARAMS_DONE,
        )
    elif cmd == "kGetFunctionalMode":
        frame = client.request(encoder.get_functional_mode(), FrameId.GET_FUNCTIONAL_MODE_RESP)
    elif cmd == "kGetDeclination":
        frame = client.request(encoder.get_declination(), FrameId.GET_CONFIG_RESP)
    elif cmd == "kSetDeclination":
        expect_args(1, "kSetDeclination <deg>")
        try:
            value = float(args[0])
        except ValueError:
            raise ValueError("declination must be a float") from None
        frame = client.request(encoder.set_declination(value), FrameId.SET_CONFIG_DONE)
    elif cmd in ("kSetTrueNorth", "kSetMilOut"):
        expect_args(1, f"{cmd} on|off")
        config_id = ConfigId.TRUE_NORTH if cmd == "kSetTrueNorth" else ConfigId.MIL_OUT
        enabled = parse_switch(args[0], ON_OFF)
        frame = client.request(encoder.set_config_flag(config_id, enabled), FrameId.SET_CONFIG_DONE)
    elif cmd == "kSetDataComponents":
        ids, unknown = parse_components(args)
        if not ids:
            raise ValueError("no components were provided")
        client.send(encoder.set_data_components(ids))
        lines = [f"Unknown component: '{name}'" for name in unknown]
        lines.append(f"Data components set: {', '.join(ComponentId(i).name for i in ids)}")
        return "\n".join(lines), None
    elif cmd == "kSetFunctionalMode":
        expect_args(1, "kSetFunctionalMode <0|1>")
        client.send(encoder.set_functional_mode(parse_switch(args[0], ZERO_ONE)))
        return "sent", None
    elif cmd == "kStartContinuousMode":
        client.send(encoder.start_continuous_mode())
        return "sent", None
    elif cmd == "kStopContinuousMode":
        client.send(encoder.stop_continuous_mode())
        return "sent", None
    elif cmd == "kSetResetRef":
        client.send(encoder.reset_ref())
        return "sent", None
    elif cmd == "kSave":
        client.send(encoder.save())
        return "sent", None
    elif cmd == "kPowerDown":
        client.send(encoder.power_down())
        return "sent", None
    elif cmd == "components":
        return " ".join(COMPONENT_NAMES), None
    elif cmd == "stats":
        stats = client.get_stats()
        return (
            "stats: "
            f"tx_ok={stats.tx_frames_ok} tx_err={stats.tx_errors} "
            f"rx_bytes={stats.rx_bytes} rx_ok={stats.rx_frames_ok} "
            f"rx_crc={stats.rx_crc_errors} rx_resync={stats.rx_resync_bytes}"
        ), None
    elif cmd == "log":
        expect_args(1, "log on|off")
        enabled = parse_switch(args[0], ON_OFF)
        client.set_log_enabled(enabled)
        return f"log={'on' if enabled else 'off'}", None
    elif cmd == "help":
        return HELP_TEXT.rstrip("\n"), None
    else:
        raise ValueError(f"unknown command '{cmd}'. use: help")

    return _format_frame(frame), frame


def run_shell(client: Trax2Client, log_file: Optional[str] = None) -> int:
    encoder = Encoder()

    with SessionLogger(log_file) as session:
        print("TRAX2 ready. Type 'help' for commands.")
        try:
            while True:
                try:
                    raw = input(PROMPT).strip()
                except EOFError:
                    raw = "quit"
                if not raw:
                    continue

                parts = raw.split()
                if parts[0] in ("quit", "exit"):
                    print("bye")
                    session.record("quit", raw)
                    break

                try:
                    text, frame = run_command(client, encoder, parts)
                except TimeoutError:
                    print(f"Command '{parts[0]}' timed out!")
                    session.record("timeout", raw)
                except (ValueError, RuntimeError) as exc:
                    print(f"error: {exc}")
                    session.record("error", raw, error=str(exc))
                else:
                    print(text)
                    session.record("command", raw, frame=frame)
        except KeyboardInterrupt:
            print("\ninterrupted")

    return 0


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_cli(args: argparse.Namespace) -> int:
    configure_logging(args.debug)
    client = Trax2Client(
        port=args.port,
        baud=args.baud,
        skip_on_checksum_error=not args.keep_crc_errors,
        request_timeout_s=args.timeout,
    )
    client.start()
    try:
        return run_shell(client, args.log_file)
    finally:
        client.stop()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Interactive TRAX2 serial shell")
    parser.add_argument("--port", default=DEFAULT_PORT, help=f"Serial port (default: {DEFAULT_PORT})")
    parser.add_argument("--baud", type=int, default=DEFAULT_BAUD, help=f"Baud rate (default: {DEFAULT_BAUD})")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT_S,
        help=f"Response timeout in seconds (default: {DEFAULT_REQUEST_TIMEOUT_S:g})",
    )
    parser.add_argument(
        "--keep-crc-errors",
        action="store_true",
        help="Deliver frames with a bad CRC (flagged) instead of dropping them",
    )
    parser.add_argument("--log-file", default=None, help="Optional JSONL session log path")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser
