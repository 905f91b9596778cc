from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .trax2_comms.transport import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_REQUEST_TIMEOUT_S

DEFAULT_CONFIG_PATH = "trax2-serialport.json"
ENV_WS_URL = "TRAX2_WS_URL"
ENV_API_KEY = "TRAX2_API_KEY"


@dataclass(slots=True)
class BridgeConfig:
    port: str = DEFAULT_PORT
    baud: int = DEFAULT_BAUD
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    skip_on_checksum_error: bool = True
    ws_url: Optional[str] = None
    api_key: Optional[str] = None
    channel: str = "trax2"
    inbound_channel: str = "trax-in"
    events_channel: str = "serialport-events"
    reconnect_s: float = 2.0
    log_file: Optional[str] = None
    shell: bool = True
    debug: bool = False

    def update(self, values: Dict[str, Any]) -> None:
        known = {f.name for f in fields(self)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"unknown config key(s): {', '.join(unknown)}")
        for key, value in values.items():
            setattr(self, key, _coerce(key, value))

    def as_dict(self) -> dict:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        if out["api_key"]:
            out["api_key"] = "***"
        return out


def _strict_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError("must be boolean")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    raise ValueError("must be a string or null")


def _non_empty_str(value: Any) -> str:
    if isinstance(value, str) and value:
        return value
    raise ValueError("must be a non-empty string")


def _positive_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError("must be a positive integer")
    return value


def _positive_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError("must be a positive number")
    return float(value)


_COERCE: Dict[str, Callable[[Any], Any]] = {
    "port": _non_empty_str,
    "baud": _positive_int,
    "request_timeout_s": _positive_float,
    "skip_on_checksum_error": _strict_bool,
    "ws_url": _optional_str,
    "api_key": _optional_str,
    "channel": _non_empty_str,
    "inbound_channel": _non_empty_str,
    "events_channel": _non_empty_str,
    "reconnect_s": _positive_float,
    "log_file": _optional_str,
    "shell": _strict_bool,
    "debug": _strict_bool,
}


def _coerce(key: str, value: Any) -> Any:
    try:
        return _COERCE[key](value)
    except ValueError as exc:
        raise ValueError(f"config '{key}' {exc}") from None


def load_config(path: str) -> BridgeConfig:
    config_path = Path(path).expanduser()
    data = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: top-level JSON value must be an object")
    config = BridgeConfig()
    config.update(data)
    return config


def resolve_config(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> BridgeConfig:
    """File values, then environment, then command-line flags."""
    environ = os.environ if environ is None else environ

    path = args.config
    if path is None and Path(DEFAULT_CONFIG_PATH).is_file():
        path = DEFAULT_CONFIG_PATH
    config = load_config(path) if path is not None else BridgeConfig()

    env_values = {}
    if environ.get(ENV_WS_URL):
        env_values["ws_url"] = environ[ENV_WS_URL]
    if environ.get(ENV_API_KEY):
        env_values["api_key"] = environ[ENV_API_KEY]
    config.update(env_values)

    overrides = {
        "port": args.port,
        "baud": args.baud,
        "request_timeout_s": args.timeout,
        "skip_on_checksum_error": args.skip_on_checksum_error,
        "ws_url": args.ws_url,
        "api_key": args.api_key,
        "channel": args.channel,
        "log_file": args.log_file,
        "shell": args.shell,
        "debug": args.debug,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    return config


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="TRAX2 serial bridge with optional telemetry relay")
    parser.add_argument("--config", default=None, help=f"JSON config file (default: ./{DEFAULT_CONFIG_PATH} if present)")
    parser.add_argument("--port", default=None, help=f"Serial port (default: {DEFAULT_PORT})")
    parser.add_argument("--baud", type=int, default=None, help=f"Baud rate (default: {DEFAULT_BAUD})")
    parser.add_argument("--timeout", type=float, default=None, help="Response timeout in seconds")
    parser.add_argument(
        "--keep-crc-errors",
        dest="skip_on_checksum_error",
        action="store_const",
        const=False,
        default=None,
        help="Deliver frames with a bad CRC (flagged) instead of dropping them",
    )
    parser.add_argument("--ws-url", default=None, help=f"Relay websocket URL (env: {ENV_WS_URL})")
    parser.add_argument("--api-key", default=None, help=f"Relay API key (env: {ENV_API_KEY})")
    parser.add_argument("--channel", default=None, help="Relay channel for raw device bytes (default: trax2)")
    parser.add_argument("--log-file", default=None, help="Optional JSONL session log path")
    parser.add_argument(
        "--no-shell",
        dest="shell",
        action="store_const",
        const=False,
        default=None,
        help="Relay only, without the interactive shell",
    )
    parser.add_argument("--debug", action="store_const", const=True, default=None, help="Enable debug logging")
    return parser
