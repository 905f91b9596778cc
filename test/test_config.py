import json

import pytest

from trax2_serialport.config import (
    DEFAULT_CONFIG_PATH,
    BridgeConfig,
    build_arg_parser,
    load_config,
    resolve_config,
)


def write_config(path, values: dict) -> str:
    path.write_text(json.dumps(values), encoding="utf-8")
    return str(path)


def test_defaults() -> None:
    config = BridgeConfig()

    assert config.port == "/dev/ttyUSB0"
    assert config.baud == 38400
    assert config.skip_on_checksum_error is True
    assert config.ws_url is None
    assert config.shell is True


def test_load_config(tmp_path) -> None:
    path = write_config(tmp_path / "bridge.json", {"port": "/dev/ttyS3", "baud": 9600, "request_timeout_s": 2})
    config = load_config(path)

    assert config.port == "/dev/ttyS3"
    assert config.baud == 9600
    assert config.request_timeout_s == 2.0
    assert isinstance(config.request_timeout_s, float)


def test_load_config_rejects_unknown_key(tmp_path) -> None:
    path = write_config(tmp_path / "bridge.json", {"prot": "/dev/ttyS3"})

    with pytest.raises(ValueError, match="prot"):
        load_config(path)


@pytest.mark.parametrize(
    "values",
    [
        {"baud": "fast"},
        {"baud": True},
        {"baud": 0},
        {"skip_on_checksum_error": "yes"},
        {"port": ""},
        {"reconnect_s": -1},
    ],
)
def test_load_config_rejects_bad_values(tmp_path, values: dict) -> None:
    path = write_config(tmp_path / "bridge.json", values)

    with pytest.raises(ValueError):
        load_config(path)


def test_load_config_requires_object(tmp_path) -> None:
    path = tmp_path / "bridge.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(path))


def test_resolve_precedence(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    path = write_config(
        tmp_path / "bridge.json",
        {"port": "/dev/ttyS1", "baud": 9600, "ws_url": "ws://file", "api_key": "from-file"},
    )
    args = build_arg_parser().parse_args(["--config", path, "--baud", "115200", "--keep-crc-errors"])

    config = resolve_config(args, environ={"TRAX2_WS_URL": "ws://env"})

    assert config.port == "/dev/ttyS1"
    assert config.baud == 115200
    assert config.ws_url == "ws://env"
    assert config.api_key == "from-file"
    assert config.skip_on_checksum_error is False
    assert config.shell is True


def test_resolve_picks_up_default_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    write_config(tmp_path / DEFAULT_CONFIG_PATH, {"channel": "compass"})

    config = resolve_config(build_arg_parser().parse_args(["--no-shell", "--debug"]), environ={})

    assert config.channel == "compass"
    assert config.shell is False
    assert config.debug is True


def test_resolve_without_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = resolve_config(build_arg_parser().parse_args([]), environ={})

    assert config == BridgeConfig()


def test_as_dict_masks_api_key() -> None:
    config = BridgeConfig(api_key="secret")

    assert config.as_dict()["api_key"] == "***"
    assert BridgeConfig().as_dict()["api_key"] is None
