import pytest

from trax2_serialport.trax2_comms.encoder import Encoder
from trax2_serialport.trax2_comms.frames import ModuleInfo
from trax2_serialport.trax2_comms.protocol import FrameId
from trax2_serialport.trax2_comms.transport import Trax2Client

MOD_INFO_RESP = bytes([0x00, 0x0D, 0x02, 0x54, 0x52, 0x41, 0x58, 0x50, 0x37, 0x33, 0x34, 0x2B, 0x91])
SERIAL_NUMBER_RESP = bytes([0x00, 0x09, 0x35, 0x00, 0x0F, 0xBE, 0x43, 0x0E, 0xCF])


class FakeSerial:
    def __init__(self, on_write=None) -> None:
        self.is_open = True
        self.written = []
        self.on_write = on_write

    def write(self, data: bytes) -> int:
        self.written.append(bytes(data))
        if self.on_write is not None:
            self.on_write(bytes(data))
        return len(data)

    def close(self) -> None:
        self.is_open = False


def make_client(on_write=None) -> Trax2Client:
    client = Trax2Client(port="/dev/null", request_timeout_s=0.05)
    client._serial = FakeSerial(on_write)
    return client


def test_send_writes_frame_and_counts() -> None:
    client = make_client()
    client.send(Encoder().get_data())

    assert client._serial.written == [bytes([0x00, 0x05, 0x04, 0xBF, 0x71])]
    assert client.get_stats().tx_frames_ok == 1


def test_send_without_port_raises() -> None:
    client = Trax2Client()

    with pytest.raises(RuntimeError):
        client.send(Encoder().get_data())
    assert client.get_stats().tx_errors == 1


def test_request_returns_matching_response() -> None:
    client = None

    def respond(data: bytes) -> None:
        # Answer arrives split across two reads.
        client.handle_rx_chunk(MOD_INFO_RESP[:6])
        client.handle_rx_chunk(MOD_INFO_RESP[6:])

    client = make_client(respond)
    frame = client.request(Encoder().get_module_info(), FrameId.GET_MOD_INFO_RESP)

    assert isinstance(frame, ModuleInfo)
    assert (frame.name, frame.rev) == ("TRAX", "P734")
    assert client.get_latest(FrameId.GET_MOD_INFO_RESP) is frame
    assert client._waiters == {}


def test_request_ignores_other_frames() -> None:
    client = make_client(lambda data: client.handle_rx_chunk(SERIAL_NUMBER_RESP))

    with pytest.raises(TimeoutError):
        client.request(Encoder().get_module_info(), FrameId.GET_MOD_INFO_RESP)
    assert client.get_latest(FrameId.SERIAL_NUMBER_RESP).serial_number == 1031747
    assert client._waiters[FrameId.GET_MOD_INFO_RESP] == []


def test_request_timeout_override() -> None:
    client = make_client()

    with pytest.raises(TimeoutError, match="GET_DATA_RESP"):
        client.request(Encoder().get_data(), FrameId.GET_DATA_RESP, timeout_s=0.01)


def test_listeners_and_stats() -> None:
    client = make_client()
    raw = []
    frames = []
    client.add_raw_listener(raw.append)
    client.add_frame_listener(frames.append)

    corrupted = bytearray(SERIAL_NUMBER_RESP)
    corrupted[-1] ^= 0xFF
    client.handle_rx_chunk(b"\x00" + MOD_INFO_RESP)
    client.handle_rx_chunk(bytes(corrupted))

    assert raw == [b"\x00" + MOD_INFO_RESP, bytes(corrupted)]
    assert [f.id for f in frames] == [FrameId.GET_MOD_INFO_RESP]
    stats = client.get_stats()
    assert stats.rx_bytes == 14 + 9
    assert stats.rx_frames_ok == 1
    assert stats.rx_crc_errors == 1
    assert stats.rx_resync_bytes == 2


def test_failing_listener_does_not_stop_delivery() -> None:
    client = make_client()
    frames = []

    def broken(frame) -> None:
        raise ValueError("boom")

    client.add_frame_listener(broken)
    client.add_frame_listener(frames.append)
    client.handle_rx_chunk(MOD_INFO_RESP)

    assert len(frames) == 1


def test_keep_crc_errors_delivers_flagged_frame() -> None:
    client = Trax2Client(skip_on_checksum_error=False)
    corrupted = bytearray(SERIAL_NUMBER_RESP)
    corrupted[-1] += 1

    (frame,) = client.handle_rx_chunk(bytes(corrupted))

    assert frame.crc16_error_status is True


def test_log_prints_tx_and_rx(capsys) -> None:
    client = make_client()
    client.set_log_enabled(True)
    client.send(Encoder().save())
    client.handle_rx_chunk(MOD_INFO_RESP)

    out = capsys.readouterr().out
    assert "[TX] 00 05 09 6e dc" in out
    assert "[RX] GET_MOD_INFO_RESP" in out


def test_invalid_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        Trax2Client(request_timeout_s=0)
