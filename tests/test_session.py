"""Tests for the programming session and its fixed step order."""

import struct

import pytest

from fake_bootloader import FakeBootloader
from nvt_isp.config import SessionOptions
from nvt_isp.errors import ImageTooLarge, StepFailed, UnsupportedDevice
from nvt_isp.models.config import ConfigBytes, ConfigChange
from nvt_isp.programmer.session import DeviceSession
from nvt_isp.protocol.commands import Command

SMALL_APROM_CONFIG = bytes([0xFF, 0xF8, 0xFF, 0xFF, 0xFF])  # LDSIZE=0, 14K APROM


def _session(device):
    return DeviceSession(device, sleep=lambda s: None)


def test_full_run_with_image():
    device = FakeBootloader()
    image = bytes(range(200))
    state = _session(device).run(SessionOptions(image=image))

    assert device.opcodes() == [
        Command.CONNECT,
        Command.SYNC_PACKNO,
        Command.GET_FWVER,
        Command.GET_DEVICEID,
        Command.READ_CONFIG,
        Command.UPDATE_APROM,
        Command.CONTINUATION,
        Command.CONTINUATION,
        Command.CONTINUATION,
        Command.RUN_APROM,
    ]
    assert bytes(device.aprom) == image
    assert state.firmware_version == 0x27
    assert state.device_id == 0x3650
    assert state.chip_name == "N76E003"
    assert state.aprom_size == 18 * 1024
    assert not state.connected  # rebooted into the application


def test_sync_carries_current_counter():
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    session.sync_packet_numbers()
    sync = device.commands[1]
    assert sync.opcode == Command.SYNC_PACKNO
    assert struct.unpack_from("<I", sync.payload)[0] == sync.packet_number == 0x18


def test_connect_after_ignored_probes():
    """Two ignored probes and an answered third advance the counter by three."""
    device = FakeBootloader(ignore_connects=2)
    session = _session(device)
    session.connect()
    assert session.state.connected
    assert session.channel.tracker.next_pkt_num == 0x17 + 3


def test_counter_advances_once_per_command():
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    session.sync_packet_numbers()
    session.get_firmware_version()
    session.get_device_id()
    session.read_config()
    assert session.channel.tracker.next_pkt_num == 0x17 + 5


def test_unsupported_device_stops_before_config():
    device = FakeBootloader(device_id=0x1234)
    with pytest.raises(StepFailed) as exc:
        _session(device).run(SessionOptions(image=b"\x01"))

    assert exc.value.step == "get device ID"
    assert isinstance(exc.value.cause, UnsupportedDevice)
    assert exc.value.cause.device_id == 0x1234
    assert Command.READ_CONFIG not in device.opcodes()
    assert Command.UPDATE_APROM not in device.opcodes()


def test_get_device_id_accepts_known_chip():
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    assert session.get_device_id() == 0x3650


def test_read_config_resolves_capacity():
    device = FakeBootloader(config=SMALL_APROM_CONFIG)
    session = _session(device)
    session.connect()
    config = session.read_config()
    assert config.ldsize == 0
    assert session.state.aprom_size == 14 * 1024


def test_write_config_without_changes_sends_nothing():
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    session.read_config()
    sent = len(device.written)

    change = ConfigChange.parse("rpd=1")  # already set
    assert session.write_config(change.desired, change.mask) is False
    assert len(device.written) == sent


def test_write_config_rereads_device_value():
    """The read-back config is kept, not the bytes that were sent."""

    def normalize(raw):
        return raw[:3] + b"\x7F" + raw[4:]  # device clears a reserved bit

    device = FakeBootloader(normalize=normalize)
    session = _session(device)
    session.connect()
    session.read_config()

    change = ConfigChange.parse("rpd=0")
    assert session.write_config(change.desired, change.mask) is True

    update = device.commands[-2]
    assert update.opcode == Command.UPDATE_CONFIG
    assert update.payload[:5] == bytes([0xFB, 0xFF, 0xFF, 0xFF, 0xFF])
    assert device.opcodes()[-1] == Command.READ_CONFIG
    assert session.state.config_current == ConfigBytes(bytes([0xFB, 0xFF, 0xFF, 0x7F, 0xFF]))
    assert session.state.config_mask.rpd == 1


def test_run_with_config_change():
    device = FakeBootloader()
    options = SessionOptions(config_change=ConfigChange.parse("rpd=0"), remain_isp=True)
    _session(device).run(options)
    assert device.opcodes()[5:] == [Command.UPDATE_CONFIG, Command.READ_CONFIG]
    assert device.config[0] == 0xFB


def test_remain_isp_skips_run_aprom():
    device = FakeBootloader()
    state = _session(device).run(SessionOptions(remain_isp=True))
    assert Command.RUN_APROM not in device.opcodes()
    assert state.connected


def test_oversize_image_fails_program_step():
    device = FakeBootloader(config=SMALL_APROM_CONFIG)
    with pytest.raises(StepFailed) as exc:
        _session(device).run(SessionOptions(image=bytes(15 * 1024)))
    assert exc.value.step == "program APROM"
    assert isinstance(exc.value.cause, ImageTooLarge)
    assert Command.UPDATE_APROM not in device.opcodes()
    assert Command.RUN_APROM not in device.opcodes()


def test_failed_step_is_named():
    device = FakeBootloader(tamper=lambda cmd, ack: b"" if cmd.opcode == Command.GET_FWVER else ack)
    with pytest.raises(StepFailed, match="get FW version failed"):
        _session(device).run(SessionOptions())


def test_flash_reads_config_when_needed():
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    session.flash_aprom(b"\xAA" * 10)
    assert device.opcodes()[1:3] == [Command.READ_CONFIG, Command.UPDATE_APROM]


def test_get_flash_mode():
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    assert session.get_flash_mode() == 1


@pytest.mark.parametrize(
    "method, opcode",
    [("run_aprom", Command.RUN_APROM), ("run_ldrom", Command.RUN_LDROM), ("reset", Command.RESET)],
)
def test_reboot_commands_expect_no_ack(method, opcode):
    device = FakeBootloader()
    session = _session(device)
    session.connect()
    getattr(session, method)()
    assert device.opcodes()[-1] == opcode
    assert not session.state.connected


def test_state_to_dict():
    device = FakeBootloader()
    state = _session(device).run(SessionOptions(remain_isp=True))
    d = state.to_dict()
    assert d["device_id"] == "0x3650"
    assert d["chip"] == "N76E003"
    assert d["firmware_version"] == "0x27"
    assert d["config"]["aprom_kb"] == 18
