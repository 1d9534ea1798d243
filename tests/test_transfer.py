"""Tests for APROM image chunking and transfer."""

import pytest

from fake_bootloader import FakeBootloader
from nvt_isp.errors import ChecksumMismatch, EmptyImage, ImageTooLarge, IspTimeout, ShortRead
from nvt_isp.programmer.channel import CommandChannel
from nvt_isp.programmer.transfer import FlashBlockTransfer, load_image, plan_blocks
from nvt_isp.protocol.commands import Command
from nvt_isp.protocol.sequence import SequenceTracker

CAPACITY = 18 * 1024


def _image(size: int) -> bytes:
    return bytes((i * 7 + 3) & 0xFF for i in range(size))


def _transfer(device, capacity=CAPACITY, progress=None):
    channel = CommandChannel(device, SequenceTracker(0x20))
    return FlashBlockTransfer(channel, capacity, progress=progress)


def test_plan_blocks_236_bytes():
    blocks = plan_blocks(_image(236))
    assert [b.size for b in blocks] == [48, 56, 56, 56, 20]
    assert [b.offset for b in blocks] == [0, 48, 104, 160, 216]
    assert sum(b.size for b in blocks) == 236
    assert blocks[0].first and not blocks[1].first


def test_plan_blocks_edges():
    assert [b.size for b in plan_blocks(_image(1))] == [1]
    assert [b.size for b in plan_blocks(_image(48))] == [48]
    assert [b.size for b in plan_blocks(_image(49))] == [48, 1]
    assert [b.size for b in plan_blocks(_image(104))] == [48, 56]
    assert plan_blocks(b"") == []


def test_transfer_writes_image():
    device = FakeBootloader()
    image = _image(236)

    blocks = _transfer(device).run(image)

    assert blocks == 5
    assert device.opcodes() == [Command.UPDATE_APROM] + [Command.CONTINUATION] * 4
    assert device.aprom_total == 236
    assert bytes(device.aprom) == image


def test_transfer_uses_consecutive_packet_numbers():
    device = FakeBootloader()
    _transfer(device).run(_image(200))
    assert [c.packet_number for c in device.commands] == [0x20, 0x21, 0x22, 0x23]


def test_transfer_progress():
    seen = []
    _transfer(FakeBootloader(), progress=lambda done, total: seen.append((done, total))).run(_image(236))
    assert seen == [(48, 236), (104, 236), (160, 236), (216, 236), (236, 236)]


def test_transfer_full_capacity():
    device = FakeBootloader()
    image = _image(CAPACITY)
    _transfer(device).run(image)
    assert bytes(device.aprom) == image


def test_empty_image_rejected_before_sending():
    device = FakeBootloader()
    with pytest.raises(EmptyImage):
        _transfer(device).run(b"")
    assert device.written == []


def test_oversize_image_rejected_before_sending():
    device = FakeBootloader()
    with pytest.raises(ImageTooLarge) as exc:
        _transfer(device, capacity=100).run(_image(101))
    assert exc.value.size == 101
    assert exc.value.capacity == 100
    assert device.written == []


def test_bad_ack_aborts_transfer():
    """No block after a failed ack is sent, and nothing is retried."""

    def corrupt_third(cmd, ack):
        if cmd.packet_number == 0x22:
            return bytes([ack[0] ^ 0xFF]) + ack[1:]
        return ack

    device = FakeBootloader(tamper=corrupt_third)
    with pytest.raises(ChecksumMismatch):
        _transfer(device).run(_image(236))
    assert len(device.written) == 3


def test_missing_ack_aborts_transfer():
    device = FakeBootloader(tamper=lambda cmd, ack: b"" if cmd.opcode == 0 else ack)
    with pytest.raises(IspTimeout):
        _transfer(device).run(_image(236))
    assert len(device.written) == 2


def test_load_image(tmp_path):
    path = tmp_path / "app.bin"
    path.write_bytes(_image(300))
    assert load_image(path) == _image(300)
    assert load_image(str(path)) == _image(300)


def test_load_image_missing(tmp_path):
    with pytest.raises(ShortRead):
        load_image(tmp_path / "missing.bin")
