import pytest

from oseidsim.memory import MEM_SIZE, SEC_SIZE, MemoryDevice, MemoryDeviceError


@pytest.fixture
def image_path(tmp_path):
    return tmp_path / "card_mem"


@pytest.fixture
def device(image_path):
    return MemoryDevice(image_path)


def test_new_device_is_erased(device, image_path):
    assert device.read_block(0, 16) == b"\xff" * 16
    assert device.sec_read_block(0, 16) == b"\xff" * 16
    assert image_path.stat().st_size == MEM_SIZE + SEC_SIZE + 2


def test_write_read_round_trip(device):
    device.write_block(100, b"abc")
    assert device.read_block(100, 3) == b"abc"
    assert device.read_block(99, 1) == b"\xff"


def test_persistence(device, image_path):
    device.write_block(100, b"abc")
    device.sec_write_block(10, b"\x01\x02")
    reopened = MemoryDevice(image_path)
    assert reopened.read_block(100, 3) == b"abc"
    assert reopened.sec_read_block(10, 2) == b"\x01\x02"
    assert reopened.change_counter() == 1


def test_size_zero_means_256(device):
    assert len(device.read_block(0, 0)) == 256
    assert len(device.sec_read_block(0, 0)) == 256


def test_change_counter_tracks_file_memory(device):
    assert device.change_counter() == 0
    device.write_block(0, b"\x00")
    assert device.change_counter() == 1
    device.fill_ff(0, 1)
    assert device.change_counter() == 2
    device.sec_write_block(0, b"\x00")
    device.format()
    device.sec_format()
    assert device.change_counter() == 2


def test_change_counter_wraps(image_path):
    image_path.write_bytes(b"\xff" * (MEM_SIZE + SEC_SIZE) + b"\xff\xff")
    device = MemoryDevice(image_path)
    assert device.change_counter() == 0xFFFF
    device.write_block(0, b"\x00")
    assert device.change_counter() == 0


def test_fill_ff(device):
    device.write_block(10, b"\x00" * 8)
    device.fill_ff(12, 4)
    assert device.read_block(10, 8) == b"\x00\x00\xff\xff\xff\xff\x00\x00"


def test_format_keeps_security_memory(device):
    device.write_block(0, b"\x11")
    device.sec_write_block(0, b"\x22")
    device.format()
    assert device.read_block(0, 1) == b"\xff"
    assert device.sec_read_block(0, 1) == b"\x22"
    device.sec_format()
    assert device.sec_read_block(0, 1) == b"\xff"


def test_last_byte_reachable(device):
    device.write_block(MEM_SIZE - 1, b"\x42")
    assert device.read_block(MEM_SIZE - 1, 1) == b"\x42"


@pytest.mark.parametrize("offset,size", [(MEM_SIZE - 1, 2), (MEM_SIZE, 1), (-1, 1)])
def test_read_out_of_range(device, offset, size):
    with pytest.raises(MemoryDeviceError):
        device.read_block(offset, size)


def test_security_out_of_range(device):
    with pytest.raises(MemoryDeviceError):
        device.sec_read_block(SEC_SIZE, 1)
    with pytest.raises(MemoryDeviceError):
        device.sec_write_block(SEC_SIZE - 1, b"\x00\x00")


def test_invalid_sizes(device):
    with pytest.raises(ValueError):
        device.read_block(0, 257)
    with pytest.raises(ValueError):
        device.write_block(0, b"")
    with pytest.raises(ValueError):
        device.write_block(0, bytes(257))


def test_failed_write_leaves_counter(device):
    with pytest.raises(MemoryDeviceError):
        device.write_block(MEM_SIZE, b"\x00")
    assert device.change_counter() == 0


def test_truncated_image(image_path):
    image_path.write_bytes(b"\x00" * 10)
    with pytest.raises(MemoryDeviceError):
        MemoryDevice(image_path).read_block(0, 1)