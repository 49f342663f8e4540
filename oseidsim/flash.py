"""Flash data area and EEPROM of the USB reader target, held in memory."""

from __future__ import annotations

from contextlib import suppress

from .memory import MemoryDeviceError

FLASH_SIZE = 0x10000
PAGE_SIZE = 256
EEPROM_SIZE = 1024
SEC_LIMIT = 1000
COUNTER_OFFSET = 1020
SEC_FORMAT_SIZE = 1020


def _block_size(size: int) -> int:
    if size == 0:
        size = PAGE_SIZE
    if not 0 < size <= PAGE_SIZE:
        raise ValueError(f"block size must be 0..{PAGE_SIZE}, got {size}")
    return size


def _payload(data: bytes | bytearray) -> bytes:
    data = bytes(data)
    if not 0 < len(data) <= PAGE_SIZE:
        raise ValueError(f"block must hold 1..{PAGE_SIZE} bytes, got {len(data)}")
    return data


class FlashDevice:
    """64 KiB of flash for card files and 1 KiB of EEPROM for security data.

    Both start erased (0xFF). The change counter lives in the EEPROM word
    at offset 1020 and is reported as that word plus one, so an erased
    EEPROM reads as counter 0. A read or write size of 0 means 256 bytes.
    """

    def __init__(self) -> None:
        self._flash = bytearray(b"\xff" * FLASH_SIZE)
        self._eeprom = bytearray(b"\xff" * EEPROM_SIZE)

    def read_block(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes of flash at ``offset``."""
        size = _block_size(size)
        if offset < 0 or offset + size - 1 >= FLASH_SIZE:
            raise MemoryDeviceError(f"flash read at {offset} of {size} bytes out of range")
        return bytes(self._flash[offset : offset + size])

    def write_block(self, offset: int, data: bytes | bytearray) -> None:
        """Write a block of flash and advance the change counter.

        A block that would reach the end of the flash area is refused.
        """
        data = _payload(data)
        if offset < 0 or offset + len(data) >= FLASH_SIZE:
            raise MemoryDeviceError(
                f"flash write at {offset} of {len(data)} bytes out of range"
            )
        self._flash[offset : offset + len(data)] = data
        counter = self.change_counter()
        self._eeprom[COUNTER_OFFSET : COUNTER_OFFSET + 2] = counter.to_bytes(2, "little")

    def fill_ff(self, offset: int, size: int) -> None:
        """Fill a block of flash with 0xFF."""
        self.write_block(offset, b"\xff" * _block_size(size))

    def format(self) -> None:
        """Erase the flash page by page; pages that cannot be written are skipped."""
        for offset in range(0, FLASH_SIZE, PAGE_SIZE):
            with suppress(MemoryDeviceError):
                self.fill_ff(offset, 0)

    def sec_read_block(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes of security memory at ``offset``."""
        size = _block_size(size)
        if offset < 0 or offset + size - 1 > SEC_LIMIT:
            raise MemoryDeviceError(f"security read at {offset} of {size} bytes out of range")
        return bytes(self._eeprom[offset : offset + size])

    def sec_write_block(self, offset: int, data: bytes | bytearray) -> None:
        """Write a block of security memory."""
        data = _payload(data)
        if offset < 0 or offset + len(data) - 1 > SEC_LIMIT:
            raise MemoryDeviceError(
                f"security write at {offset} of {len(data)} bytes out of range"
            )
        self._eeprom[offset : offset + len(data)] = data

    def sec_format(self) -> None:
        """Erase the security memory, keeping the change counter."""
        self._eeprom[:SEC_FORMAT_SIZE] = b"\xff" * SEC_FORMAT_SIZE

    def change_counter(self) -> int:
        """Return the 16-bit count of changes made to flash."""
        word = int.from_bytes(self._eeprom[COUNTER_OFFSET : COUNTER_OFFSET + 2], "little")
        return (word + 1) & 0xFFFF