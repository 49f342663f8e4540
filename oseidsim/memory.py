"""Non-volatile card memory kept in a disc file."""

from __future__ import annotations

import os
from pathlib import Path

MEM_SIZE = 65536 - 256
SEC_SIZE = 1024
BLOCK_MAX = 256
_COUNTER_SIZE = 2
_IMAGE_SIZE = MEM_SIZE + SEC_SIZE + _COUNTER_SIZE


class MemoryDeviceError(Exception):
    """Raised when a memory operation is out of range or the backing file fails."""


def _block_size(size: int) -> int:
    if size == 0:
        size = BLOCK_MAX
    if not 0 < size <= BLOCK_MAX:
        raise ValueError(f"block size must be 0..{BLOCK_MAX}, got {size}")
    return size


def _span(offset: int, size: int, limit: int) -> slice:
    if offset < 0 or offset + size > limit:
        raise MemoryDeviceError(
            f"block at {offset} of {size} bytes exceeds {limit} bytes"
        )
    return slice(offset, offset + size)


def _payload(data: bytes | bytearray) -> bytes:
    data = bytes(data)
    if not 0 < len(data) <= BLOCK_MAX:
        raise ValueError(f"block must hold 1..{BLOCK_MAX} bytes, got {len(data)}")
    return data


class MemoryDevice:
    """File memory and security memory with a change counter.

    The image is loaded lazily; a missing or unreadable file starts a
    blank (0xFF-filled) device. Every change is written back at once.
    A read or write size of 0 means 256 bytes.
    """

    def __init__(self, path: str | os.PathLike[str] = "card_mem") -> None:
        self.path = Path(path)
        self._mem: bytearray | None = None
        self._sec = bytearray()
        self._counter = 0

    def _load(self) -> None:
        if self._mem is not None:
            return
        try:
            image = self.path.read_bytes()
        except OSError:
            mem = bytearray(b"\xff" * MEM_SIZE)
            sec = bytearray(b"\xff" * SEC_SIZE)
            self._store(mem, sec, 0)
            self._mem, self._sec, self._counter = mem, sec, 0
            return
        if len(image) < _IMAGE_SIZE:
            raise MemoryDeviceError(f"{self.path}: image is truncated")
        self._sec = bytearray(image[MEM_SIZE : MEM_SIZE + SEC_SIZE])
        self._counter = int.from_bytes(
            image[MEM_SIZE + SEC_SIZE : _IMAGE_SIZE], "little"
        )
        self._mem = bytearray(image[:MEM_SIZE])

    def _store(self, mem: bytes, sec: bytes, counter: int) -> None:
        image = bytes(mem) + bytes(sec) + counter.to_bytes(_COUNTER_SIZE, "little")
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT, 0o600)
            with os.fdopen(fd, "wb") as handle:
                handle.write(image)
        except OSError as exc:
            raise MemoryDeviceError(f"{self.path}: {exc}") from exc

    def _writeback(self) -> None:
        assert self._mem is not None
        self._store(self._mem, self._sec, self._counter)

    def _bump_counter(self) -> None:
        self._counter = (self._counter + 1) & 0xFFFF

    def read_block(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes of file memory at ``offset``."""
        span = _span(offset, _block_size(size), MEM_SIZE)
        self._load()
        return bytes(self._mem[span])

    def write_block(self, offset: int, data: bytes | bytearray) -> None:
        """Write a block of file memory and advance the change counter."""
        data = _payload(data)
        span = _span(offset, len(data), MEM_SIZE)
        self._load()
        self._mem[span] = data
        self._bump_counter()
        self._writeback()

    def fill_ff(self, offset: int, size: int) -> None:
        """Fill a block of file memory with 0xFF and advance the change counter."""
        size = _block_size(size)
        span = _span(offset, size, MEM_SIZE)
        self._load()
        self._mem[span] = b"\xff" * size
        self._bump_counter()
        self._writeback()

    def format(self) -> None:
        """Erase the whole file memory."""
        self._load()
        self._mem[:] = b"\xff" * MEM_SIZE
        self._writeback()

    def sec_read_block(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes of security memory at ``offset``."""
        span = _span(offset, _block_size(size), SEC_SIZE)
        self._load()
        return bytes(self._sec[span])

    def sec_write_block(self, offset: int, data: bytes | bytearray) -> None:
        """Write a block of security memory."""
        data = _payload(data)
        span = _span(offset, len(data), SEC_SIZE)
        self._load()
        self._sec[span] = data
        self._writeback()

    def sec_format(self) -> None:
        """Erase the whole security memory."""
        self._load()
        self._sec[:] = b"\xff" * SEC_SIZE
        self._writeback()

    def change_counter(self) -> int:
        """Return the 16-bit count of changes made to file memory."""
        self._load()
        return self._counter