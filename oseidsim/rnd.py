"""Random bytes from the operating system."""

from __future__ import annotations

import os


def random_bytes(size: int) -> bytes:
    """Return ``size`` random bytes; a size of 0 means 256."""
    if size == 0:
        size = 256
    if not 0 < size <= 256:
        raise ValueError(f"size must be 0..256, got {size}")
    return os.urandom(size)