"""Lookup of constant blobs stored as (id, size, payload) records."""

from __future__ import annotations

_END = 0xFF


class ConstantTable:
    """A table of constants: records of id, size and payload, ended by 0xFF.

    The first record with a given id wins; id 0xFF marks the end.
    """

    def __init__(self, data: bytes | bytearray) -> None:
        data = bytes(data)
        self._entries: dict[int, bytes] = {}
        pos = 0
        while pos < len(data):
            ident = data[pos]
            if ident == _END:
                break
            if pos + 1 >= len(data):
                raise ValueError(f"record {ident:#04x} at {pos} has no size")
            size = data[pos + 1]
            payload = data[pos + 2 : pos + 2 + size]
            if len(payload) != size:
                raise ValueError(f"record {ident:#04x} at {pos} is truncated")
            self._entries.setdefault(ident, payload)
            pos += 2 + size

    def get(self, ident: int) -> bytes | None:
        """Return the payload of constant ``ident``, or None if there is none."""
        return self._entries.get(ident)

    def __contains__(self, ident: object) -> bool:
        return ident in self._entries

    def __len__(self) -> int:
        return len(self._entries)