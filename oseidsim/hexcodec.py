"""Hexadecimal text helpers and debug output formatting."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Mapping

# Longest byte string accepted by the tolerant parser: an extended APDU.
MAX_PARSE_LENGTH = 5 + 2 + 65536 + 2

# Bits of the OsEID_DEBUG environment variable.
DEBUG_PCSCD = 1
DEBUG_IFH = 2
DEBUG_LOW_LEVEL = 16
DEBUG_FS = 32
DEBUG_ISO7816 = 128
DEBUG_MYEID_EMU = 256
DEBUG_BN_MATH = 8192
DEBUG_RSA = 16384
DEBUG_ECC = 32768

DEBUG_ENV = "OsEID_DEBUG"

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_LINE_ENDS = frozenset("\r\n")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_hex(text: str | bytes | bytearray) -> bytes:
    """Convert loosely formatted hex text to bytes.

    Any non-hex character separates bytes, at most two digits form one
    byte, and parsing stops at the first CR or LF.
    """
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("latin-1")

    out = bytearray()
    value = 0
    digits = 0
    for char in text:
        if len(out) == MAX_PARSE_LENGTH:
            return bytes(out)
        if char in _HEX_DIGITS:
            if digits == 2:
                out.append(value)
                value = 0
                digits = 0
            digits += 1
            value = value * 16 + int(char, 16)
            continue
        if digits:
            out.append(value)
            value = 0
            digits = 0
        if char in _LINE_ENDS:
            return bytes(out)
    if digits and len(out) < MAX_PARSE_LENGTH:
        out.append(value)
    return bytes(out)


def format_apdu(data: Iterable[int]) -> str:
    """Format bytes as lower-case hex pairs separated by spaces, ending in a newline."""
    return " ".join(f"{byte:02x}" for byte in data) + "\n"


def dump_block(data: Iterable[int]) -> str:
    """Render bytes the way the serial debug dump does, 32 per line."""
    parts = []
    for count, byte in enumerate(data, start=1):
        parts.append(f" {byte:02x}")
        if count % 32 == 0:
            parts.append("\n")
    parts.append(" \n")
    return "".join(parts)


def hex_print(message: str, data: Iterable[int]) -> str:
    """Render a message followed by upper-case hex bytes, 32 per line."""
    parts = [message]
    for index, byte in enumerate(data):
        if index and index % 32 == 0:
            parts.append("\n")
        parts.append(f"{byte:02X} ")
    parts.append("\n")
    return "".join(parts)


def number_print(message: str, data: bytes | bytearray) -> str:
    """Render little-endian bytes as one hexadecimal number."""
    digits = "".join(f"{byte:02X}" for byte in reversed(bytes(data)))
    return f"{message} 0x{digits}\n"


def debug_enabled(mask: int, environ: Mapping[str, str] | None = None) -> bool:
    """Tell whether any bit of ``mask`` is set in the OsEID_DEBUG variable."""
    env = os.environ if environ is None else environ
    value = env.get(DEBUG_ENV)
    if value is None:
        return False
    match = _LEADING_INT.match(value)
    level = int(match.group(1)) if match else 0
    return bool(level & mask)