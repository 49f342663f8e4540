"""Analysis of command APDUs for transport over the T0 protocol."""

from __future__ import annotations

from dataclasses import dataclass

MAX_APDU_LENGTH = 261 + 5
SHORT_LE_MAX = 256


class ApduError(ValueError):
    """Raised when an APDU cannot be carried over T0."""


@dataclass(frozen=True)
class ApduCase:
    """How an APDU is split for T0.

    ``kind`` is one of "1", "2S", "3S", "4S", "2E", "3E", "4E";
    ``header`` is the 5-byte header sent first, ``expected`` the number
    of response bytes expected before the status word, and ``data`` the
    bytes sent once the card asks for the rest of the command.
    """

    kind: str
    header: bytes
    expected: int
    data: bytes


def _forbidden_ins(ins: int) -> bool:
    return (ins & 0xF0) in (0x60, 0x90)


def classify_apdu(apdu: bytes | bytearray) -> ApduCase:
    """Work out the T0 header, expected response length and command data."""
    apdu = bytes(apdu)
    length = len(apdu)
    if length < 4:
        raise ApduError("APDU shorter than 4 bytes")
    if length > MAX_APDU_LENGTH:
        raise ApduError("too many characters in message")
    if _forbidden_ins(apdu[1]):
        raise ApduError(f"instruction {apdu[1]:#04x} is not allowed")

    if length == 4:
        return ApduCase("1", apdu + b"\x00", 0, b"")

    header = apdu[:5]
    p3 = apdu[4]
    if p3:
        if length == 5:
            return ApduCase("2S", header, p3, b"")
        if length == 5 + p3:
            return ApduCase("3S", header, 0, apdu[5 : 5 + p3])
        if length == 6 + p3:
            return ApduCase("4S", header, 0, apdu[5 : 5 + p3])
        raise ApduError("wrong APDU size (P3 != 0)")

    if length == 5:
        return ApduCase("2S", header, SHORT_LE_MAX, b"")
    if length == 6:
        raise ApduError("P3 == 0 with an APDU of 6 bytes")

    lc_ex = apdu[5] << 8 | apdu[6]
    if length == 7:
        expected = lc_ex if lc_ex < SHORT_LE_MAX else SHORT_LE_MAX
        return ApduCase("2E", header, expected, b"")
    if length == 7 + lc_ex:
        if lc_ex >= 256:
            raise ApduError("case 3E with Nc > 255 cannot be carried over T0")
        return ApduCase("3E", header, 0, apdu[5 : 5 + lc_ex])
    if length == 9 + lc_ex:
        if lc_ex >= 256:
            raise ApduError("case 4E with Nc > 255 cannot be carried over T0")
        le_ex = apdu[-2] << 8 | apdu[-1]
        expected = le_ex if le_ex < SHORT_LE_MAX else SHORT_LE_MAX
        return ApduCase("4E", header, expected, apdu[5 : 5 + lc_ex])
    raise ApduError("APDU length does not match any case")