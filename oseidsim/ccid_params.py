"""CCID protocol parameters: defaults taken from the ATR, PPS and SetParameters checks."""

from __future__ import annotations

from dataclasses import dataclass

# ATR of the card behind the USB reader: direct convention, T1 offered, "OsEID".
DEFAULT_ATR = bytes((0x3B, 0xD5, 0x96, 0x02, 0x80, 0x31, 0xFE, 0x95)) + b"OsEID" + b"\xef"

DIRECT_CONVENTION = 0x3B
INVERSE_CONVENTION = 0x3F

# Slot error codes reported for rejected parameters.
ERROR_WRONG_LENGTH = 1
ERROR_PROTOCOL = 7
ERROR_FINDEX_DINDEX = 10
ERROR_TCCKS = 11
ERROR_GUARD_TIME = 13
ERROR_CLOCK_STOP = 14
ERROR_IFSC = 15
ERROR_NAD = 16

_T0_DATA_LENGTH = 5
_T1_DATA_LENGTH = 7
_MAX_SHORT_LENGTH = 255
_RFU_FINDEX = frozenset({0x70, 0x80, 0xE0, 0xF0})

# Required PPS length for each PPS0 pattern (PPS1..PPS3 presence bits).
_PPS_LENGTHS = {
    0x00: 3,
    0x10: 4,
    0x20: 4,
    0x40: 4,
    0x30: 5,
    0x50: 5,
    0x60: 5,
    0x70: 7,
}


class ParameterError(ValueError):
    """Protocol parameters were refused; ``slot_error`` is the CCID slot error code."""

    def __init__(self, slot_error: int, message: str) -> None:
        super().__init__(message)
        self.slot_error = slot_error


@dataclass
class ReaderParameters:
    """Protocol number and the T0/T1 protocol data structure of the slot."""

    protocol: int = 0
    findex_dindex: int = 0x11
    tcckst: int = 0
    guard_time: int = 2
    waiting_integer: int = 10
    clock_stop: int = 0
    ifsc: int = 254
    nad: int = 0

    def reset(self, atr: bytes | bytearray) -> None:
        """Restore the defaults that follow from ``atr`` for the current protocol."""
        atr = bytes(atr)
        if len(atr) < 3:
            raise ValueError("ATR must hold at least 3 bytes")
        self.findex_dindex = atr[2]
        self.tcckst = 0 if atr[0] == DIRECT_CONVENTION else 2
        self.guard_time = 2
        self.waiting_integer = 10
        self.clock_stop = 0
        self.ifsc = 254
        self.nad = 0
        if self.protocol == 1:
            self.tcckst |= 0x10
            self.waiting_integer = 0x95

    def to_bytes(self) -> bytes:
        """Protocol number followed by the protocol data (5 bytes for T0, 7 for T1)."""
        fields = [
            self.protocol,
            self.findex_dindex,
            self.tcckst,
            self.guard_time,
            self.waiting_integer,
            self.clock_stop,
        ]
        if self.protocol == 1:
            fields += [self.ifsc, self.nad]
        return bytes(field & 0xFF for field in fields)


def check_pps(frame: bytes | bytearray) -> bool:
    """Tell whether ``frame`` is a well formed PPS request (PPSS, PPS0, ..., PCK)."""
    frame = bytes(frame)
    if len(frame) < 2 or len(frame) > _MAX_SHORT_LENGTH or frame[0] != 0xFF:
        return False
    required = _PPS_LENGTHS.get(frame[1] & 0xFE)
    if required is not None and len(frame) != required:
        return False
    pck = 0
    for byte in frame:
        pck ^= byte
    return pck == 0


def _check_t0(data: bytes, atr: bytes) -> None:
    tcckst = data[1]
    if atr[0] == DIRECT_CONVENTION and tcckst != 0:
        raise ParameterError(ERROR_TCCKS, "direct convention expected")
    if atr[0] == INVERSE_CONVENTION and tcckst != 2:
        raise ParameterError(ERROR_TCCKS, "inverse convention expected")
    if data[4] > 3:
        raise ParameterError(ERROR_CLOCK_STOP, "invalid clock stop")


def _check_t1(data: bytes, atr: bytes) -> None:
    tcckst = data[1]
    if tcckst & 0xFC != 0x10:
        raise ParameterError(ERROR_TCCKS, "invalid TCCKS upper bits")
    if atr[0] == DIRECT_CONVENTION and tcckst & 2:
        raise ParameterError(ERROR_TCCKS, "direct convention expected")
    if atr[0] == INVERSE_CONVENTION and tcckst & 2 != 2:
        raise ParameterError(ERROR_TCCKS, "inverse convention expected")
    if tcckst & 1:
        raise ParameterError(ERROR_TCCKS, "CRC is not supported")
    if data[2] & 0xF0 > 0x90:
        raise ParameterError(ERROR_GUARD_TIME, "invalid guard time")
    if data[4] > 3:
        raise ParameterError(ERROR_CLOCK_STOP, "invalid clock stop")
    if data[5] in (0, 0xFF):
        raise ParameterError(ERROR_IFSC, "invalid IFSC")
    if data[6] == 0xFF or data[6] & 0x88:
        raise ParameterError(ERROR_NAD, "invalid NAD")


def validate_parameters(
    protocol: int, data: bytes | bytearray, atr: bytes | bytearray
) -> ReaderParameters:
    """Check a SetParameters request and return the parameters it sets.

    Raises ParameterError carrying the slot error code when refused.
    """
    data = bytes(data)
    atr = bytes(atr)
    if not atr:
        raise ValueError("ATR is empty")
    if len(data) > _MAX_SHORT_LENGTH:
        raise ParameterError(ERROR_WRONG_LENGTH, "parameter block too long")
    if protocol not in (0, 1):
        raise ParameterError(ERROR_PROTOCOL, f"protocol {protocol} not supported")
    expected = _T0_DATA_LENGTH if protocol == 0 else _T1_DATA_LENGTH
    if len(data) != expected:
        raise ParameterError(
            ERROR_WRONG_LENGTH, f"T{protocol} needs {expected} bytes, got {len(data)}"
        )

    findex_dindex = data[0]
    if findex_dindex & 0xF0 in _RFU_FINDEX:
        raise ParameterError(ERROR_FINDEX_DINDEX, "reserved Fi value")
    dindex = findex_dindex & 0x0F
    if dindex == 0 or dindex > 9:
        raise ParameterError(ERROR_FINDEX_DINDEX, "reserved Di value")

    if protocol == 0:
        _check_t0(data, atr)
        return ReaderParameters(
            protocol=0,
            findex_dindex=data[0],
            tcckst=data[1],
            guard_time=data[2],
            waiting_integer=data[3],
            clock_stop=data[4],
        )
    _check_t1(data, atr)
    return ReaderParameters(
        protocol=1,
        findex_dindex=data[0],
        tcckst=data[1],
        guard_time=data[2],
        waiting_integer=data[3],
        clock_stop=data[4],
        ifsc=data[5],
        nad=data[6],
    )