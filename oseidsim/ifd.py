"""Smart-card reader driver logic talking to the simulated card over a hex link."""

from __future__ import annotations

import logging
from enum import IntEnum

from .apdu import ApduError, classify_apdu
from .hexcodec import format_apdu
from .seriallink import LinkError, SerialLink

log = logging.getLogger(__name__)

MAX_ATR_SIZE = 33
R_SIZE = 3000
MAX_RESPONSE = 65535
MAX_TX_LENGTH = 261 + 5

SCARD_ATTR_ATR_STRING = 0x00090303
TAG_IFD_ATR = 0x0303
TAG_IFD_SLOT_THREAD_SAFE = 0x0FAC
TAG_IFD_THREAD_SAFE = 0x0FAD
TAG_IFD_SLOTS_NUMBER = 0x0FAE
TAG_IFD_SIMULTANEOUS_ACCESS = 0x0FAF

_ATR_TAGS = frozenset({SCARD_ATTR_ATR_STRING, TAG_IFD_ATR})
_SINGLE_TAGS = frozenset(
    {TAG_IFD_SIMULTANEOUS_ACCESS, TAG_IFD_SLOTS_NUMBER, TAG_IFD_SLOT_THREAD_SAFE, TAG_IFD_THREAD_SAFE}
)

COMMUNICATION_ERROR = "communication error"
INSUFFICIENT_BUFFER = "insufficient buffer"
UNKNOWN_TAG = "unknown tag"
PROTOCOL_NOT_SUPPORTED = "protocol not supported"
POWER_ACTION_FAILED = "power action failed"
NOT_SUPPORTED = "not supported"
RESPONSE_TIMEOUT = "response timeout"


class IfdError(Exception):
    """A reader operation failed; ``code`` says how."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class PowerAction(IntEnum):
    POWER_UP = 500
    POWER_DOWN = 501
    RESET = 502


def _is_status(byte: int) -> bool:
    return (byte & 0xF0) in (0x60, 0x90)


class IfdHandler:
    """One reader with one slot; the card is always present."""

    def __init__(self, link: SerialLink) -> None:
        self._link = link
        self._atr = b""
        self._proto = 0
        self._first_run = True

    def _send(self, data: bytes) -> None:
        try:
            self._link.write(data)
        except LinkError as exc:
            log.warning("write to card failed: %s", exc)

    def _send_hex(self, data: bytes) -> None:
        self._send(b"> " + format_apdu(data).encode("ascii"))

    def get_capabilities(self, tag: int, length: int) -> bytes:
        """Return the value of capability ``tag`` in at most ``length`` bytes."""
        if tag in _ATR_TAGS:
            length = min(length, MAX_ATR_SIZE)
            if not self._atr:
                return bytes(length)
            if length < len(self._atr):
                raise IfdError(INSUFFICIENT_BUFFER)
            return self._atr
        if tag in _SINGLE_TAGS:
            if length >= 1:
                return b"\x00"
            raise IfdError(INSUFFICIENT_BUFFER)
        raise IfdError(UNKNOWN_TAG, f"unknown tag {tag:#x}")

    def set_protocol(self, protocol: int) -> None:
        """Switch the card to T0 (0) or T1 (1) and wait for its confirmation."""
        if protocol in (0, 1):
            self._send(f"> {protocol}\n".encode("ascii"))
            try:
                reply = self._link.read(10)
            except LinkError:
                reply = b""
            if reply == bytes([protocol]):
                self._proto = protocol
                return
        raise IfdError(PROTOCOL_NOT_SUPPORTED, f"protocol {protocol} refused")

    def power(self, action: int) -> bytes:
        """Power the card up, down or reset it; return the ATR (empty on power down).

        The very first power up answers as a memory card: it fails without an ATR.
        """
        try:
            action = PowerAction(action)
        except ValueError:
            raise IfdError(NOT_SUPPORTED, f"power action {action} not supported") from None

        if action is PowerAction.POWER_UP:
            if self._first_run:
                self._first_run = False
                self._atr = b""
                self._proto = 0
                raise IfdError(POWER_ACTION_FAILED, "first power up gives no ATR")
            self._send(b"> P\n")
        elif action is PowerAction.RESET:
            self._send(b"> R\n")
        else:
            self._send(b"> D\n")
            return b""

        self._proto = 0
        try:
            atr = self._link.read(MAX_ATR_SIZE)
        except LinkError as exc:
            self._atr = b""
            raise IfdError(POWER_ACTION_FAILED, "ATR timeout") from exc
        if len(atr) < 2:
            raise IfdError(COMMUNICATION_ERROR, "ATR shorter than 2 bytes")
        self._atr = atr
        return atr

    def transmit(self, apdu: bytes | bytearray, protocol: int, max_length: int) -> bytes:
        """Send an APDU with the negotiated protocol and return the response."""
        apdu = bytes(apdu)
        if len(apdu) < 4:
            raise IfdError(COMMUNICATION_ERROR, "APDU shorter than 4 bytes")
        space = min(max_length, MAX_RESPONSE)
        if protocol > 1:
            raise IfdError(PROTOCOL_NOT_SUPPORTED)
        if protocol != self._proto:
            raise IfdError(COMMUNICATION_ERROR, "protocol not negotiated")
        if len(apdu) > MAX_TX_LENGTH:
            raise IfdError(COMMUNICATION_ERROR, "too many characters in message")

        if self._proto == 1:
            self._send_hex(apdu)
            try:
                return self._link.read(space)
            except LinkError as exc:
                raise IfdError(COMMUNICATION_ERROR, "read port failed") from exc
        return self._transmit_t0(apdu, space)

    def _receive(self) -> bytes:
        try:
            return self._link.read(R_SIZE)
        except LinkError as exc:
            raise IfdError(RESPONSE_TIMEOUT) from exc

    def _transmit_t0(self, apdu: bytes, space: int) -> bytes:
        try:
            case = classify_apdu(apdu)
        except ApduError as exc:
            raise IfdError(COMMUNICATION_ERROR, str(exc)) from exc

        ins = apdu[1]
        rest = case.data
        out = bytearray()
        self._send_hex(case.header)
        while True:
            resp = self._receive()
            if not resp:
                continue
            if len(resp) == 1:
                proc = resp[0]
                if proc == 0x60:
                    continue
                if _is_status(proc):
                    raise IfdError(COMMUNICATION_ERROR, "status word with only one byte")
                if proc != ins:
                    raise IfdError(COMMUNICATION_ERROR, "wrong procedure byte")
                if case.expected:
                    data = self._receive()
                    if len(data) != case.expected:
                        raise IfdError(
                            COMMUNICATION_ERROR,
                            f"expected {case.expected} bytes, received {len(data)}",
                        )
                    if space < len(data):
                        raise IfdError(COMMUNICATION_ERROR, "no space in buffer")
                    out += data
                    space -= len(data)
                elif rest:
                    self._send_hex(rest)
                    rest = b""
                continue
            if len(resp) == 2:
                if space < 2 or not _is_status(resp[0]):
                    raise IfdError(COMMUNICATION_ERROR, f"bad status {resp.hex()}")
                return bytes(out + resp)

            if resp[0] != ins:
                raise IfdError(COMMUNICATION_ERROR, "procedure byte does not match INS")
            sw1 = resp[-2]
            if sw1 == 0x60 or not _is_status(sw1):
                raise IfdError(COMMUNICATION_ERROR, f"bad SW1 {sw1:#04x}")
            if case.expected != len(resp) - 3:
                raise IfdError(
                    COMMUNICATION_ERROR,
                    f"expected {case.expected} bytes, received {len(resp) - 3}",
                )
            if space < len(resp):
                raise IfdError(COMMUNICATION_ERROR, "no space in buffer")
            return bytes((out + resp[1:])[: len(resp) - 1])

    def control(self, code: int, data: bytes | bytearray) -> bytes:
        """Handle a control request; with no PIN pad and no display no bytes come back."""
        request = bytes(data)
        log.debug("control code %#x with %d bytes: nothing to do", code, len(request))
        returned = bytearray()
        return bytes(returned)

    def presence(self) -> bool:
        """The simulated card is always present."""
        return True

    def close(self) -> None:
        """Close the link to the card."""
        try:
            self._link.close()
        except LinkError as exc:
            raise IfdError(COMMUNICATION_ERROR, str(exc)) from exc