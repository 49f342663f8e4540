"""CCID reader slot: parses bulk-out messages and relays TPDUs to the card."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from .ccid_params import (
    DEFAULT_ATR,
    ParameterError,
    ReaderParameters,
    check_pps,
    validate_parameters,
)

# Message types, reader to host.
RDR_TO_PC_DATA_BLOCK = 0x80
RDR_TO_PC_SLOT_STATUS = 0x81
RDR_TO_PC_PARAMETERS = 0x82
RDR_TO_PC_ESCAPE = 0x83
RDR_TO_PC_DATA_RATE_AND_CLOCK = 0x84

# Message types, host to reader.
PC_TO_RDR_ICC_POWER_ON = 0x62
PC_TO_RDR_ICC_POWER_OFF = 0x63
PC_TO_RDR_GET_SLOT_STATUS = 0x65
PC_TO_RDR_XFR_BLOCK = 0x6F
PC_TO_RDR_GET_PARAMETERS = 0x6C
PC_TO_RDR_RESET_PARAMETERS = 0x6D
PC_TO_RDR_SET_PARAMETERS = 0x61
PC_TO_RDR_ESCAPE = 0x6B
PC_TO_RDR_ICC_CLOCK = 0x6E
PC_TO_RDR_T0_APDU = 0x6A
PC_TO_RDR_SECURE = 0x69
PC_TO_RDR_MECHANICAL = 0x71
PC_TO_RDR_ABORT = 0x72
PC_TO_RDR_SET_DATA_RATE_AND_CLOCK = 0x73

_RESPONSE_TYPES = {
    PC_TO_RDR_ICC_POWER_ON: RDR_TO_PC_DATA_BLOCK,
    PC_TO_RDR_ICC_POWER_OFF: RDR_TO_PC_SLOT_STATUS,
    PC_TO_RDR_GET_SLOT_STATUS: RDR_TO_PC_SLOT_STATUS,
    PC_TO_RDR_XFR_BLOCK: RDR_TO_PC_DATA_BLOCK,
    PC_TO_RDR_GET_PARAMETERS: RDR_TO_PC_PARAMETERS,
    PC_TO_RDR_RESET_PARAMETERS: RDR_TO_PC_PARAMETERS,
    PC_TO_RDR_SET_PARAMETERS: RDR_TO_PC_PARAMETERS,
    PC_TO_RDR_ESCAPE: RDR_TO_PC_ESCAPE,
    PC_TO_RDR_ICC_CLOCK: RDR_TO_PC_SLOT_STATUS,
    PC_TO_RDR_T0_APDU: RDR_TO_PC_SLOT_STATUS,
    PC_TO_RDR_SECURE: RDR_TO_PC_DATA_BLOCK,
    PC_TO_RDR_MECHANICAL: RDR_TO_PC_SLOT_STATUS,
    PC_TO_RDR_ABORT: RDR_TO_PC_SLOT_STATUS,
    PC_TO_RDR_SET_DATA_RATE_AND_CLOCK: RDR_TO_PC_DATA_RATE_AND_CLOCK,
}

HEADER_LENGTH = 10
MAX_MESSAGE = 271
MAX_DATA = 261
MAX_RESP_LEN = 271
_SHORT_RESPONSE = 63
_PACKET = 64

SLOT_ERROR_WRONG_LENGTH = 1
SLOT_ERROR_NO_SLOT = 5
SLOT_ERROR_ICC_MUTE = 0xFE
SLOT_ERROR_BUSY = 0xE0

_DEFAULT_CLOCK = 4800
_DATA_RATE = 300000


class IncompleteMessage(Exception):
    """The bulk-out message is not complete yet; more packets must follow."""


def _ignore(*_args: object) -> None:
    return None


class CcidReader:
    """One-slot CCID reader in front of a T0/T1 card.

    ``send_response`` receives long responses produced by the card,
    ``start_null`` receives the sequence number when the card asks for
    more time, and ``restart_card`` is called when the card must restart.
    """

    def __init__(
        self,
        send_response: Callable[[bytes], object] | None = None,
        start_null: Callable[[int], object] | None = None,
        restart_card: Callable[[], object] | None = None,
    ) -> None:
        self._send_response = send_response or _ignore
        self._start_null = start_null or _ignore
        self._restart_card = restart_card or _ignore
        self._atr = DEFAULT_ATR
        self._params = ReaderParameters()
        self._slot_error = 0
        self._icc_status = 1
        self._command_status = 0
        self._running = False
        self._pps_sent = 0
        self._card_ins = 0
        self._card_buffer = bytearray(MAX_MESSAGE)
        self._pending: tuple[int, int] | None = None
        self._card_response = bytearray(HEADER_LENGTH)
        self._handlers = {
            PC_TO_RDR_ICC_POWER_ON: self._power_on,
            PC_TO_RDR_ICC_POWER_OFF: self._power_off,
            PC_TO_RDR_SET_PARAMETERS: self._set_parameters,
            PC_TO_RDR_RESET_PARAMETERS: self._reset_parameters,
            PC_TO_RDR_GET_PARAMETERS: self._get_parameters,
            PC_TO_RDR_GET_SLOT_STATUS: self._get_slot_status,
            PC_TO_RDR_SET_DATA_RATE_AND_CLOCK: self._set_data_rate,
            PC_TO_RDR_XFR_BLOCK: self._xfr_block,
        }

    # -- state ---------------------------------------------------------

    @property
    def slot_status(self) -> int:
        """bmICCStatus in bits 0-1, bmCommandStatus in bits 6-7."""
        return (self._icc_status & 3) | (self._command_status & 3) << 6

    @property
    def slot_error(self) -> int:
        return self._slot_error

    @property
    def busy(self) -> bool:
        """True while the card is processing a transfer."""
        return self._running

    @property
    def parameters(self) -> ReaderParameters:
        return replace(self._params)

    # -- response helpers ----------------------------------------------

    @staticmethod
    def _header(resp: bytearray) -> bytes:
        return bytes(resp[:HEADER_LENGTH])

    def _wrong_slot(self, resp: bytearray) -> bytes:
        resp[7] = 0x42
        resp[8] = SLOT_ERROR_NO_SLOT
        return self._header(resp)

    def _busy_slot(self, resp: bytearray) -> bytes:
        self._command_status = 1
        resp[7] = self.slot_status
        resp[8] = SLOT_ERROR_BUSY
        return self._header(resp)

    # -- parser --------------------------------------------------------

    def parse_command(self, message: bytes | bytearray) -> bytes | None:
        """Handle one bulk-out message.

        Returns the response to send to the host, or None while the card
        works on a transfer (its answer goes to ``send_response``).
        Raises IncompleteMessage when further packets are needed.
        """
        count = len(message)
        if count == 0:
            raise IncompleteMessage("empty message")
        command = bytearray(bytes(message[:MAX_MESSAGE]))
        command.extend(bytes(MAX_MESSAGE - len(command)))

        resp = bytearray(_SHORT_RESPONSE)
        resp[5] = command[5]
        resp[6] = command[6]
        resp[7] = 0x40

        kind = _RESPONSE_TYPES.get(command[0], 0)
        if not kind:
            resp[0] = RDR_TO_PC_SLOT_STATUS
            return self._header(resp)
        resp[0] = kind

        length = command[1] | command[2] << 8
        if count < HEADER_LENGTH or length > MAX_DATA or command[3] or command[4]:
            resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)
        total = HEADER_LENGTH + length
        if count < total:
            if count % _PACKET == 0:
                raise IncompleteMessage(f"{count} of {total} bytes received")
            resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)
        if total < count:
            command[total:] = bytes(MAX_MESSAGE - total)

        handler = self._handlers.get(command[0], self._unsupported)
        return handler(command, resp)

    # -- message handlers ----------------------------------------------

    def _power_on(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        self._params.protocol = 0
        self._pps_sent = 0
        self._running = False
        self._restart_card()

        self._atr = DEFAULT_ATR
        atr_len = len(self._atr)
        resp[HEADER_LENGTH : HEADER_LENGTH + atr_len] = self._atr
        self._params.reset(self._atr)

        self._command_status = 0
        self._icc_status = 0
        resp[7] = self.slot_status
        resp[8] = self._slot_error
        resp[1] = atr_len
        return bytes(resp[: HEADER_LENGTH + atr_len])

    def _get_slot_status(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        if self._running:
            return self._busy_slot(resp)
        self._command_status = 0
        resp[7] = self.slot_status
        resp[8] = self._slot_error
        return self._header(resp)

    def _set_data_rate(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        self._command_status = 1
        resp[7] = self.slot_status
        if self._running:
            return self._busy_slot(resp)
        if command[2] != 0 or command[1] != 8:
            resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)
        for index in (7, 8, 9):
            if command[index]:
                resp[8] = index
                return self._header(resp)

        self._command_status = 0
        resp[7] = self.slot_status
        resp[1] = 8
        resp[10] = _DEFAULT_CLOCK & 0xFF
        resp[11] = (48000 >> 8) & 0xFF
        resp[12] = (_DEFAULT_CLOCK >> 16) & 0xFF
        resp[13] = (_DEFAULT_CLOCK >> 24) & 0xFF
        resp[14:18] = _DATA_RATE.to_bytes(4, "little")
        return bytes(resp[:18])

    def _parameters_reply(self, resp: bytearray) -> bytes:
        self._command_status = 0
        resp[7] = self.slot_status
        data = self._params.to_bytes()
        resp[9 : 9 + len(data)] = data
        return bytes(resp[: 9 + len(data)])

    def _get_parameters(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        self._command_status = 1
        resp[7] = self.slot_status
        if self._running:
            return self._busy_slot(resp)
        if command[1] and command[2]:
            resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)
        self._params.reset(self._atr)
        return self._parameters_reply(resp)

    def _reset_parameters(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        self._command_status = 1
        resp[7] = self.slot_status
        if self._running:
            return self._busy_slot(resp)
        if command[1] and command[2]:
            resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)
        return self._parameters_reply(resp)

    def _set_parameters(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        self._command_status = 1
        resp[7] = self.slot_status
        if self._running:
            return self._busy_slot(resp)

        protocol = command[7]
        if command[2]:
            self._slot_error = resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)
        if protocol > 1:
            self._slot_error = resp[8] = 7
            return self._header(resp)
        if command[1] != (5 if protocol == 0 else 7):
            self._slot_error = resp[8] = SLOT_ERROR_WRONG_LENGTH
            return self._header(resp)

        ret_len = command[1] + HEADER_LENGTH
        self._slot_error = 0
        self._command_status = 0
        resp[7] = self.slot_status

        data = bytes(command[10 : 10 + command[1]])
        try:
            new = validate_parameters(protocol, data, self._atr)
        except ParameterError as exc:
            self._slot_error = exc.slot_error
            return bytes(resp[:ret_len])

        # Only the structure of the protocol in force is copied over.
        if self._params.protocol == 1:
            ifsc, nad = command[15], command[16]
        else:
            ifsc, nad = self._params.ifsc, self._params.nad
        self._params = replace(new, protocol=protocol, ifsc=ifsc, nad=nad)
        return self._parameters_reply(resp)

    def _power_off(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5] == 0:
            if self._running:
                self._restart_card()
            self._icc_status = 1
            self._command_status = 0
            resp[7] = self.slot_status
            resp[8] = self._slot_error
            return self._header(resp)
        return self._get_slot_status(command, resp)

    def _unsupported(self, command: bytearray, resp: bytearray) -> bytes:
        if command[5]:
            return self._wrong_slot(resp)
        if self._running:
            return self._busy_slot(resp)
        self._command_status = 1
        self._slot_error = 0
        resp[7] = self.slot_status
        resp[8] = self._slot_error
        return self._header(resp)

    def _xfr_block(self, command: bytearray, resp: bytearray) -> bytes | None:
        if command[5]:
            return self._wrong_slot(resp)
        return self._run_card(command, resp)

    def _run_card(self, command: bytearray, resp: bytearray) -> bytes | None:
        if command[10] == 0xFF and self._pps_sent == 0:
            pps_ok = command[2] == 0 and check_pps(command[10 : 10 + command[1]])
            if self._running:
                return self._busy_slot(resp)
            if not pps_ok:
                self._command_status = 1
                resp[7] = self.slot_status
                resp[8] = SLOT_ERROR_ICC_MUTE
                return self._header(resp)
            self._card_buffer[:16] = command[:16]
            self._pending = (10, command[1])
            self._command_status = 0
            resp[7] = self.slot_status
            resp[8] = self._slot_error
            self._running = True
            self._card_response = bytearray(resp[:HEADER_LENGTH])
            self._pps_sent = 1
            return None

        if self._running:
            return self._busy_slot(resp)
        self._card_buffer[:] = command[:MAX_MESSAGE]
        self._card_response = bytearray(resp[:HEADER_LENGTH])

        buffer = self._card_buffer
        if buffer[2] == 0:
            if buffer[1] < 4:
                self._command_status = 1
                self._slot_error = SLOT_ERROR_WRONG_LENGTH
                return bytes(resp[:1])
            if buffer[1] < 5:
                buffer[1] = 5
                buffer[14] = 0
        self._card_ins = buffer[11]

        if self._params.protocol == 0:
            self._pending = (10, 5)
        else:
            self._pending = (10, command[2] << 8 | command[1])

        self._running = True
        self._command_status = 0
        self._card_response[7] = self.slot_status
        self._card_response[8] = self._slot_error
        return None

    # -- card side -----------------------------------------------------

    def card_receive(self, limit: int) -> bytes | None:
        """Take the data waiting for the card, at most ``limit`` bytes.

        Returns None when nothing waits; bytes beyond ``limit`` are dropped.
        """
        if self._pending is None:
            return None
        start, length = self._pending
        self._pending = None
        length = min(length, max(limit, 0))
        return bytes(self._card_buffer[start : start + length])

    def card_transmit(self, data: bytes | bytearray) -> None:
        """Accept data from the card and, once complete, answer the host."""
        data = bytes(data)
        if not data:
            raise ValueError("nothing to transmit")
        if not self._running:
            return
        pps = self._pps_sent == 1
        if pps:
            self._pps_sent = 2

        if self._params.protocol == 0 and not pps and data[0] == self._card_ins:
            if len(data) == 1:
                rest = self._card_buffer[14]
                if rest:
                    self._pending = (15, rest)
                    self._card_buffer[14] = 0
                return
            data = data[1:]

        room = MAX_RESP_LEN - len(self._card_response)
        self._card_response += data[: max(room, 0)]
        size = len(self._card_response) - HEADER_LENGTH
        self._card_response[1] = size & 0xFF
        self._card_response[2] = size >> 8
        self._running = False
        self._send_response(bytes(self._card_response))

    def card_start_null(self) -> None:
        """Ask the host for more time for the running transfer."""
        self._start_null(self._card_response[6])