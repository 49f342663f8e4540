"""Card input/output over a text console, one APDU per line."""

from __future__ import annotations

import sys
from typing import TextIO

ATR_LINE = "< 3b:f5:18:00:02:80:01:4f:73:45:49:44:1a\n"
RESET_NOTICE = "CTRL-C, card reset (type 'quit' to exit)\n"

_PPS_T0 = bytes((0xFF, 0x00, 0xFF))
_PPS_T1 = bytes((0xFF, 0x01, 0xFE))


class CardReset(Exception):
    """Raised when the reader powers up or resets the card; the card must restart."""


class ConsoleCard:
    """Card side of the console protocol.

    Lines from the reader start with '>': "> D" powers down, "> P" and
    "> R" reset the card, "> 0" and "> 1" select T0 or T1, and any other
    line carries hexadecimal APDU bytes. Responses are written as "< "
    followed by hex bytes.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._in = sys.stdin if stdin is None else stdin
        self._out = sys.stdout if stdout is None else stdout
        self._pps = False

    def _emit(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def reset(self) -> None:
        """Send the ATR and fall back to protocol T0."""
        self._emit(ATR_LINE)
        self._pps = False

    def receive(self, limit: int) -> bytes:
        """Read the next command from the reader, at most ``limit`` bytes.

        Raises CardReset on power up or reset, and EOFError on "quit" or
        at the end of input.
        """
        for line in iter(self._in.readline, ""):
            body = line.rstrip("\r\n")
            if body in ("quit", "QUIT"):
                raise EOFError("quit")
            if body == "> D":
                continue
            if body in ("> P", "> R") or line.startswith(("reset", "RESET")):
                self._emit(RESET_NOTICE)
                raise CardReset(body)
            if body == "> 0":
                self._pps = True
                return _PPS_T0
            if body == "> 1":
                self._pps = True
                return _PPS_T1
            return self._parse(line[1:], limit)
        raise EOFError("end of input")

    @staticmethod
    def _parse(text: str, limit: int) -> bytes:
        tokens = text.split()[: max(limit, 0)]
        try:
            return bytes(int(token, 16) & 0xFF for token in tokens)
        except ValueError as exc:
            raise ValueError(f"bad hex in APDU line: {text.strip()!r}") from exc

    def transmit(self, data: bytes | bytearray) -> None:
        """Send a response; right after a protocol switch only the protocol number."""
        data = bytes(data)
        if self._pps:
            self._pps = False
            self._emit(f"< {data[1]}\n")
            return
        if not data:
            raise ValueError("nothing to transmit")
        self._emit("< " + "".join(f"{byte:02x} " for byte in data) + "\n")

    def start_null(self) -> None:
        """Announce that the card asks for more time."""
        self._emit("card_io_start_null\n")

    def stop_null(self) -> None:
        """Announce the end of the request for more time."""
        self._emit("card_io_stop_null\n")