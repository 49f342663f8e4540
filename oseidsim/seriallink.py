"""Line-oriented hex link between the reader emulation and the simulated card."""

from __future__ import annotations

from typing import Protocol

from .hexcodec import parse_hex

COMM_TIMEOUT = 120
BAUD_RATE = 115200
ASCII_BUFFER_SIZE = 256000
DEVICE_PATTERN = "/dev/pcscd-test{}"

_START = ord("<")
_LINE_ENDS = frozenset(b"\r\n")


class LinkError(Exception):
    """Raised when the link is closed, times out or delivers bad data."""


class _Stream(Protocol):
    def read(self, size: int = ...) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def close(self) -> None: ...


class SerialLink:
    """Exchange text lines with the card over a byte stream.

    Outgoing data is written as given. An incoming response is whatever
    follows a '<' character up to the end of the line, read as hex bytes.
    """

    def __init__(self, stream: _Stream) -> None:
        self._stream: _Stream | None = stream

    def _require_stream(self) -> _Stream:
        if self._stream is None:
            raise LinkError("port is not open")
        return self._stream

    def _flush_input(self, stream: _Stream) -> None:
        reset = getattr(stream, "reset_input_buffer", None)
        if reset is not None:
            reset()

    def write(self, data: bytes | bytearray | str) -> None:
        """Discard pending input, then send ``data`` to the card."""
        stream = self._require_stream()
        if isinstance(data, str):
            data = data.encode("ascii")
        self._flush_input(stream)
        try:
            stream.write(bytes(data))
            flush = getattr(stream, "flush", None)
            if flush is not None:
                flush()
        except OSError as exc:
            raise LinkError(f"write error: {exc}") from exc

    def read(self, max_length: int) -> bytes:
        """Read one response line and return its bytes.

        Raises LinkError on timeout, on a closed stream, or if the line
        holds more than ``max_length`` bytes.
        """
        stream = self._require_stream()
        if max_length <= 0:
            raise LinkError("no room for a response")
        line = bytearray()
        started = False
        while len(line) < ASCII_BUFFER_SIZE:
            try:
                chunk = stream.read(1)
            except OSError as exc:
                raise LinkError(f"read error: {exc}") from exc
            if not chunk:
                raise LinkError(f"timeout ({COMM_TIMEOUT} sec)")
            byte = chunk[0]
            if byte == _START:
                started = True
                continue
            if started:
                line.append(byte)
                if byte in _LINE_ENDS:
                    break
        data = parse_hex(line)
        if len(data) > max_length:
            raise LinkError(
                f"received {len(data)} bytes, over buffer size {max_length}"
            )
        return data

    def close(self) -> None:
        """Close the underlying stream."""
        stream = self._require_stream()
        self._stream = None
        stream.close()

    @property
    def closed(self) -> bool:
        return self._stream is None

    def __enter__(self) -> SerialLink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._stream is not None:
            self.close()


def open_port(device: str) -> SerialLink:
    """Open a serial device at 115200 baud, 8N1, and wrap it in a link."""
    import serial

    try:
        port = serial.Serial(
            device,
            baudrate=BAUD_RATE,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=COMM_TIMEOUT,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
    except (serial.SerialException, OSError, ValueError) as exc:
        raise LinkError(f"open {device}: {exc}") from exc
    port.reset_input_buffer()
    port.reset_output_buffer()
    return SerialLink(port)


def open_channel(channel: int) -> SerialLink:
    """Open the simulator device for ``channel``; only channel 0 exists."""
    if channel != 0:
        raise LinkError(f"channel {channel} does not exist")
    return open_port(DEVICE_PATTERN.format(channel))