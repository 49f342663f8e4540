# oseidsim

Building blocks for a simulated smart card and the reader in front of it.
They let a card operating system talk to a terminal or a serial line, and
let reader logic be exercised, without any hardware.

## Modules

- `oseidsim.hexcodec`
  - `parse_hex(text)` is a lenient hex-to-bytes parser. Any non-hex
    character separates bytes, at most two digits make one byte, and parsing
    stops at the first CR or LF.
  - `format_apdu(data)` gives lower-case hex pairs separated by spaces, with
    a trailing newline.
  - `dump_block(data)`, `hex_print(message, data)` and
    `number_print(message, data)` return debug renderings as strings.
  - `debug_enabled(mask, environ)` tells whether a bit of `mask` is set in
    the `OsEID_DEBUG` environment variable.
- `oseidsim.memory`: `MemoryDevice(path)` keeps card memory in a file on
  disk, `card_mem` by default. It holds a 65280-byte data area, a 1 KiB
  security area and a 16-bit change counter. A missing file starts a blank
  device filled with 0xFF. Every change is written back at once. A block size
  of 0 means 256 bytes. Out-of-range blocks and file failures raise
  `MemoryDeviceError`; a bad block size raises `ValueError`.
- `oseidsim.flash`: `FlashDevice()` is an in-memory model of 64 KiB of flash
  and 1 KiB of EEPROM with the same methods as `MemoryDevice`. The change
  counter is kept in the EEPROM word at offset 1020. `format()` erases the
  flash page by page.
- `oseidsim.rnd`: `random_bytes(size)` returns bytes from `os.urandom`. A
  size of 0 means 256.
- `oseidsim.constants`: `ConstantTable(data)` parses id/size/payload records
  ended by `0xff`. `get(ident)` returns the payload, or `None` when the id is
  not in the table.
- `oseidsim.console`: `ConsoleCard(stdin, stdout)` is the card side of a
  line-based console protocol.
  - `reset()` prints the ATR.
  - `receive(limit)` returns APDU bytes from lines such as `> 00 a4 00 00`,
    and a PPS frame for `> 0` or `> 1`. `> D` is ignored. `> P`, `> R` and
    `reset` raise `CardReset`. `quit` or end of input raises `EOFError`.
  - `transmit(data)` writes `< ` followed by hex bytes. Right after a protocol
    switch it writes only the protocol number.
- `oseidsim.seriallink`: `SerialLink(stream)` writes commands and reads
  responses. A response is the hex text that follows a `<`, up to the end of
  the line. `open_port(device)` opens a serial port at 115200 baud, 8N1, with
  pyserial. `open_channel(0)` opens `/dev/pcscd-test0`. Failures raise
  `LinkError`.
- `oseidsim.apdu`: `classify_apdu(apdu)` returns an `ApduCase`. It gives the
  case (`"1"`, `"2S"`, `"3S"`, `"4S"`, `"2E"`, `"3E"`, `"4E"`), the 5-byte T0
  header, the expected response length and the command data. An APDU that
  cannot be carried over T0 raises `ApduError`.
- `oseidsim.ifd`: `IfdHandler(link)` is reader driver logic on top of a
  `SerialLink`. It provides `power(action)` with `PowerAction`, and ATR
  caching for `get_capabilities`. It also provides `set_protocol(0 or 1)`,
  `transmit(apdu, protocol, max_length)` for T0 and T1, and `presence()`,
  `control()` and `close()`. Failures raise `IfdError`, whose `code` says
  what went wrong.
- `oseidsim.ccid_params`
  - `ReaderParameters` holds the slot's protocol data.
  - `check_pps(frame)` checks a PPS request.
  - `validate_parameters(protocol, data, atr)` checks a SetParameters block.
    A refusal raises `ParameterError` with the CCID `slot_error` code.
- `oseidsim.ccid`: `CcidReader(send_response, start_null, restart_card)` is a
  one-slot CCID reader.
  - `parse_command(message)` returns the reply to a bulk-out message. While
    the card works on a transfer it returns `None`. An unfinished multi-packet
    message raises `IncompleteMessage`.
  - The card side uses `card_receive(limit)`, `card_transmit(data)` and
    `card_start_null()`. The finished response goes to `send_response`.

## Example

```python
import io

from oseidsim.ccid import CcidReader
from oseidsim.console import ConsoleCard
from oseidsim.constants import ConstantTable
from oseidsim.hexcodec import format_apdu, parse_hex
from oseidsim.memory import MemoryDevice

apdu = parse_hex("00 a4 00 00 02 3f 00")
print(format_apdu(apdu), end="")          # 00 a4 00 00 02 3f 00

memory = MemoryDevice("card_mem")
memory.write_block(0x100, b"\x01\x02\x03")
print(memory.read_block(0x100, 3), memory.change_counter())

table = ConstantTable(bytes([1, 2, 0xAA, 0xBB, 0xFF]))
print(table.get(1))                       # b'\xaa\xbb'

out = io.StringIO()
card = ConsoleCard(io.StringIO("> 00 a4 00 00\n"), out)
print(card.receive(261).hex())            # 00a40000
card.transmit(b"\x90\x00")
print(out.getvalue(), end="")             # < 90 00

reader = CcidReader()
atr_reply = reader.parse_command(bytes([0x62, 0, 0, 0, 0, 0, 1, 0, 0, 0]))
print(atr_reply[10:].hex())               # ATR after the 10-byte header
```

## What this package does not do

- It has no command-line program.
- It does not plug into a PC/SC daemon as a reader driver.
- It does not present itself as a USB device.
- It contains no card operating system. The console, memory and CCID pieces
  are meant to be driven by your own code.

The debug printers return strings and write nothing by themselves. Use
`debug_enabled` with a bit mask from the `OsEID_DEBUG` environment variable
to decide whether to print them.