import io

import pytest

from oseidsim.ifd import (
    COMMUNICATION_ERROR,
    INSUFFICIENT_BUFFER,
    NOT_SUPPORTED,
    POWER_ACTION_FAILED,
    PROTOCOL_NOT_SUPPORTED,
    RESPONSE_TIMEOUT,
    SCARD_ATTR_ATR_STRING,
    TAG_IFD_ATR,
    TAG_IFD_SLOTS_NUMBER,
    IfdError,
    IfdHandler,
    PowerAction,
)
from oseidsim.seriallink import SerialLink

ATR_REPLY = "< 3b:f5:18:00:02:80:01:4f:73:45:49:44:1a\n"
ATR = bytes.fromhex("3bf518000280014f7345494 41a".replace(" ", ""))


class FakeStream:
    def __init__(self, replies=""):
        self._input = io.BytesIO(replies.encode("ascii"))
        self.written = bytearray()
        self.closed = False

    def read(self, size=1):
        return self._input.read(size)

    def write(self, data):
        self.written += data
        return len(data)

    def close(self):
        self.closed = True


def make(replies=""):
    stream = FakeStream(replies)
    return IfdHandler(SerialLink(stream)), stream


def powered(replies=""):
    handler, stream = make(ATR_REPLY + replies)
    with pytest.raises(IfdError):
        handler.power(PowerAction.POWER_UP)
    handler.power(PowerAction.POWER_UP)
    del stream.written[:]
    return handler, stream


def test_first_power_up_gives_no_atr():
    handler, stream = make(ATR_REPLY)
    with pytest.raises(IfdError) as info:
        handler.power(PowerAction.POWER_UP)
    assert info.value.code == POWER_ACTION_FAILED
    assert stream.written == b""


def test_second_power_up_reads_atr_and_caches_it():
    handler, stream = make(ATR_REPLY)
    with pytest.raises(IfdError):
        handler.power(PowerAction.POWER_UP)
    atr = handler.power(PowerAction.POWER_UP)
    assert atr == ATR
    assert stream.written == b"> P\n"
    assert handler.get_capabilities(TAG_IFD_ATR, 33) == atr
    assert handler.get_capabilities(SCARD_ATTR_ATR_STRING, 40) == atr


def test_reset_writes_r_and_short_atr_fails():
    handler, stream = make("< 3b\n")
    with pytest.raises(IfdError) as info:
        handler.power(PowerAction.RESET)
    assert info.value.code == COMMUNICATION_ERROR
    assert stream.written == b"> R\n"


def test_atr_timeout():
    handler, _ = make("")
    with pytest.raises(IfdError) as info:
        handler.power(PowerAction.RESET)
    assert info.value.code == POWER_ACTION_FAILED


def test_power_down_and_unknown_action():
    handler, stream = make()
    assert handler.power(PowerAction.POWER_DOWN) == b""
    assert stream.written == b"> D\n"
    with pytest.raises(IfdError) as info:
        handler.power(7)
    assert info.value.code == NOT_SUPPORTED


def test_capabilities_without_atr_and_small_buffer():
    handler, _ = make()
    assert handler.get_capabilities(TAG_IFD_ATR, 50) == bytes(33)
    handler, _ = powered()
    with pytest.raises(IfdError) as info:
        handler.get_capabilities(TAG_IFD_ATR, 5)
    assert info.value.code == INSUFFICIENT_BUFFER


def test_single_value_tags_and_unknown_tag():
    handler, _ = make()
    assert handler.get_capabilities(TAG_IFD_SLOTS_NUMBER, 4) == b"\x00"
    with pytest.raises(IfdError) as info:
        handler.get_capabilities(TAG_IFD_SLOTS_NUMBER, 0)
    assert info.value.code == INSUFFICIENT_BUFFER
    with pytest.raises(IfdError):
        handler.get_capabilities(0x1234, 4)


def test_set_protocol_confirmed_and_refused():
    handler, stream = make("< 01\n< 00\n")
    handler.set_protocol(1)
    assert stream.written == b"> 1\n"
    with pytest.raises(IfdError) as info:
        handler.set_protocol(1)
    assert info.value.code == PROTOCOL_NOT_SUPPORTED


def test_transmit_t1_sends_whole_apdu():
    handler, stream = make("< 01\n< 6f 17 90 00\n")
    handler.set_protocol(1)
    response = handler.transmit(bytes([0x00, 0xA4, 0x00, 0x00]), 1, 300)
    assert response == bytes([0x6F, 0x17, 0x90, 0x00])
    assert stream.written.endswith(b"> 00 a4 00 00\n")


def test_transmit_protocol_checks():
    handler, _ = make()
    with pytest.raises(IfdError) as info:
        handler.transmit(bytes([0x00, 0xA4, 0x00, 0x00]), 2, 300)
    assert info.value.code == PROTOCOL_NOT_SUPPORTED
    with pytest.raises(IfdError) as info:
        handler.transmit(bytes([0x00, 0xA4, 0x00, 0x00]), 1, 300)
    assert info.value.code == COMMUNICATION_ERROR
    with pytest.raises(IfdError):
        handler.transmit(bytes([0x00, 0xA4]), 0, 300)


def test_t0_case_2_with_separate_data():
    handler, stream = powered("< c0\n< 6f 17\n< 90 00\n")
    response = handler.transmit(bytes([0x00, 0xC0, 0x00, 0x00, 0x02]), 0, 300)
    assert response == bytes([0x6F, 0x17, 0x90, 0x00])
    assert stream.written == b"> 00 c0 00 00 02\n"


def test_t0_case_3_sends_rest_after_procedure_byte():
    handler, stream = powered("< a4\n< 61 19\n")
    apdu = bytes([0x00, 0xA4, 0x00, 0x00, 0x02, 0x3F, 0x00])
    assert handler.transmit(apdu, 0, 300) == bytes([0x61, 0x19])
    assert stream.written == b"> 00 a4 00 00 02\n> 3f 00\n"


def test_t0_single_frame_with_null_byte():
    handler, _ = powered("< 60\n< c0 6f 17 90 00\n")
    response = handler.transmit(bytes([0x00, 0xC0, 0x00, 0x00, 0x02]), 0, 300)
    assert response == bytes([0x6F, 0x17, 0x90, 0x00])


def test_t0_wrong_procedure_byte_and_timeout():
    handler, _ = powered("< b0\n")
    with pytest.raises(IfdError) as info:
        handler.transmit(bytes([0x00, 0xC0, 0x00, 0x00, 0x02]), 0, 300)
    assert info.value.code == COMMUNICATION_ERROR
    handler, _ = powered("")
    with pytest.raises(IfdError) as info:
        handler.transmit(bytes([0x00, 0xC0, 0x00, 0x00, 0x02]), 0, 300)
    assert info.value.code == RESPONSE_TIMEOUT


def test_t0_forbidden_instruction():
    handler, _ = powered()
    with pytest.raises(IfdError) as info:
        handler.transmit(bytes([0x00, 0x61, 0x00, 0x00]), 0, 300)
    assert info.value.code == COMMUNICATION_ERROR


def test_control_presence_and_close():
    handler, stream = make()
    assert handler.control(1, b"\x01") == b""
    assert handler.presence() is True
    handler.close()
    assert stream.closed is True
    with pytest.raises(IfdError):
        handler.close()