import pytest

from oseidsim.apdu import ApduCase, ApduError, classify_apdu


def test_case_1_pads_header():
    result = classify_apdu(b"\x00\xa4\x00\x00")
    assert result == ApduCase("1", b"\x00\xa4\x00\x00\x00", 0, b"")


def test_case_2s_with_le():
    apdu = bytes([0x00, 0xC0, 0x00, 0x00, 0x19])
    result = classify_apdu(apdu)
    assert result.kind == "2S"
    assert result.header == apdu
    assert result.expected == apdu[4]
    assert result.data == b""


def test_case_2s_with_zero_le_expects_256():
    result = classify_apdu(b"\x00\xc0\x00\x00\x00")
    assert result.kind == "2S"
    assert result.expected == 256


def test_case_3s_carries_data():
    apdu = bytes([0x00, 0xA4, 0x00, 0x00, 0x02, 0x3F, 0x00])
    result = classify_apdu(apdu)
    assert result.kind == "3S"
    assert result.header == apdu[:5]
    assert result.data == apdu[5:]
    assert result.expected == 0


def test_case_4s_drops_le():
    apdu = bytes([0x00, 0xA4, 0x00, 0x00, 0x02, 0x3F, 0x00, 0xFF])
    result = classify_apdu(apdu)
    assert result.kind == "4S"
    assert result.data == apdu[5:7]
    assert result.expected == 0


def test_case_2e_small_le():
    apdu = bytes([0x00, 0xB0, 0x00, 0x00, 0x00, 0x00, 0x10])
    result = classify_apdu(apdu)
    assert result.kind == "2E"
    assert result.expected == apdu[6]


def test_case_2e_large_le_clamped():
    apdu = bytes([0x00, 0xB0, 0x00, 0x00, 0x00, 0x01, 0x00])
    assert classify_apdu(apdu).expected == 256


def test_case_3e_short_body():
    body = bytes(range(3))
    apdu = bytes([0x00, 0xD6, 0x00, 0x00, 0x00, 0x00, len(body)]) + body
    result = classify_apdu(apdu)
    assert result.kind == "3E"
    assert len(result.data) == len(body)
    assert result.data == apdu[5 : 5 + len(body)]


def test_case_4e_large_le_clamped():
    body = b"\x01\x02"
    apdu = bytes([0x00, 0x88, 0x00, 0x00, 0x00, 0x00, 2]) + body + b"\x10\x00"
    result = classify_apdu(apdu)
    assert result.kind == "4E"
    assert result.expected == 256
    assert len(result.data) == len(body)


def test_case_4e_small_le():
    body = b"\x01\x02"
    apdu = bytes([0x00, 0x88, 0x00, 0x00, 0x00, 0x00, 2]) + body + b"\x00\x20"
    assert classify_apdu(apdu).expected == apdu[-1]


@pytest.mark.parametrize(
    "apdu",
    [
        b"\x00\xa4\x00",
        b"\x00\x61\x00\x00",
        b"\x00\x90\x00\x00",
        b"\x00\xa4\x00\x00\x02\x3f",
        b"\x00\xa4\x00\x00\x00\x01",
        b"\x00\xa4\x00\x00\x00\x00\x05\x01",
        bytes(267),
    ],
)
def test_rejected_apdus(apdu):
    with pytest.raises(ApduError):
        classify_apdu(apdu)


def test_case_3e_with_long_body_rejected():
    body = bytes(256)
    apdu = bytes([0x00, 0xD6, 0x00, 0x00, 0x00, 0x01, 0x00]) + body
    with pytest.raises(ApduError):
        classify_apdu(apdu)


def test_header_is_always_five_bytes():
    for apdu in (b"\x00\xa4\x00\x00", b"\x00\xc0\x00\x00\x05", b"\x00\xa4\x00\x00\x01\x3f"):
        assert len(classify_apdu(apdu).header) == 5