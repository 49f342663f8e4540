import pytest

from oseidsim.constants import ConstantTable

TABLE = bytes([1, 2, 0xAA, 0xBB, 5, 1, 0x10, 7, 0, 0xFF])


def test_lookup():
    table = ConstantTable(TABLE)
    assert table.get(1) == b"\xaa\xbb"
    assert table.get(5) == b"\x10"


def test_empty_payload():
    assert ConstantTable(TABLE).get(7) == b""


def test_missing():
    table = ConstantTable(TABLE)
    assert table.get(9) is None
    assert table.get(0xFF) is None
    assert 9 not in table
    assert len(table) == 3


def test_first_record_wins():
    table = ConstantTable(bytes([3, 1, 0x01, 3, 1, 0x02, 0xFF]))
    assert table.get(3) == b"\x01"


def test_data_after_terminator_ignored():
    table = ConstantTable(bytes([0xFF, 4, 1, 0x99]))
    assert table.get(4) is None
    assert len(table) == 0


def test_missing_terminator_accepted():
    assert ConstantTable(bytes([2, 1, 0x33])).get(2) == b"\x33"


@pytest.mark.parametrize("data", [bytes([1]), bytes([1, 3, 0x00]), bytes([1, 2, 0, 0, 2])])
def test_truncated(data):
    with pytest.raises(ValueError):
        ConstantTable(data)