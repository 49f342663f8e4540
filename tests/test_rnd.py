from unittest.mock import patch

import pytest

from oseidsim.rnd import random_bytes


@pytest.mark.parametrize("size", [1, 16, 255, 256])
def test_length(size):
    assert len(random_bytes(size)) == size


def test_zero_means_256():
    assert len(random_bytes(0)) == 256


@pytest.mark.parametrize("size", [-1, 257, 1000])
def test_invalid_size(size):
    with pytest.raises(ValueError):
        random_bytes(size)


def test_uses_system_source():
    with patch("os.urandom", side_effect=lambda n: b"\x5a" * n) as source:
        result = random_bytes(4)
    assert result == b"\x5a\x5a\x5a\x5a"
    source.assert_called_once_with(4)


def test_outputs_vary():
    first = random_bytes(32)
    second = random_bytes(32)
    assert len(first) == len(second) == 32
    assert first != second