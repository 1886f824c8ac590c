import pytest

from xvfs.printf import format_int, sprintf


def test_decimal_negative():
    assert sprintf("%d", -42) == "-42"


def test_decimal_positive():
    assert sprintf("n=%d!", 123) == "n=123!"


def test_hex_uppercase():
    assert sprintf("%x", 255) == "FF"


def test_pointer_same_as_hex():
    assert sprintf("%p", 4096) == sprintf("%x", 4096)


def test_unsigned_negative_wraps():
    assert format_int(-1, 16, False) == "FFFFFFFF"


def test_signed_minimum():
    assert format_int(-2147483648, 10, True) == "-2147483648"


@pytest.mark.parametrize("n", [0, 1, 9, 10, 4095, 65536, 2**31 - 1])
def test_hex_round_trip(n):
    assert int(format_int(n, 16, False), 16) == n


@pytest.mark.parametrize("n", [-2**31, -7, 0, 7, 2**31 - 1])
def test_decimal_round_trip(n):
    assert int(format_int(n, 10, True)) == n


def test_string_and_null():
    assert sprintf("%s and %s", "ls", None) == "ls and (null)"


def test_char():
    assert sprintf("%c%c", ord("o"), "k") == "ok"


def test_percent_and_unknown():
    assert sprintf("100%% %q") == "100% %q"


def test_trailing_percent_dropped():
    assert sprintf("abc%") == "abc"


def test_missing_argument():
    with pytest.raises(TypeError):
        sprintf("%d %d", 1)


def test_bad_base():
    with pytest.raises(ValueError):
        format_int(5, 1, False)