import pytest

from tokenvm.encoding import (
    HRP,
    ID_LEN,
    PUBLIC_KEY_LEN,
    address,
    id_from_string,
    id_to_string,
    parse_address,
)
from tokenvm.errors import InvalidAddressError

EMPTY_ID = bytes(ID_LEN)
SAMPLE_KEY = bytes(range(PUBLIC_KEY_LEN))


def test_empty_id_string():
    assert id_to_string(EMPTY_ID) == "11111111111111111111111111111111LpoYY"


@pytest.mark.parametrize("raw", [EMPTY_ID, SAMPLE_KEY, bytes([0xFF]) * ID_LEN, b"\x00\x01" * 16])
def test_id_round_trip(raw):
    assert id_from_string(id_to_string(raw)) == raw


def test_id_bad_checksum():
    text = id_to_string(SAMPLE_KEY)
    tampered = text[:-1] + ("2" if text[-1] != "2" else "3")
    with pytest.raises(ValueError):
        id_from_string(tampered)


def test_id_invalid_character():
    with pytest.raises(ValueError):
        id_from_string("0OIl")


def test_id_wrong_length():
    with pytest.raises(ValueError):
        id_to_string(b"\x01\x02")


@pytest.mark.parametrize("key", [bytes(PUBLIC_KEY_LEN), SAMPLE_KEY, bytes([0xAB]) * PUBLIC_KEY_LEN])
def test_address_round_trip(key):
    text = address(key)
    assert text.startswith(HRP + "1")
    assert parse_address(text) == key


def test_address_custom_hrp():
    text = address(SAMPLE_KEY, "other")
    assert text.startswith("other1")
    assert parse_address(text, "other") == SAMPLE_KEY


def test_parse_wrong_hrp():
    text = address(SAMPLE_KEY, "other")
    with pytest.raises(InvalidAddressError):
        parse_address(text, HRP)


def test_parse_uppercase_accepted():
    text = address(SAMPLE_KEY)
    assert parse_address(text.upper()) == SAMPLE_KEY


def test_parse_mixed_case_rejected():
    text = address(SAMPLE_KEY)
    mixed = text[:-1] + text[-1].upper()
    if mixed == text:
        mixed = text.upper()[:-1] + text[-1]
    with pytest.raises(InvalidAddressError):
        parse_address(mixed)


def test_parse_bad_checksum():
    text = address(SAMPLE_KEY)
    last = "q" if text[-1] != "q" else "p"
    with pytest.raises(InvalidAddressError):
        parse_address(text[:-1] + last)


def test_parse_garbage():
    with pytest.raises(InvalidAddressError):
        parse_address("not-an-address")


def test_address_wrong_key_length():
    with pytest.raises(ValueError):
        address(b"\x01" * 5)