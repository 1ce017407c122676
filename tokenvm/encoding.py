"""Address (bech32) and identifier (CB58) text encodings."""

from __future__ import annotations

import hashlib

from tokenvm.errors import InvalidAddressError

HRP = "token"
ID_LEN = 32
PUBLIC_KEY_LEN = 32

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LEN = 90
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_CHECKSUM_LEN = 4


def _polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATORS):
            if (top >> bit) & 1:
                chk ^= generator
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    max_value = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise InvalidAddressError("invalid data range")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (acc << (to_bits - bits)) & max_value:
        raise InvalidAddressError("invalid padding")
    return out


def _bech32_encode(hrp: str, payload: bytes) -> str:
    data = _convert_bits(payload, 8, 5, True)
    values = _hrp_expand(hrp) + data
    mod = _polymod(values + [0] * 6) ^ 1
    checksum = [(mod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in data + checksum)


def _bech32_decode(text: str) -> tuple[str, bytes]:
    if len(text) > _BECH32_MAX_LEN:
        raise InvalidAddressError("address too long")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise InvalidAddressError("invalid character in address")
    if text.lower() != text and text.upper() != text:
        raise InvalidAddressError("mixed case address")
    text = text.lower()
    sep = text.rfind("1")
    if sep < 1 or sep + 7 > len(text):
        raise InvalidAddressError("invalid separator position")
    hrp = text[:sep]
    try:
        data = [_BECH32_CHARSET.index(c) for c in text[sep + 1:]]
    except ValueError:
        raise InvalidAddressError("invalid character in address") from None
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise InvalidAddressError("invalid checksum")
    return hrp, bytes(_convert_bits(data[:-6], 5, 8, False))


def address(public_key: bytes, hrp: str = HRP) -> str:
    """Format a public key as a bech32 address with the given prefix."""
    public_key = bytes(public_key)
    if len(public_key) != PUBLIC_KEY_LEN:
        raise ValueError(f"public key must be {PUBLIC_KEY_LEN} bytes")
    return _bech32_encode(hrp, public_key)


def parse_address(text: str, hrp: str = HRP) -> bytes:
    """Decode a bech32 address into its public key, checking the prefix."""
    found_hrp, payload = _bech32_decode(text)
    if found_hrp != hrp:
        raise InvalidAddressError(f"expected hrp {hrp!r} but found {found_hrp!r}")
    if len(payload) != PUBLIC_KEY_LEN:
        raise InvalidAddressError("incorrect public key length")
    return payload


def _b58encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits: list[str] = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    leading = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading + "".join(reversed(digits))


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        index = _BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"invalid base58 character {char!r}")
        number = number * 58 + index
    leading = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading + body


def id_to_string(raw_id: bytes) -> str:
    """Render a 32-byte identifier as CB58 text."""
    raw_id = bytes(raw_id)
    if len(raw_id) != ID_LEN:
        raise ValueError(f"identifier must be {ID_LEN} bytes")
    checksum = hashlib.sha256(raw_id).digest()[-_CHECKSUM_LEN:]
    return _b58encode(raw_id + checksum)


def id_from_string(text: str) -> bytes:
    """Parse CB58 text into a 32-byte identifier, verifying its checksum."""
    decoded = _b58decode(text)
    if len(decoded) < _CHECKSUM_LEN:
        raise ValueError("input string is smaller than the checksum size")
    raw, checksum = decoded[:-_CHECKSUM_LEN], decoded[-_CHECKSUM_LEN:]
    if hashlib.sha256(raw).digest()[-_CHECKSUM_LEN:] != checksum:
        raise ValueError("invalid input checksum")
    if len(raw) != ID_LEN:
        raise ValueError(f"identifier must be {ID_LEN} bytes")
    return raw