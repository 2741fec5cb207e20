"""CB58 identifiers used for VM, subnet, chain and node ids.

CB58 is base58 (Bitcoin alphabet) over the payload followed by the last four
bytes of its SHA-256 digest.
"""

from __future__ import annotations

import hashlib

ID_LEN = 32
CHECKSUM_LEN = 4

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_ALPHABET_INDEX = {char: index for index, char in enumerate(_ALPHABET)}


class InvalidIdError(ValueError):
    """Raised when a string is not a valid CB58 id."""

    pass


def _b58encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    encoded = ""
    while number:
        number, remainder = divmod(number, 58)
        encoded = _ALPHABET[remainder] + encoded
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return _ALPHABET[0] * leading_zeros + encoded


def _b58decode(value: str) -> bytes:
    number = 0
    for char in value:
        try:
            number = number * 58 + _ALPHABET_INDEX[char]
        except KeyError:
            raise InvalidIdError(f"invalid base58 character {char!r}") from None
    leading_zeros = len(value) - len(value.lstrip(_ALPHABET[0]))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading_zeros + body


def _checksum(payload: bytes) -> bytes:
    return hashlib.sha256(payload).digest()[-CHECKSUM_LEN:]


def cb58_encode(payload: bytes) -> str:
    return _b58encode(payload + _checksum(payload))


def cb58_decode(value: str) -> bytes:
    raw = _b58decode(value)
    if len(raw) < CHECKSUM_LEN:
        raise InvalidIdError(f"id {value!r} is too short")
    payload, checksum = raw[:-CHECKSUM_LEN], raw[-CHECKSUM_LEN:]
    if _checksum(payload) != checksum:
        raise InvalidIdError(f"id {value!r} has an invalid checksum")
    return payload


def parse_id(value: str) -> str:
    """Validate a 32-byte CB58 id and return it unchanged."""
    payload = cb58_decode(value.strip())
    if len(payload) != ID_LEN:
        raise InvalidIdError(f"id {value!r} decodes to {len(payload)} bytes, expected {ID_LEN}")
    return value.strip()


def vm_name_to_id(name: str) -> str:
    """Derive a VM id from a chain name by right-padding its bytes to 32."""
    raw = name.encode("utf-8")
    if not raw:
        raise InvalidIdError("vm name must not be empty")
    if len(raw) > ID_LEN:
        raise InvalidIdError(f"vm name {name!r} is longer than {ID_LEN} bytes")
    return cb58_encode(raw.ljust(ID_LEN, b"\x00"))
