"""Bech32 encoding of public keys into human-readable addresses."""

from __future__ import annotations

from collections.abc import Iterable

from tokenvm.errors import AddressError

PUBLIC_KEY_LEN = 32

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_INDEX = {c: i for i, c in enumerate(_CHARSET)}
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_CHECKSUM_LEN = 6
_MAX_LEN = 90


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for bit, gen in enumerate(_GENERATORS):
            if (top >> bit) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _checksum(hrp: str, data: list[int]) -> list[int]:
    polymod = _polymod(_hrp_expand(hrp) + data + [0] * _CHECKSUM_LEN) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(_CHECKSUM_LEN)]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int) -> list[int]:
    """Regroup bit groups, padding the final group with zeros."""
    acc = 0
    bits = 0
    out: list[int] = []
    mask = (1 << to_bits) - 1
    for value in data:
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & mask)
    if bits:
        out.append((acc << (to_bits - bits)) & mask)
    return out


def _encode(hrp: str, payload: bytes) -> str:
    data = _convert_bits(payload, 8, 5)
    combined = data + _checksum(hrp, data)
    return hrp + "1" + "".join(_CHARSET[d] for d in combined)


def _decode(text: str) -> tuple[str, bytes]:
    if len(text) < 8 or len(text) > _MAX_LEN:
        raise AddressError(f"invalid bech32 string length {len(text)}")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise AddressError("invalid character in string")
    lower = text.lower()
    if text != lower and text != text.upper():
        raise AddressError("string not all lowercase or all uppercase")
    sep = lower.rfind("1")
    if sep < 1 or sep + _CHECKSUM_LEN + 1 > len(lower):
        raise AddressError("invalid separator index")
    hrp = lower[:sep]
    try:
        data = [_CHARSET_INDEX[c] for c in lower[sep + 1 :]]
    except KeyError as exc:
        raise AddressError(f"invalid character not part of charset: {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise AddressError("invalid checksum")
    return hrp, bytes(_convert_bits(data[:-_CHECKSUM_LEN], 5, 8))


class AddressCodec:
    """Formats public keys as bech32 addresses under one human-readable part."""

    def __init__(self, hrp: str) -> None:
        if not hrp:
            raise AddressError("empty human-readable part")
        self.hrp = hrp

    def address(self, public_key: bytes) -> str:
        """Return the address of a 32-byte public key."""
        if len(public_key) != PUBLIC_KEY_LEN:
            raise AddressError(f"public key must be {PUBLIC_KEY_LEN} bytes")
        return _encode(self.hrp, bytes(public_key))

    def parse_address(self, text: str) -> bytes:
        """Return the public key held by an address."""
        hrp, payload = _decode(text)
        if hrp != self.hrp:
            raise AddressError("incorrect hrp")
        # Padding to whole bytes can leave one extra byte past the key.
        if len(payload) < PUBLIC_KEY_LEN:
            raise AddressError("invalid public key")
        return payload[:PUBLIC_KEY_LEN]