"""Hashing, address and fixed-point helpers shared by the codec and the registry."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

HEX_QUANTITY_RE = re.compile(r"^0x[0-9a-fA-F]+$")

_MASK_64 = (1 << 64) - 1
_KECCAK_ROUNDS = 24
_KECCAK_RATE_BYTES = 136  # keccak-256 bitrate

_ROTATION_OFFSETS = [
    [0, 36, 3, 41, 18],
    [1, 44, 10, 45, 2],
    [62, 6, 43, 15, 61],
    [28, 55, 25, 21, 56],
    [27, 20, 39, 8, 14],
]

_ROUND_CONSTANTS = [
    0x0000000000000001,
    0x0000000000008082,
    0x800000000000808A,
    0x8000000080008000,
    0x000000000000808B,
    0x0000000080000001,
    0x8000000080008081,
    0x8000000000008009,
    0x000000000000008A,
    0x0000000000000088,
    0x0000000080008009,
    0x000000008000000A,
    0x000000008000808B,
    0x800000000000008B,
    0x8000000000008089,
    0x8000000000008003,
    0x8000000000008002,
    0x8000000000000080,
    0x000000000000800A,
    0x800000008000000A,
    0x8000000080008081,
    0x8000000000008080,
    0x0000000080000001,
    0x8000000080008008,
]


def _rotl64(value: int, shift: int) -> int:
    shift %= 64
    return ((value << shift) | (value >> (64 - shift))) & _MASK_64


def _keccak_f1600(state: list[int]) -> None:
    for round_idx in range(_KECCAK_ROUNDS):
        c = [state[x] ^ state[x + 5] ^ state[x + 10] ^ state[x + 15] ^ state[x + 20] for x in range(5)]
        d = [c[(x - 1) % 5] ^ _rotl64(c[(x + 1) % 5], 1) for x in range(5)]
        for x in range(5):
            for y in range(5):
                state[x + 5 * y] ^= d[x]

        b = [0] * 25
        for x in range(5):
            for y in range(5):
                b[y + 5 * ((2 * x + 3 * y) % 5)] = _rotl64(
                    state[x + 5 * y], _ROTATION_OFFSETS[x][y]
                )

        for x in range(5):
            for y in range(5):
                state[x + 5 * y] = (
                    b[x + 5 * y] ^ ((~b[(x + 1) % 5 + 5 * y]) & b[(x + 2) % 5 + 5 * y])
                ) & _MASK_64

        state[0] ^= _ROUND_CONSTANTS[round_idx]


def keccak256(data: bytes) -> bytes:
    state = [0] * 25
    padded = bytearray(data)
    padded.append(0x01)
    while (len(padded) % _KECCAK_RATE_BYTES) != (_KECCAK_RATE_BYTES - 1):
        padded.append(0)
    padded.append(0x80)

    for offset in range(0, len(padded), _KECCAK_RATE_BYTES):
        block = padded[offset : offset + _KECCAK_RATE_BYTES]
        for i in range(_KECCAK_RATE_BYTES // 8):
            lane = int.from_bytes(block[i * 8 : (i + 1) * 8], "little")
            state[i] ^= lane
        _keccak_f1600(state)

    output = bytearray()
    while len(output) < 32:
        for i in range(_KECCAK_RATE_BYTES // 8):
            output.extend(state[i].to_bytes(8, "little"))
        if len(output) >= 32:
            break
        _keccak_f1600(state)
    return bytes(output[:32])


ADDRESS_RE = re.compile(r"^(0x)?[0-9a-fA-F]{40}$")
ATTO_DECIMALS = 18
INT_MARKER = "int:"


def strip_0x(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def to_checksum_address(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        if len(raw) != 20:
            raise ValueError(f"address must be 20 bytes, got {len(raw)}")
        lowered = raw.hex()
    else:
        if not ADDRESS_RE.fullmatch(raw):
            raise ValueError(f"invalid address: {raw!r}")
        lowered = strip_0x(raw).lower()
    digest = keccak256(lowered.encode("ascii")).hex()
    out = "".join(
        ch.upper() if ch.isalpha() and int(digest[idx], 16) >= 8 else ch
        for idx, ch in enumerate(lowered)
    )
    return f"0x{out}"


def address_bytes(raw: str) -> bytes:
    if not ADDRESS_RE.fullmatch(raw):
        raise ValueError(f"invalid address: {raw!r}")
    return bytes.fromhex(strip_0x(raw))


def hex_to_bytes(value: str) -> bytes:
    data = strip_0x(value.strip())
    if len(data) % 2 != 0:
        raise ValueError("hex length must be even")
    return bytes.fromhex(data)


def parse_quantity(value: Any) -> int:
    """Parse a JSON-RPC quantity (``0x``-prefixed hex or a plain int)."""
    if isinstance(value, bool):
        raise ValueError("quantity cannot be boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and HEX_QUANTITY_RE.fullmatch(value.strip()):
        return int(value.strip(), 16)
    raise ValueError(f"invalid quantity: {value!r}")


def scale_decimal(text: str, decimals: int = ATTO_DECIMALS) -> int:
    """Scale a decimal string by ``10**decimals``, truncating toward zero.

    Text prefixed with ``int:`` is taken as a plain integer and not scaled.
    """
    raw = text.strip()
    if raw.startswith(INT_MARKER):
        raw = raw[len(INT_MARKER) :].strip()
        decimals = 0
    try:
        parsed = Decimal(raw)
    except InvalidOperation as err:
        raise ValueError(f"expected a decimal number, but got {text!r} instead") from err
    if not parsed.is_finite():
        raise ValueError(f"expected a decimal number, but got {text!r} instead")

    sign, digits, exponent = parsed.as_tuple()
    coefficient = int("".join(str(d) for d in digits) or "0")
    shift = int(exponent) + decimals
    if shift >= 0:
        magnitude = coefficient * (10**shift)
    else:
        magnitude = coefficient // (10**-shift)
    return -magnitude if sign else magnitude


def unscale_integer(value: int, decimals: int = ATTO_DECIMALS) -> str:
    whole, frac = divmod(abs(value), 10**decimals)
    sign = "-" if value < 0 else ""
    if frac == 0:
        return f"{sign}{whole}"
    frac_str = f"{frac:0{decimals}d}".rstrip("0")
    return f"{sign}{whole}.{frac_str}"
