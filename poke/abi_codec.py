"""ABI encode/decode helpers for the Solidity scalar types poke understands."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Sequence

from .transforms import address_bytes, keccak256, to_checksum_address

FUNC_SIG_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\((.*)\)$")


@dataclass(frozen=True)
class AbiType:
    kind: str
    bits: int | None = None
    size: int | None = None


@dataclass(frozen=True)
class AbiParam:
    name: str
    type: str
    indexed: bool = False


def _to_word(value: int) -> bytes:
    return value.to_bytes(32, "big", signed=False)


def _left_pad(data: bytes, size: int = 32) -> bytes:
    if len(data) > size:
        raise ValueError("value exceeds abi word size")
    return b"\x00" * (size - len(data)) + data


def _right_pad(data: bytes, size: int = 32) -> bytes:
    pad = (size - (len(data) % size)) % size
    return data + (b"\x00" * pad)


def parse_type(raw_type: str) -> AbiType:
    t = str(raw_type).strip()
    if not t:
        raise ValueError("type cannot be empty")
    if "[" in t or "]" in t or t.startswith("tuple"):
        raise ValueError(f"unsupported ABI type (arrays/tuples not supported): {raw_type}")

    if t == "address":
        return AbiType(kind="address")
    if t == "bool":
        return AbiType(kind="bool")
    if t == "string":
        return AbiType(kind="string")
    if t == "bytes":
        return AbiType(kind="bytes_dyn")

    m_bytes = re.fullmatch(r"bytes([0-9]{1,2})", t)
    if m_bytes:
        n = int(m_bytes.group(1), 10)
        if n < 1 or n > 32:
            raise ValueError(f"invalid fixed bytes size: {t}")
        return AbiType(kind="bytes_fixed", size=n)

    m_uint = re.fullmatch(r"uint([0-9]{0,3})", t)
    if m_uint:
        bits = int(m_uint.group(1) or "256", 10)
        if bits < 8 or bits > 256 or (bits % 8) != 0:
            raise ValueError(f"invalid uint bit size: {t}")
        return AbiType(kind="uint", bits=bits)

    m_int = re.fullmatch(r"int([0-9]{0,3})", t)
    if m_int:
        bits = int(m_int.group(1) or "256", 10)
        if bits < 8 or bits > 256 or (bits % 8) != 0:
            raise ValueError(f"invalid int bit size: {t}")
        return AbiType(kind="int", bits=bits)

    raise ValueError(f"unsupported ABI type: {raw_type}")


def is_dynamic(t: AbiType) -> bool:
    return t.kind in {"bytes_dyn", "string"}


def canonical_signature(name: str, types: Sequence[str]) -> str:
    return f"{name}({','.join(types)})"


def function_selector(signature: str) -> bytes:
    if not FUNC_SIG_RE.fullmatch(signature):
        raise ValueError("signature must look like functionName(type1,type2,...)")
    return keccak256(signature.encode("utf-8"))[:4]


def event_topic0(signature: str) -> str:
    return f"0x{keccak256(signature.encode('utf-8')).hex()}"


def encode_single(t: AbiType, value: Any) -> bytes:
    if t.kind == "address":
        if isinstance(value, bytes) and len(value) == 20:
            return _left_pad(value)
        if not isinstance(value, str):
            raise ValueError("address value must be a 20-byte hex string")
        return _left_pad(address_bytes(value))

    if t.kind == "bool":
        if not isinstance(value, bool):
            raise ValueError("bool value must be a boolean")
        return _to_word(1 if value else 0)

    if t.kind == "uint":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("uint value must be an integer")
        if value < 0:
            raise ValueError("uint cannot be negative")
        if value >= (1 << int(t.bits or 256)):
            raise ValueError(f"uint value exceeds declared bit width of {t.bits}")
        return _to_word(value)

    if t.kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("int value must be an integer")
        bits = int(t.bits or 256)
        min_v = -(1 << (bits - 1))
        max_v = (1 << (bits - 1)) - 1
        if value < min_v or value > max_v:
            raise ValueError(f"int value exceeds declared bit width of {bits}")
        if value < 0:
            value = (1 << bits) + value
        return _to_word(value)

    if t.kind == "bytes_fixed":
        if not isinstance(value, bytes) or len(value) != int(t.size or 0):
            raise ValueError(f"bytes{t.size} must be exactly {t.size} bytes")
        return value + (b"\x00" * (32 - len(value)))

    if t.kind == "bytes_dyn":
        if not isinstance(value, bytes):
            raise ValueError("bytes value must be bytes")
        return _to_word(len(value)) + _right_pad(value)

    if t.kind == "string":
        if not isinstance(value, str):
            raise ValueError("string value must be a string")
        raw = value.encode("utf-8")
        return _to_word(len(raw)) + _right_pad(raw)

    raise ValueError(f"unsupported type for encoding: {t.kind}")


def encode_abi(types: Sequence[str], values: Sequence[Any]) -> bytes:
    if len(types) != len(values):
        raise ValueError(f"expected {len(types)} values, got {len(values)}")

    parsed = [parse_type(t) for t in types]
    head_parts: list[bytes] = []
    tail_parts: list[bytes] = []
    head_size = 32 * len(parsed)

    for t, value in zip(parsed, values):
        encoded = encode_single(t, value)
        if is_dynamic(t):
            offset = head_size + sum(len(part) for part in tail_parts)
            head_parts.append(_to_word(offset))
            tail_parts.append(encoded)
        else:
            head_parts.append(encoded)

    return b"".join(head_parts + tail_parts)


def encode_call(signature: str, types: Sequence[str], values: Sequence[Any]) -> bytes:
    return function_selector(signature) + encode_abi(types, values)


def decode_static_word(t: AbiType, word: bytes) -> Any:
    if len(word) != 32:
        raise ValueError("abi word must be exactly 32 bytes")

    if t.kind == "address":
        return to_checksum_address(word[-20:])

    if t.kind == "bool":
        val = int.from_bytes(word, "big")
        if val not in {0, 1}:
            raise ValueError("invalid bool abi encoding")
        return bool(val)

    if t.kind == "uint":
        return int.from_bytes(word, "big")

    if t.kind == "int":
        bits = int(t.bits or 256)
        val = int.from_bytes(word, "big") & ((1 << bits) - 1)
        sign_bit = 1 << (bits - 1)
        if val & sign_bit:
            val = val - (1 << bits)
        return val

    if t.kind == "bytes_fixed":
        return word[: int(t.size or 0)]

    raise ValueError(f"unsupported static decode type: {t.kind}")


def _decode_dynamic(t: AbiType, data: bytes, offset: int) -> Any:
    if offset < 0 or (offset + 32) > len(data):
        raise ValueError("dynamic offset out of bounds")
    length = int.from_bytes(data[offset : offset + 32], "big")
    start = offset + 32
    end = start + length
    if end > len(data):
        raise ValueError("dynamic data out of bounds")

    raw = data[start:end]
    if t.kind == "bytes_dyn":
        return raw
    if t.kind == "string":
        return raw.decode("utf-8", errors="strict")
    raise ValueError(f"unsupported dynamic decode type: {t.kind}")


def decode_abi(types: Sequence[str], data: bytes) -> list[Any]:
    parsed = [parse_type(t) for t in types]
    head_size = 32 * len(parsed)
    if len(data) < head_size:
        raise ValueError(f"data shorter than ABI head ({len(data)} < {head_size} bytes)")

    decoded: list[Any] = []
    for idx, t in enumerate(parsed):
        head_word = data[idx * 32 : (idx + 1) * 32]
        if is_dynamic(t):
            offset = int.from_bytes(head_word, "big")
            decoded.append(_decode_dynamic(t, data, offset))
        else:
            decoded.append(decode_static_word(t, head_word))
    return decoded


def decode_log(
    *,
    name: str,
    params: Sequence[AbiParam],
    topics: Sequence[str],
    data: bytes,
    anonymous: bool = False,
) -> list[tuple[AbiParam, Any]]:
    """Decode one receipt log against an event definition.

    Indexed dynamic values only survive as their hash, so those fields
    come back as the raw 32-byte topic.
    """
    canonical = canonical_signature(name, [p.type for p in params])
    expected_topic0 = event_topic0(canonical)

    topic_cursor = 0
    if not anonymous:
        if not topics:
            raise ValueError("missing topic0 for non-anonymous event")
        if topics[0].lower() != expected_topic0:
            raise ValueError(f"topic0 does not match event signature {canonical}")
        topic_cursor = 1

    indexed_count = sum(1 for p in params if p.indexed)
    if len(topics) - topic_cursor < indexed_count:
        raise ValueError(f"insufficient indexed topics for event {canonical}")

    non_indexed_values = decode_abi([p.type for p in params if not p.indexed], data)
    non_idx_cursor = 0

    out: list[tuple[AbiParam, Any]] = []
    for param in params:
        if param.indexed:
            topic_word = bytes.fromhex(topics[topic_cursor][2:])
            topic_cursor += 1
            t = parse_type(param.type)
            if is_dynamic(t):
                out.append((param, topic_word))
            else:
                out.append((param, decode_static_word(t, _left_pad(topic_word))))
        else:
            out.append((param, non_indexed_values[non_idx_cursor]))
            non_idx_cursor += 1
    return out
