"""Conversions between command-line text and typed protocol values.

Every protocol type that can appear in a loaded interface maps to exactly
one converter. ``TypeRegistry.check`` is called while an interface is
normalized, so a contract using a type poke cannot convert is rejected
before any command runs.

Numbers use an 18-decimal fixed-point convention: ``1.5`` is sent as
``1500000000000000000``. Prefix the text with ``int:`` to send it as-is.
"""

from __future__ import annotations

import re
from typing import Any

from .error_map import ERR_INVALID_ARGUMENT, ERR_UNSUPPORTED_TYPE, ToolingError, UsageError
from .keyring import KeyRing
from .transforms import ADDRESS_RE, scale_decimal, to_checksum_address, unscale_integer

UINT_RE = re.compile(r"^uint([0-9]{0,3})$")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
_TRUE = {"1", "t", "true"}
_FALSE = {"0", "f", "false"}


class Converter:
    type_name = ""

    def parse(self, text: str) -> Any:
        raise NotImplementedError

    def format(self, value: Any) -> str:
        raise NotImplementedError

    def zero_value(self) -> Any:
        raise NotImplementedError


class AddressConverter(Converter):
    type_name = "address"

    def __init__(self, keys: KeyRing) -> None:
        self._keys = keys

    def parse(self, text: str) -> str:
        raw = text.strip()
        if raw.startswith("@"):
            return self._keys.resolve_address(raw)
        if not ADDRESS_RE.fullmatch(raw):
            raise ValueError("expected a 20-byte hex address or an @<key> reference")
        return to_checksum_address(raw)

    def format(self, value: Any) -> str:
        return to_checksum_address(value)

    def zero_value(self) -> str:
        return ZERO_ADDRESS


class UintConverter(Converter):
    def __init__(self, bits: int = 256) -> None:
        self.bits = bits
        self.type_name = f"uint{bits}"

    def parse(self, text: str) -> int:
        value = scale_decimal(text)
        if value < 0:
            raise ValueError("unsigned integer cannot be negative")
        if value >= (1 << self.bits):
            raise ValueError(f"value does not fit in {self.bits} bits")
        return value

    def format(self, value: Any) -> str:
        return unscale_integer(int(value))

    def zero_value(self) -> int:
        return 0


class BoolConverter(Converter):
    type_name = "bool"

    def parse(self, text: str) -> bool:
        normalized = text.strip().lower()
        if normalized in _TRUE:
            return True
        if normalized in _FALSE:
            return False
        raise ValueError("expected true or false")

    def format(self, value: Any) -> str:
        return "true" if value else "false"

    def zero_value(self) -> bool:
        return False


class StringConverter(Converter):
    type_name = "string"

    def parse(self, text: str) -> str:
        return text

    def format(self, value: Any) -> str:
        return str(value)

    def zero_value(self) -> str:
        return ""


class TypeRegistry:
    def __init__(self, keys: KeyRing) -> None:
        self._fixed: dict[str, Converter] = {
            "address": AddressConverter(keys),
            "bool": BoolConverter(),
            "string": StringConverter(),
        }
        self._uints: dict[int, UintConverter] = {}

    def converter(self, type_name: str) -> Converter:
        fixed = self._fixed.get(type_name)
        if fixed is not None:
            return fixed
        m = UINT_RE.fullmatch(type_name)
        if m:
            bits = int(m.group(1) or "256", 10)
            if 8 <= bits <= 256 and bits % 8 == 0:
                if bits not in self._uints:
                    self._uints[bits] = UintConverter(bits)
                return self._uints[bits]
        raise ToolingError(
            f"unsupported protocol type {type_name!r}",
            code=ERR_UNSUPPORTED_TYPE,
            hint="supported types are address, bool, string and uint8..uint256",
        )

    def check(self, type_name: str) -> None:
        self.converter(type_name)

    def supports(self, type_name: str) -> bool:
        try:
            self.converter(type_name)
        except ToolingError:
            return False
        return True

    def parse(self, type_name: str, text: str) -> Any:
        converter = self.converter(type_name)
        try:
            return converter.parse(text)
        except ValueError as err:
            raise UsageError(
                f"failed to parse {text!r} as {type_name}: {err}",
                code=ERR_INVALID_ARGUMENT,
            ) from err

    def parse_all(self, type_names: list[str], texts: list[str]) -> list[Any]:
        return [self.parse(t, text) for t, text in zip(type_names, texts)]

    def format(self, type_name: str, value: Any) -> str:
        return self.converter(type_name).format(value)

    def zero_value(self, type_name: str) -> Any:
        return self.converter(type_name).zero_value()
