"""Named private keys addressable on the command line as ``@<name>``."""

from __future__ import annotations

import logging
import os
import re
from typing import Mapping

from eth_account import Account

from .error_map import ERR_INVALID_KEY, UsageError
from .transforms import strip_0x

logger = logging.getLogger(__name__)

ENV_PREFIX = "POKE_"
KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Development keys, available as @0 .. @9 unless POKE_0 .. POKE_9 override them.
DEFAULT_KEYS = (
    "f2f48ee19680706196e2e339e5da3491186e0c4c5030670656b0e0164837257d",
    "5d862464fe9303452126c8bc94274b8c5f9874cbd219789b3eb2128075a76f72",
    "df02719c4df8b9b8ac7f551fcb5d9ef48fa27eef7a66453879f4d8fdc6e78fb1",
    "ff12e391b79415e941a94de3bf3a9aee577aed0731e297d5cfa0b8a1e02fa1d0",
    "752dd9cf65e68cfaba7d60225cbdbc1f4729dd5e5507def72815ed0d8abc6249",
    "efb595a0178eb79a8df953f87c5148402a224cdf725e88c0146727c6aceadccd",
    "83c6d2cc5ddcf9711a6d59b417dc20eb48afd58d45290099e5987e3d768f328f",
    "bb2d3f7c9583780a7d3904a2f55d792707c345f21de1bacb2d389934d82796b2",
    "b2fd4d29c1390b71b8795ae81196bfd60293adf99f9d32a0aff06288fcdac55f",
    "23cb7121166b9a2f93ae0b7c05bde02eae50d64449b2cbb42bc84e9d38d6cc89",
)


def parse_private_key(raw: str) -> bytes:
    text = strip_0x(raw.strip())
    if not KEY_RE.fullmatch(text):
        raise ValueError("private key must be 32 bytes of hex")
    key = bytes.fromhex(text)
    if not 0 < int.from_bytes(key, "big") < SECP256K1_N:
        raise ValueError("private key is outside the secp256k1 range")
    return key


class KeyRing:
    """Key material by name, resolved from ``@name`` references."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        source = os.environ if env is None else env
        self._env = source
        self._addresses: dict[bytes, str] = {}

    def env_var(self, name: str) -> str:
        return f"{ENV_PREFIX}{name}"

    def lookup(self, name: str) -> str:
        value = str(self._env.get(self.env_var(name), "")).strip()
        if value:
            return value
        if name.isdigit() and int(name) < len(DEFAULT_KEYS):
            return DEFAULT_KEYS[int(name)]
        raise UsageError(
            f"To use a shorthand argument like '@{name}', there should be a non-empty "
            f"environment variable called {self.env_var(name)!r}",
            code=ERR_INVALID_KEY,
        )

    def resolve(self, text: str) -> bytes:
        """Return the key bytes for a literal hex key or an ``@name`` reference."""
        raw = text.strip()
        if raw.startswith("@"):
            name = raw[1:]
            try:
                return parse_private_key(self.lookup(name))
            except ValueError as err:
                raise UsageError(
                    f"Failed to parse private key from {raw!r}: {err}",
                    code=ERR_INVALID_KEY,
                    hint=f"(expanded using the env var {self.env_var(name)})",
                ) from err
        try:
            return parse_private_key(raw)
        except ValueError as err:
            raise UsageError(f"Failed to parse private key: {err}", code=ERR_INVALID_KEY) from err

    def address_of(self, key: bytes) -> str:
        cached = self._addresses.get(key)
        if cached is None:
            cached = Account.from_key(key).address
            self._addresses[key] = cached
            logger.debug("derived address %s", cached)
        return cached

    def resolve_address(self, text: str) -> str:
        return self.address_of(self.resolve(text))
