"""Legacy (EIP-155) transaction request and its RLP forms."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import rlp

from .transforms import address_bytes, keccak256, to_checksum_address


@dataclass(frozen=True)
class TransactionRequest:
    sender: str
    nonce: int
    gas_price: int
    gas: int
    to: str | None
    value: int
    data: bytes
    chain_id: int

    @property
    def is_deployment(self) -> bool:
        return self.to is None

    def to_account_dict(self) -> dict[str, Any]:
        tx: dict[str, Any] = {
            "nonce": self.nonce,
            "gasPrice": self.gas_price,
            "gas": self.gas,
            "value": self.value,
            "data": self.data,
            "chainId": self.chain_id,
        }
        if self.to is not None:
            tx["to"] = self.to
        return tx

    def _fields(self) -> list[Any]:
        to = address_bytes(self.to) if self.to is not None else b""
        return [self.nonce, self.gas_price, self.gas, to, self.value, self.data]

    def unsigned_rlp(self) -> bytes:
        return rlp.encode([*self._fields(), self.chain_id, 0, 0])

    def signed_rlp(self, v: int, r: int, s: int) -> bytes:
        return rlp.encode([*self._fields(), v, r, s])

    def eip155_v(self, v: int, *, truncated: bool = False) -> int:
        """Normalize a device-reported ``v`` to the full EIP-155 value.

        ``truncated`` devices report only the low byte of ``chain_id * 2 + 35 + parity``.
        """
        base = self.chain_id * 2 + 35
        if truncated:
            parity = (v - base) & 0xFF
            if parity > 1:
                raise ValueError(f"v byte {v} does not match chain id {self.chain_id}")
            return base + parity
        if v in (0, 1):
            return base + v
        if v in (27, 28):
            return base + v - 27
        return v


def contract_address(sender: str, nonce: int) -> str:
    digest = keccak256(rlp.encode([address_bytes(sender), nonce]))
    return to_checksum_address(digest[12:])
