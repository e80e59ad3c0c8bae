"""Run synthesized commands against the node: calls, transactions, utilities."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .abi_codec import decode_abi, decode_log, encode_abi, encode_call
from .error_map import (
    ERR_ABI_DECODE_FAILED,
    ERR_ABI_ENCODE_FAILED,
    ERR_INVALID_ARGUMENT,
    ERR_MISSING_ADDRESS,
    ERR_RPC_REMOTE,
    ERR_TX_REVERTED,
    RemoteError,
    ToolingError,
    UsageError,
)
from .interface import InterfaceDescription, MethodSpec
from .rpc_transport import DEFAULT_POLL_INTERVAL, NodeClient
from .signing import Signer
from .transaction import TransactionRequest, contract_address
from .transforms import parse_quantity, scale_decimal
from .type_registry import TypeRegistry

logger = logging.getLogger(__name__)

GWEI_DECIMALS = 9
TRANSFER_GAS = 21000


class Dispatcher:
    def __init__(
        self,
        *,
        description: InterfaceDescription,
        registry: TypeRegistry,
        node: NodeClient,
        signer: Callable[[], Signer],
        contract_address: str | None = None,
        gas_price: str | None = None,
        out: Callable[[str], None] = print,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.description = description
        self.registry = registry
        self.node = node
        self._signer = signer
        self.contract_address = contract_address or None
        self.gas_price_gwei = gas_price or None
        self.out = out
        self.poll_interval = poll_interval

    def _deployment(self) -> str:
        if not self.contract_address:
            raise UsageError(
                "No address specified for the contract.",
                code=ERR_MISSING_ADDRESS,
                hint="To specify an address, set the --address flag or the POKE_ADDRESS environment variable.",
            )
        return self.registry.parse("address", self.contract_address)

    def _encode(self, signature: str, types: list[str], values: list[Any]) -> bytes:
        try:
            return encode_call(signature, types, values)
        except ValueError as err:
            raise UsageError(f"encoding arguments for {signature}: {err}", code=ERR_ABI_ENCODE_FAILED) from err

    def call(self, method: MethodSpec, args: list[str]) -> None:
        types = [p.type for p in method.inputs]
        values = self.registry.parse_all(types, args)
        if len(method.outputs) > 1:
            raise UsageError(
                f"{method.name} returns {len(method.outputs)} values; multiple return values are not supported",
                code=ERR_INVALID_ARGUMENT,
            )
        address = self._deployment()
        data = self._encode(method.signature, types, values)
        raw = self.node.call(to=address, data=data)
        if not method.outputs:
            return

        out_type = method.outputs[0].type
        result = self.registry.zero_value(out_type)
        if raw:
            try:
                result = decode_abi([out_type], raw)[0]
            except ValueError as err:
                raise ToolingError(
                    f"calling {method.name}: decoding {out_type} result: {err}",
                    code=ERR_ABI_DECODE_FAILED,
                ) from err
        elif not self.node.code(address):
            raise RemoteError(
                f"calling {method.name}: no contract code at given address",
                code=ERR_RPC_REMOTE,
                hint=f"is {address} a deployed copy of {self.description.name}?",
            )
        self.out(self.registry.format(out_type, result))

    def transact(self, method: MethodSpec, args: list[str]) -> None:
        types = [p.type for p in method.inputs]
        values = self.registry.parse_all(types, args)
        address = self._deployment()
        data = self._encode(method.signature, types, values)
        label = f"{method.name}()"
        tx = self._build_transaction(to=address, data=data, label=label)
        tx_hash = self._submit(tx, label=label)
        self._report(tx_hash, label=label)

    def deploy(self, args: list[str]) -> None:
        types = [p.type for p in self.description.constructor_inputs]
        values = self.registry.parse_all(types, args)
        if not self.description.bytecode:
            raise UsageError(
                f"no executable payload available for {self.description.name}",
                code=ERR_INVALID_ARGUMENT,
                hint="abstract contracts and interfaces cannot be deployed",
            )
        try:
            data = self.description.bytecode + encode_abi(types, values)
        except ValueError as err:
            raise UsageError(f"encoding constructor arguments: {err}", code=ERR_ABI_ENCODE_FAILED) from err
        tx = self._build_transaction(to=None, data=data, label="deployment")
        address = contract_address(tx.sender, tx.nonce)
        self.contract_address = address
        tx_hash = self._submit(tx, label="deployment")
        self._report(tx_hash, label="deployment")
        self.out(f"export POKE_ADDRESS={address}")

    def show_eth(self, args: list[str]) -> None:
        address = self.registry.parse("address", args[0])
        wei = self._remote("retrieving wei balance", lambda: self.node.balance(address))
        self.out(f"{wei} atto-ETH")

    def send_eth(self, args: list[str]) -> None:
        address = self.registry.parse("address", args[0])
        value = self.registry.parse("uint256", args[1])
        tx = self._build_transaction(to=address, data=b"", value=value, gas=TRANSFER_GAS, label="send-eth")
        self._submit(tx, label="sending transaction")
        self.out(f"Sent {value} atto-ETH to {address}.")

    def show_address(self, args: list[str]) -> None:
        self.out(self._signer().address)

    def show_gas(self, args: list[str]) -> None:
        self.out(str(self._remote("retrieving gas price suggestion", self.node.gas_price)))

    def code_at(self, args: list[str]) -> None:
        address = self.registry.parse("address", args[0])
        code = self._remote("retrieving code", lambda: self.node.code(address))
        self.out(code.hex())

    def _remote(self, context: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except RemoteError as err:
            raise RemoteError(f"{context}: {err.message}", code=err.code, hint=err.hint) from err

    def gas_price(self) -> int:
        if self.gas_price_gwei:
            try:
                price = scale_decimal(self.gas_price_gwei, GWEI_DECIMALS)
            except ValueError as err:
                raise UsageError(f"invalid gas price: {err}", code=ERR_INVALID_ARGUMENT) from err
            if price < 0:
                raise UsageError(
                    f"invalid gas price: {self.gas_price_gwei!r} is negative",
                    code=ERR_INVALID_ARGUMENT,
                )
            return price
        return self._remote("retrieving gas price suggestion", self.node.gas_price)

    def _build_transaction(
        self,
        *,
        to: str | None,
        data: bytes,
        label: str,
        value: int = 0,
        gas: int | None = None,
    ) -> TransactionRequest:
        sender = self._signer().address
        gas_price = self.gas_price()
        nonce = self._remote("retrieving nonce", lambda: self.node.pending_nonce(sender))
        chain_id = self._remote("retrieving chain id", self.node.chain_id)
        if gas is None:
            gas = self._remote(
                f"{label} failed",
                lambda: self.node.estimate_gas(sender=sender, to=to, data=data, value=value),
            )
        return TransactionRequest(
            sender=sender,
            nonce=nonce,
            gas_price=gas_price,
            gas=gas,
            to=to,
            value=value,
            data=data,
            chain_id=chain_id,
        )

    def _submit(self, tx: TransactionRequest, *, label: str) -> str:
        raw = self._signer().sign_transaction(tx)
        tx_hash = self._remote(f"{label} failed", lambda: self.node.send_raw_transaction(raw))
        logger.debug("submitted %s as %s", label, tx_hash)
        return tx_hash

    def _report(self, tx_hash: str, *, label: str) -> None:
        receipt = self._remote(
            f"waiting for {label} to be mined",
            lambda: self.node.wait_mined(tx_hash, poll_interval=self.poll_interval),
        )
        try:
            status = parse_quantity(receipt.get("status", "0x1"))
        except ValueError as err:
            raise RemoteError(
                f"waiting for {label} to be mined: malformed receipt status: {err}",
                code=ERR_RPC_REMOTE,
                hint=f"transaction hash: {tx_hash}",
            ) from err
        if status != 1:
            raise RemoteError("transaction reverted", code=ERR_TX_REVERTED, hint=f"transaction hash: {tx_hash}")

        logs = receipt.get("logs") or []
        if not logs:
            self.out("< Done. No events generated >")
            return
        self.out("Done. Events:")
        for log in logs:
            self._print_log(log)

    def _print_log(self, log: dict[str, Any]) -> None:
        topics = [str(t) for t in log.get("topics") or []]
        if not topics:
            self.out(f"\tanonymous log from {log.get('address')} cannot be decoded")
            return
        event = self.description.events.get(topics[0].lower())
        if event is None:
            self.out(f"\tno event in {self.description.name} matches topic {topics[0]}")
            return
        try:
            data = bytes.fromhex(str(log.get("data") or "0x")[2:])
            fields = decode_log(
                name=event.name,
                params=event.params,
                topics=topics,
                data=data,
                anonymous=event.anonymous,
            )
        except ValueError as err:
            self.out(f"\t{err}")
            return
        self.out(f"\t{event.name}")
        for idx, (param, value) in enumerate(fields):
            self.out(f"\t\t{param.name or f'arg{idx}'}: {_display(value)}")


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return f"0x{value.hex()}"
    return str(value)
