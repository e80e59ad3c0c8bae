"""HTTP JSON-RPC transport and the node operations poke needs."""

from __future__ import annotations

import itertools
import json
import logging
import time
import urllib.error
import urllib.request
from socket import timeout as SocketTimeout
from typing import Any

from .error_map import ERR_RPC_REMOTE, ERR_RPC_TIMEOUT, ERR_RPC_TRANSPORT, RemoteError
from .transforms import hex_to_bytes, parse_quantity

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL = 1.0


def invoke_rpc(
    *,
    rpc_url: str,
    payload: dict[str, Any],
    timeout_seconds: float,
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        rpc_url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json"},
    )
    hint = f"is there a node running at {rpc_url!r}?"
    try:
        with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
            text = resp.read().decode("utf-8")
    except SocketTimeout as err:
        raise RemoteError(f"rpc request timed out: {err}", code=ERR_RPC_TIMEOUT, hint=hint) from err
    except urllib.error.HTTPError as err:
        raw = err.read().decode("utf-8", errors="replace")
        raise RemoteError(
            f"http error {err.code} from node: {raw.strip()}".rstrip(": "),
            code=ERR_RPC_TRANSPORT,
            hint=hint,
        ) from err
    except urllib.error.URLError as err:
        raise RemoteError(
            f"failed to connect to Ethereum node: {err.reason}",
            code=ERR_RPC_TRANSPORT,
            hint=hint,
        ) from err
    except OSError as err:
        raise RemoteError(f"failed to connect to Ethereum node: {err}", code=ERR_RPC_TRANSPORT, hint=hint) from err

    try:
        rpc_response = json.loads(text)
    except json.JSONDecodeError as err:
        raise RemoteError("rpc endpoint returned non-json response", code=ERR_RPC_TRANSPORT) from err
    if not isinstance(rpc_response, dict):
        raise RemoteError("rpc endpoint returned a non-object response", code=ERR_RPC_TRANSPORT)
    return rpc_response


class NodeClient:
    """Blocking client for one Ethereum node; nothing is sent until first use."""

    def __init__(self, rpc_url: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.rpc_url = rpc_url
        self.timeout_seconds = timeout_seconds
        self._ids = itertools.count(1)
        self._chain_id: int | None = None

    def request(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug("rpc %s", method)
        response = invoke_rpc(rpc_url=self.rpc_url, payload=payload, timeout_seconds=self.timeout_seconds)
        error = response.get("error")
        if error is not None:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RemoteError(f"{method}: {message}", code=ERR_RPC_REMOTE)
        return response.get("result")

    def _quantity(self, method: str, params: list[Any]) -> int:
        result = self.request(method, params)
        try:
            return parse_quantity(result)
        except ValueError as err:
            raise RemoteError(f"{method}: malformed result: {err}", code=ERR_RPC_REMOTE) from err

    def _data(self, method: str, params: list[Any]) -> bytes:
        result = self.request(method, params)
        if result is None:
            return b""
        try:
            if not isinstance(result, str):
                raise ValueError(f"expected hex data, got {result!r}")
            return hex_to_bytes(result)
        except ValueError as err:
            raise RemoteError(f"{method}: malformed result: {err}", code=ERR_RPC_REMOTE) from err

    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self._quantity("eth_chainId", [])
        return self._chain_id

    def gas_price(self) -> int:
        return self._quantity("eth_gasPrice", [])

    def balance(self, address: str) -> int:
        return self._quantity("eth_getBalance", [address, "latest"])

    def code(self, address: str) -> bytes:
        return self._data("eth_getCode", [address, "latest"])

    def pending_nonce(self, address: str) -> int:
        return self._quantity("eth_getTransactionCount", [address, "pending"])

    def call(self, *, to: str, data: bytes, sender: str | None = None) -> bytes:
        tx: dict[str, Any] = {"to": to, "data": f"0x{data.hex()}"}
        if sender:
            tx["from"] = sender
        return self._data("eth_call", [tx, "latest"])

    def estimate_gas(self, *, sender: str, to: str | None, data: bytes, value: int = 0) -> int:
        tx: dict[str, Any] = {"from": sender, "data": f"0x{data.hex()}", "value": hex(value)}
        if to:
            tx["to"] = to
        return self._quantity("eth_estimateGas", [tx])

    def send_raw_transaction(self, raw: bytes) -> str:
        result = self.request("eth_sendRawTransaction", [f"0x{raw.hex()}"])
        if not isinstance(result, str) or not result:
            raise RemoteError(
                f"eth_sendRawTransaction: malformed result: expected a transaction hash, got {result!r}",
                code=ERR_RPC_REMOTE,
            )
        return result

    def receipt(self, tx_hash: str) -> dict[str, Any] | None:
        result = self.request("eth_getTransactionReceipt", [tx_hash])
        return result if isinstance(result, dict) else None

    def wait_mined(self, tx_hash: str, *, poll_interval: float = DEFAULT_POLL_INTERVAL) -> dict[str, Any]:
        while True:
            receipt = self.receipt(tx_hash)
            if receipt is not None:
                return receipt
            logger.debug("transaction %s not yet mined", tx_hash)
            time.sleep(poll_interval)
