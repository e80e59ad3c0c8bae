from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any

from poke.abi_codec import event_topic0
from poke.hardware import PinRequired


ROOT = Path(__file__).resolve().parents[1]

HOLDER = "0x1111111111111111111111111111111111111111"
DEPLOYED = "0x2222222222222222222222222222222222222222"
TX_HASH = "0x" + "ab" * 32
STORED_TOPIC = event_topic0("Stored(address,uint256)")

STORE_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "initial", "type": "uint256"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "get",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "name",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "pure",
    },
    {
        "type": "function",
        "name": "balanceOf",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "constant": True,
    },
    {
        "type": "function",
        "name": "set",
        "inputs": [{"name": "value", "type": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [{"name": "to", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "payable",
    },
    {
        "type": "event",
        "name": "Stored",
        "inputs": [
            {"name": "who", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
        "anonymous": False,
    },
]

STORE_DEVDOC = {"methods": {"get()": {"details": "Returns the stored value"}}}
STORE_USERDOC = {
    "methods": {
        "constructor": "Creates a store seeded with an initial value.",
        "set(uint256)": {"notice": "Stores a value. Overwrites the old one.\nSecond line."},
    }
}
STORE_BIN = "6080604052348015600f57600080fd5b50"


def _combined_json(
    *,
    key: str = "Store.sol:Store",
    as_strings: bool = True,
    extra: dict[str, Any] | None = None,
    top_key: str = "contracts",
    abi: list[dict[str, Any]] | None = None,
) -> str:
    def field(value: Any) -> Any:
        return json.dumps(value) if as_strings else value

    contracts = {
        key: {
            "abi": field(STORE_ABI if abi is None else abi),
            "bin": STORE_BIN,
            "devdoc": field(STORE_DEVDOC),
            "userdoc": field(STORE_USERDOC),
        }
    }
    if extra:
        contracts.update(extra)
    return json.dumps({top_key: contracts, "version": "0.8.24"})


def _write_interface(directory: Path, name: str = "Store.json", **kwargs: Any) -> Path:
    path = directory / name
    path.write_text(_combined_json(**kwargs), encoding="utf-8")
    return path


def _word(value: int) -> str:
    return value.to_bytes(32, "big").hex()


def _pad_address(addr: str) -> str:
    return f"0x{'0'*24}{addr[2:].lower()}"


class _RPCHandler(BaseHTTPRequestHandler):
    # method -> result, a list of results served in order (the last one
    # repeats), or {"error": {...}} for an error response.
    routes: dict[str, Any] = {}
    calls: list[dict[str, Any]] = []

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        payload = json.loads(self.rfile.read(length).decode("utf-8"))
        _RPCHandler.calls.append(payload)

        method = payload.get("method")
        response: dict[str, Any] = {"jsonrpc": "2.0", "id": payload.get("id", 1)}
        route = _RPCHandler.routes.get(method)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, dict) and "error" in route:
            response["error"] = route["error"]
        elif method not in _RPCHandler.routes:
            response["error"] = {"code": -32601, "message": f"method {method} not found"}
        else:
            response["result"] = route

        encoded = json.dumps(response).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def log_message(self, format: str, *args) -> None:  # noqa: A003
        return


def _serve(routes: dict[str, Any]) -> tuple[HTTPServer, str]:
    _RPCHandler.routes = {k: (list(v) if isinstance(v, list) else v) for k, v in routes.items()}
    _RPCHandler.calls = []
    server = HTTPServer(("127.0.0.1", 0), _RPCHandler)
    url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, url


def _stop(server: HTTPServer) -> None:
    server.shutdown()
    server.server_close()


def _called_methods() -> list[str]:
    return [call["method"] for call in _RPCHandler.calls]


def _transaction_routes(*, status: str = "0x1", logs: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "eth_gasPrice": hex(2 * 10**9),
        "eth_getTransactionCount": "0x5",
        "eth_chainId": "0x539",
        "eth_estimateGas": "0x5208",
        "eth_sendRawTransaction": TX_HASH,
        "eth_getTransactionReceipt": [
            None,
            {"transactionHash": TX_HASH, "status": status, "logs": logs or []},
        ],
    }


def _clean_env(tmp_path: Path, extra: dict[str, str] | None = None) -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if not k.startswith("POKE_")}
    env["XDG_CONFIG_HOME"] = str(tmp_path / "config")
    env["XDG_CACHE_HOME"] = str(tmp_path / "cache")
    if extra:
        env.update(extra)
    return env


def _run_cli(
    args: list[str],
    tmp_path: Path,
    extra_env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    env = _clean_env(tmp_path, extra_env)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH", "")]))
    cmd = [sys.executable, "-m", "poke", *args]
    return subprocess.run(cmd, capture_output=True, text=True, check=False, env=env, cwd=tmp_path)


DEVICE_ACCOUNT = "0x3333333333333333333333333333333333333333"


class _FakeSession:
    def __init__(self, *, pin: str | None = None, account: str = DEVICE_ACCOUNT) -> None:
        self.label = "fake"
        self.required_pin = pin
        self.account = account
        self.opened_with: list[str | None] = []
        self.derived: list[list[int]] = []
        self.signed: list[Any] = []
        self.closed = 0

    def open(self, pin):
        self.opened_with.append(pin)
        if self.required_pin is not None and pin != self.required_pin:
            raise PinRequired()

    def derive(self, path):
        self.derived.append(list(path))
        return self.account

    def sign_transaction(self, path, tx):
        self.signed.append(tx)
        return b"\xf8signed"

    def close(self):
        self.closed += 1


class _FakeFamily:
    name = "fake"

    def __init__(self, sessions) -> None:
        self.sessions = sessions

    def enumerate(self):
        return list(self.sessions)
