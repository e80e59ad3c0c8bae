from __future__ import annotations

import socket
import stat

import pytest
import rlp

from poke.compiler import compile_combined_json, is_solc_installed
from poke.error_map import ERR_COMPILER_FAILED, ERR_RPC_REMOTE, ERR_RPC_TRANSPORT, RemoteError, ToolingError
from poke.rpc_transport import NodeClient
from poke.transaction import TransactionRequest, contract_address

from ._poke_helpers import HOLDER, TX_HASH, _called_methods, _serve, _stop


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_node_client_quantities_and_bytes():
    server, url = _serve({"eth_chainId": "0x539", "eth_getBalance": "0x2a", "eth_getCode": "0x6080"})
    try:
        node = NodeClient(url)
        assert node.chain_id() == 1337
        assert node.chain_id() == 1337
        assert node.balance(HOLDER) == 42
        assert node.code(HOLDER) == b"\x60\x80"
        assert _called_methods().count("eth_chainId") == 1
    finally:
        _stop(server)


def test_node_client_error_object_is_remote_error():
    server, url = _serve({"eth_gasPrice": {"error": {"code": -32000, "message": "nope"}}})
    try:
        with pytest.raises(RemoteError) as exc:
            NodeClient(url).gas_price()
        assert exc.value.code == ERR_RPC_REMOTE
        assert exc.value.message == "eth_gasPrice: nope"
    finally:
        _stop(server)


def test_unreachable_node_is_not_retried():
    url = f"http://127.0.0.1:{_free_port()}"
    with pytest.raises(RemoteError) as exc:
        NodeClient(url, timeout_seconds=2).gas_price()
    assert exc.value.code == ERR_RPC_TRANSPORT
    assert url in exc.value.hint


def test_wait_mined_polls_until_receipt():
    receipt = {"transactionHash": TX_HASH, "status": "0x1", "logs": []}
    server, url = _serve({"eth_getTransactionReceipt": [None, None, receipt]})
    try:
        assert NodeClient(url).wait_mined(TX_HASH, poll_interval=0) == receipt
        assert _called_methods() == ["eth_getTransactionReceipt"] * 3
    finally:
        _stop(server)


def test_contract_address_known_vectors():
    sender = "0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0"
    assert contract_address(sender, 0).lower() == "0xcd234a471b72ba2f1ccf0a70fcaba648a5eecd8d"
    assert contract_address(sender, 1).lower() == "0x343c43a37d37dff08ae8c4a11544c718abb4fcf8"


def test_unsigned_rlp_carries_chain_id():
    tx = TransactionRequest(
        sender=HOLDER, nonce=9, gas_price=20 * 10**9, gas=21000, to=HOLDER, value=10**18, data=b"", chain_id=1
    )
    fields = rlp.decode(tx.unsigned_rlp())
    assert len(fields) == 9
    assert fields[6] == b"\x01"
    assert fields[7] == b"" and fields[8] == b""
    assert rlp.decode(tx.signed_rlp(37, 1, 2))[6] == b"\x25"


@pytest.mark.parametrize(
    "chain_id,v,expected",
    [(1, 0, 37), (1, 1, 38), (1, 27, 37), (1, 28, 38), (1, 38, 38), (1337, 2710, 2710)],
)
def test_eip155_v_full_recovery_id(chain_id, v, expected):
    tx = TransactionRequest(
        sender=HOLDER, nonce=0, gas_price=1, gas=1, to=None, value=0, data=b"", chain_id=chain_id
    )
    assert tx.eip155_v(v) == expected


@pytest.mark.parametrize("chain_id", [1, 110, 238, 239, 1337, 11155111])
@pytest.mark.parametrize("parity", [0, 1])
def test_eip155_v_from_single_byte(chain_id, parity):
    tx = TransactionRequest(
        sender=HOLDER, nonce=0, gas_price=1, gas=1, to=None, value=0, data=b"", chain_id=chain_id
    )
    full_v = chain_id * 2 + 35 + parity
    assert tx.eip155_v(full_v & 0xFF, truncated=True) == full_v


def test_eip155_v_single_byte_for_other_chain():
    tx = TransactionRequest(sender=HOLDER, nonce=0, gas_price=1, gas=1, to=None, value=0, data=b"", chain_id=1)
    with pytest.raises(ValueError):
        tx.eip155_v(99, truncated=True)


def test_compiler_missing_binary():
    assert is_solc_installed("poke-no-such-solc") is False
    with pytest.raises(ToolingError) as exc:
        compile_combined_json("Store.sol", binary="poke-no-such-solc")
    assert exc.value.code == ERR_COMPILER_FAILED


def test_compiler_failure_and_success(tmp_path):
    failing = tmp_path / "solc-fail"
    failing.write_text("#!/bin/sh\necho 'Store.sol:1: ParserError' >&2\nexit 1\n", encoding="utf-8")
    failing.chmod(failing.stat().st_mode | stat.S_IEXEC)
    with pytest.raises(ToolingError) as exc:
        compile_combined_json(tmp_path / "Store.sol", binary=str(failing))
    assert "ParserError" in exc.value.message

    working = tmp_path / "solc-ok"
    working.write_text('#!/bin/sh\necho "$@"\n', encoding="utf-8")
    working.chmod(working.stat().st_mode | stat.S_IEXEC)
    out = compile_combined_json(tmp_path / "Store.sol", optimize_runs=200, binary=str(working)).decode()
    assert "--optimize-runs 200 --combined-json abi,bin,userdoc,devdoc" in out


@pytest.mark.parametrize(
    "routes,call",
    [
        ({"eth_gasPrice": None}, lambda node: node.gas_price()),
        ({"eth_chainId": "42"}, lambda node: node.chain_id()),
        ({"eth_getCode": 7}, lambda node: node.code(HOLDER)),
        ({"eth_call": "0xabc"}, lambda node: node.call(to=HOLDER, data=b"")),
        ({"eth_sendRawTransaction": None}, lambda node: node.send_raw_transaction(b"\x01")),
    ],
)
def test_malformed_node_results_are_remote_errors(routes, call):
    server, url = _serve(routes)
    try:
        with pytest.raises(RemoteError) as exc:
            call(NodeClient(url))
        assert exc.value.code == ERR_RPC_REMOTE
        assert "malformed result" in exc.value.message
    finally:
        _stop(server)


def test_null_data_result_is_empty():
    server, url = _serve({"eth_call": None})
    try:
        assert NodeClient(url).call(to=HOLDER, data=b"") == b""
    finally:
        _stop(server)
