"""USB hardware wallet families: Ledger (Ethereum app) and Trezor."""

from __future__ import annotations

import getpass
import logging
import sys
from typing import Any, Callable, Protocol, Sequence

from .error_map import (
    ERR_DEVICE_DERIVATION,
    ERR_DEVICE_FAILURE,
    ERR_DEVICE_NOT_FOUND,
    ERR_DEVICE_PIN,
    DeviceError,
)
from .transaction import TransactionRequest
from .transforms import to_checksum_address

logger = logging.getLogger(__name__)

HARDENED = 0x80000000
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"

LEDGER_VENDOR_ID = 0x2C97
LEDGER_USAGE_PAGE = 0xFFA0
ETH_CLA = 0xE0
INS_GET_PUBLIC_KEY = 0x02
INS_SIGN_TX = 0x04
INS_GET_APP_CONFIGURATION = 0x06
CHUNK_SIZE = 255

SW_USER_REJECTED = 0x6985
SW_APP_NOT_OPEN = {0x6D00, 0x6E00, 0x6511, 0x6E01}
SW_LOCKED = {0x6B0C, 0x5515}

PinSolicitor = Callable[[str], str]


class PinRequired(Exception):
    """Raised by ``DeviceSession.open`` when the device wants a PIN first."""


class DeviceSession(Protocol):
    label: str

    def open(self, pin: str | None) -> None: ...

    def derive(self, path: Sequence[int]) -> str: ...

    def sign_transaction(self, path: Sequence[int], tx: TransactionRequest) -> bytes: ...

    def close(self) -> None: ...


class DeviceFamily(Protocol):
    name: str

    def enumerate(self) -> list[DeviceSession]: ...


def parse_derivation_path(path: str) -> list[int]:
    raw = path.strip()
    if not raw:
        raise DeviceError(
            "`derivation-path` is empty, but `from` is set to \"hardware\". "
            "I can't use a hardware wallet without a derivation path.",
            code=ERR_DEVICE_DERIVATION,
        )
    if not raw.startswith("m/"):
        raise DeviceError(
            f'got invalid derivation-path: {raw!r}. Derivation path must start with "m/".',
            code=ERR_DEVICE_DERIVATION,
        )
    components: list[int] = []
    for part in raw[2:].split("/"):
        hardened = part.endswith("'")
        digits = part[:-1] if hardened else part
        if not digits.isdigit() or int(digits) >= HARDENED:
            raise DeviceError(
                f"got invalid derivation-path: {raw!r}. invalid component {part!r}",
                code=ERR_DEVICE_DERIVATION,
            )
        components.append(int(digits) | HARDENED if hardened else int(digits))
    return components


def encode_bip32_path(path: Sequence[int]) -> bytes:
    if len(path) > 10:
        raise DeviceError("derivation path is too deep", code=ERR_DEVICE_DERIVATION)
    encoded = bytearray([len(path)])
    for component in path:
        encoded.extend(component.to_bytes(4, "big"))
    return bytes(encoded)


def _apdu(ins: int, p1: int, p2: int, payload: bytes) -> bytes:
    return bytes([ETH_CLA, ins, p1, p2, len(payload)]) + payload


def matrix_pin_solicitor(prompt: str) -> str:
    """Ask for a PIN the Trezor way: positions on the device's scrambled grid."""
    grid = "\n".join(["    7 8 9", "    4 5 6", "    1 2 3"])
    print(
        f"{prompt}\nUse the numeric keypad layout below to describe the positions "
        f"shown on your device:\n{grid}",
        file=sys.stderr,
    )
    pin = getpass.getpass("PIN: ").strip()
    if not pin or not pin.isdigit() or "0" in pin:
        raise DeviceError("PIN must be a sequence of the digits 1-9", code=ERR_DEVICE_PIN)
    return pin


class LedgerSession:
    def __init__(self, device_info: dict[str, Any]) -> None:
        self._info = device_info
        self._dongle: Any = None
        product = device_info.get("product_string") or "Ledger"
        self.label = f"{product} ({device_info.get('path', b'').decode('utf-8', 'replace')})"

    def _exchange(self, apdu: bytes) -> bytes:
        from ledgerblue.commException import CommException

        try:
            return bytes(self._dongle.exchange(apdu))
        except CommException as err:
            if err.sw == SW_USER_REJECTED:
                raise DeviceError("the request was rejected on the Ledger", code=ERR_DEVICE_FAILURE) from err
            if err.sw in SW_APP_NOT_OPEN:
                raise DeviceError(
                    "Ledger did not answer the Ethereum app request",
                    code=ERR_DEVICE_FAILURE,
                    hint="Is the Ethereum app open on the Ledger?",
                ) from err
            if err.sw in SW_LOCKED:
                raise DeviceError(
                    "the Ledger is locked",
                    code=ERR_DEVICE_FAILURE,
                    hint="Unlock the Ledger and open the Ethereum app.",
                ) from err
            raise DeviceError(f"Ledger error 0x{err.sw:04x}: {err.message}", code=ERR_DEVICE_FAILURE) from err

    def open(self, pin: str | None) -> None:
        import hid
        from ledgerblue.commHID import HIDDongleHIDAPI

        device = hid.device()
        try:
            device.open_path(self._info["path"])
        except OSError as err:
            raise DeviceError(f"opening {self.label}: {err}", code=ERR_DEVICE_FAILURE) from err
        device.set_nonblocking(True)
        self._dongle = HIDDongleHIDAPI(device, True, False)
        try:
            config = self._exchange(_apdu(INS_GET_APP_CONFIGURATION, 0x00, 0x00, b""))
        except Exception:
            self.close()
            raise
        if len(config) >= 4:
            logger.debug("Ledger Ethereum app version %d.%d.%d", config[1], config[2], config[3])

    def derive(self, path: Sequence[int]) -> str:
        response = self._exchange(_apdu(INS_GET_PUBLIC_KEY, 0x00, 0x00, encode_bip32_path(path)))
        if not response:
            raise DeviceError(
                "Failed to get public key.",
                code=ERR_DEVICE_FAILURE,
                hint="Is the Ethereum app open on the Ledger?",
            )
        key_len = response[0]
        addr_len = response[1 + key_len]
        address = response[2 + key_len : 2 + key_len + addr_len].decode("ascii")
        return to_checksum_address(address)

    def sign_transaction(self, path: Sequence[int], tx: TransactionRequest) -> bytes:
        payload = encode_bip32_path(path) + tx.unsigned_rlp()
        response = b""
        offset = 0
        first = True
        while offset < len(payload):
            chunk = payload[offset : offset + CHUNK_SIZE]
            offset += len(chunk)
            response = self._exchange(_apdu(INS_SIGN_TX, 0x00 if first else 0x80, 0x00, chunk))
            first = False
        if len(response) < 65:
            raise DeviceError(
                f"unexpected Ledger response length for signature: {len(response)} bytes",
                code=ERR_DEVICE_FAILURE,
            )
        try:
            v = tx.eip155_v(response[0], truncated=True)
        except ValueError as err:
            raise DeviceError(f"unexpected Ledger signature: {err}", code=ERR_DEVICE_FAILURE) from err
        r = int.from_bytes(response[1:33], "big")
        s = int.from_bytes(response[33:65], "big")
        return tx.signed_rlp(v, r, s)

    def close(self) -> None:
        if self._dongle is not None:
            self._dongle.close()
            self._dongle = None


class LedgerFamily:
    name = "ledger"

    def enumerate(self) -> list[DeviceSession]:
        import hid

        sessions: list[DeviceSession] = []
        seen: set[bytes] = set()
        for info in hid.enumerate(LEDGER_VENDOR_ID, 0):
            if info.get("usage_page") != LEDGER_USAGE_PAGE and info.get("interface_number") != 0:
                continue
            if info["path"] in seen:
                continue
            seen.add(info["path"])
            sessions.append(LedgerSession(info))
        return sessions


class _TrezorPinUI:
    def __init__(self, pin: str | None) -> None:
        self.pin = pin

    def button_request(self, *args: Any) -> None:
        logger.debug("Trezor button request")

    def get_pin(self, code: Any = None) -> str:
        if self.pin is None:
            raise PinRequired()
        return self.pin

    def get_passphrase(self, *args: Any, **kwargs: Any) -> str:
        return ""


class TrezorSession:
    def __init__(self, transport: Any) -> None:
        self._transport = transport
        self._client: Any = None
        self.label = f"Trezor ({transport.get_path()})"

    def open(self, pin: str | None) -> None:
        from trezorlib import exceptions
        from trezorlib.client import TrezorClient

        try:
            self._client = TrezorClient(self._transport, ui=_TrezorPinUI(pin))
            self._client.ensure_unlocked()
        except exceptions.PinException as err:
            raise DeviceError("the Trezor rejected the PIN", code=ERR_DEVICE_PIN) from err
        except exceptions.TrezorException as err:
            raise DeviceError(f"opening Trezor: {err}", code=ERR_DEVICE_FAILURE) from err

    def derive(self, path: Sequence[int]) -> str:
        from trezorlib import ethereum, exceptions

        try:
            return to_checksum_address(ethereum.get_address(self._client, list(path)))
        except exceptions.TrezorException as err:
            raise DeviceError(f"deriving account: {err}", code=ERR_DEVICE_FAILURE) from err

    def sign_transaction(self, path: Sequence[int], tx: TransactionRequest) -> bytes:
        from trezorlib import ethereum, exceptions

        try:
            v, r, s = ethereum.sign_tx(
                self._client,
                n=list(path),
                nonce=tx.nonce,
                gas_price=tx.gas_price,
                gas_limit=tx.gas,
                to=tx.to or "",
                value=tx.value,
                data=tx.data,
                chain_id=tx.chain_id,
            )
        except exceptions.Cancelled as err:
            raise DeviceError("the transaction was rejected on the Trezor", code=ERR_DEVICE_FAILURE) from err
        except exceptions.TrezorException as err:
            raise DeviceError(f"signing on Trezor: {err}", code=ERR_DEVICE_FAILURE) from err
        return tx.signed_rlp(tx.eip155_v(v), int.from_bytes(r, "big"), int.from_bytes(s, "big"))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class TrezorFamily:
    name = "trezor"

    def enumerate(self) -> list[DeviceSession]:
        from trezorlib.transport import enumerate_devices

        return [TrezorSession(transport) for transport in enumerate_devices()]


def default_families() -> list[DeviceFamily]:
    return [LedgerFamily(), TrezorFamily()]


def enumerate_sessions(families: Sequence[DeviceFamily]) -> list[DeviceSession]:
    sessions: list[DeviceSession] = []
    missing: list[str] = []
    for family in families:
        try:
            found = family.enumerate()
        except ImportError as err:
            logger.debug("%s support unavailable: %s", family.name, err)
            missing.append(family.name)
            continue
        logger.debug("found %d %s device(s)", len(found), family.name)
        sessions.extend(found)
    if not sessions and missing and len(missing) == len(families):
        raise DeviceError(
            "hardware wallet support is not installed",
            code=ERR_DEVICE_NOT_FOUND,
            hint="install it with: pip install 'poke[hardware]'",
        )
    return sessions
