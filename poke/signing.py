"""Transaction signers: a local private key or an attached hardware wallet.

The hardware wallet moves through these states::

    DISCONNECTED -> OPENED -> DERIVED -> READY
                       \\-> PIN_REQUIRED -> OPENED

``READY`` is reached once per process; later signing requests reuse the
open session and the pinned account. The session is closed through the
cleanup registration supplied by the caller, exactly once.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Protocol, Sequence

from eth_account import Account

from .error_map import (
    ERR_DEVICE_AMBIGUOUS,
    ERR_DEVICE_NOT_FOUND,
    ERR_DEVICE_SENDER_MISMATCH,
    DeviceError,
)
from .hardware import (
    DeviceFamily,
    DeviceSession,
    PinRequired,
    PinSolicitor,
    enumerate_sessions,
    parse_derivation_path,
)
from .keyring import KeyRing
from .transaction import TransactionRequest

logger = logging.getLogger(__name__)

HARDWARE = "hardware"
CONFIRM_PROMPT = "Waiting for you to confirm on the hardware wallet..."


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign_transaction(self, tx: TransactionRequest) -> bytes: ...


class LocalKeySigner:
    def __init__(self, key: bytes, keys: KeyRing) -> None:
        self._key = key
        self._address = keys.address_of(key)

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, tx: TransactionRequest) -> bytes:
        signed = Account.sign_transaction(tx.to_account_dict(), self._key)
        return bytes(signed.raw_transaction)


class WalletState(enum.Enum):
    DISCONNECTED = "disconnected"
    OPENED = "opened"
    PIN_REQUIRED = "pin-required"
    DERIVED = "derived"
    READY = "ready"


class HardwareWalletSigner:
    def __init__(
        self,
        *,
        families: Sequence[DeviceFamily],
        derivation_path: str,
        solicit_pin: PinSolicitor,
        register_cleanup: Callable[[Callable[[], None]], Any],
        notify: Callable[[str], None] = print,
    ) -> None:
        self._families = families
        self._derivation_path = derivation_path
        self._solicit_pin = solicit_pin
        self._register_cleanup = register_cleanup
        self._notify = notify
        self._session: DeviceSession | None = None
        self._path: list[int] = []
        self._account: str | None = None
        self._closed = False
        self.state = WalletState.DISCONNECTED

    def _transition(self, state: WalletState) -> None:
        logger.debug("hardware wallet %s -> %s", self.state.value, state.value)
        self.state = state

    def _select_session(self) -> DeviceSession:
        sessions = enumerate_sessions(self._families)
        if not sessions:
            raise DeviceError(
                "No hardware wallets found.",
                code=ERR_DEVICE_NOT_FOUND,
                hint="Is a hardware wallet plugged in? If it's a Ledger, is it unlocked?",
            )
        if len(sessions) > 1:
            raise DeviceError(
                f"{len(sessions)} hardware wallets found, I don't know which to use",
                code=ERR_DEVICE_AMBIGUOUS,
            )
        return sessions[0]

    def _close(self) -> None:
        if self._closed or self._session is None:
            return
        self._closed = True
        logger.debug("closing hardware wallet %s", self._session.label)
        self._session.close()

    def open(self) -> None:
        if self.state is WalletState.READY:
            return

        session = self._select_session()
        try:
            session.open(None)
        except PinRequired:
            self._transition(WalletState.PIN_REQUIRED)
            pin = self._solicit_pin("enter PIN")
            session.open(pin)
        self._session = session
        self._register_cleanup(self._close)
        self._transition(WalletState.OPENED)

        self._path = parse_derivation_path(self._derivation_path)
        self._account = session.derive(self._path)
        self._transition(WalletState.DERIVED)

        self._transition(WalletState.READY)

    @property
    def address(self) -> str:
        self.open()
        assert self._account is not None
        return self._account

    def sign_transaction(self, tx: TransactionRequest) -> bytes:
        account = self.address
        if tx.sender.lower() != account.lower():
            raise DeviceError(
                f"unexpected `from` address. from={tx.sender} account={account}",
                code=ERR_DEVICE_SENDER_MISMATCH,
            )
        assert self._session is not None
        self._notify(CONFIRM_PROMPT)
        return self._session.sign_transaction(self._path, tx)


def select_signer(
    from_value: str,
    *,
    keys: KeyRing,
    families: Sequence[DeviceFamily],
    derivation_path: str,
    solicit_pin: PinSolicitor,
    register_cleanup: Callable[[Callable[[], None]], Any],
) -> Signer:
    if from_value.strip() == HARDWARE:
        return HardwareWalletSigner(
            families=families,
            derivation_path=derivation_path,
            solicit_pin=solicit_pin,
            register_cleanup=register_cleanup,
        )
    return LocalKeySigner(keys.resolve(from_value), keys)
