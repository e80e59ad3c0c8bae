"""Stable error codes and the exception taxonomy used across poke."""

from __future__ import annotations

# usage
ERR_INVALID_ARGUMENT = "INVALID_ARGUMENT"
ERR_ARGUMENT_COUNT = "ARGUMENT_COUNT"
ERR_MISSING_ADDRESS = "MISSING_ADDRESS"
ERR_INVALID_KEY = "INVALID_KEY"
ERR_INVALID_CONFIG = "INVALID_CONFIG"
ERR_UNKNOWN_COMMAND = "UNKNOWN_COMMAND"

# tooling
ERR_COMPILER_FAILED = "COMPILER_FAILED"
ERR_COMPILER_OUTPUT = "COMPILER_OUTPUT"
ERR_CONTRACT_NOT_FOUND = "CONTRACT_NOT_FOUND"
ERR_CONTRACT_AMBIGUOUS = "CONTRACT_AMBIGUOUS"
ERR_UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
ERR_ABI_ENCODE_FAILED = "ABI_ENCODE_FAILED"
ERR_ABI_DECODE_FAILED = "ABI_DECODE_FAILED"

# remote
ERR_RPC_TRANSPORT = "RPC_TRANSPORT"
ERR_RPC_TIMEOUT = "RPC_TIMEOUT"
ERR_RPC_REMOTE = "RPC_REMOTE"
ERR_TX_REVERTED = "TX_REVERTED"

# device
ERR_DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
ERR_DEVICE_AMBIGUOUS = "DEVICE_AMBIGUOUS"
ERR_DEVICE_PIN = "DEVICE_PIN"
ERR_DEVICE_DERIVATION = "DEVICE_DERIVATION"
ERR_DEVICE_SENDER_MISMATCH = "DEVICE_SENDER_MISMATCH"
ERR_DEVICE_FAILURE = "DEVICE_FAILURE"


class PokeError(Exception):
    """Base class for every condition that ends an invocation with exit code 1."""

    kind = "error"

    def __init__(self, message: str, *, code: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.hint = hint

    def render(self) -> str:
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message


class UsageError(PokeError):
    kind = "usage"


class ToolingError(PokeError):
    kind = "tooling"


class RemoteError(PokeError):
    kind = "remote"


class DeviceError(PokeError):
    kind = "device"
