"""Normalize ``solc --combined-json`` output into an interface description."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Callable

from .abi_codec import AbiParam, canonical_signature, event_topic0
from .error_map import (
    ERR_COMPILER_OUTPUT,
    ERR_CONTRACT_AMBIGUOUS,
    ERR_CONTRACT_NOT_FOUND,
    ToolingError,
)
from .transforms import hex_to_bytes

logger = logging.getLogger(__name__)

CONSTRUCTOR = "constructor"
CONST_MUTABILITY = {"view", "pure"}


@dataclass(frozen=True)
class MethodSpec:
    name: str
    signature: str
    inputs: tuple[AbiParam, ...]
    outputs: tuple[AbiParam, ...]
    constant: bool


@dataclass(frozen=True)
class EventSpec:
    name: str
    signature: str
    params: tuple[AbiParam, ...]
    anonymous: bool


def _params(entries: list[dict[str, Any]] | None) -> tuple[AbiParam, ...]:
    return tuple(
        AbiParam(
            name=str(entry.get("name", "")),
            type=str(entry.get("type", "")),
            indexed=bool(entry.get("indexed", False)),
        )
        for entry in entries or []
    )


def _is_constant(entry: dict[str, Any]) -> bool:
    if "stateMutability" in entry:
        return entry["stateMutability"] in CONST_MUTABILITY
    return bool(entry.get("constant", False))


@dataclass(frozen=True)
class InterfaceDescription:
    name: str
    abi: tuple[dict[str, Any], ...]
    dev_details: dict[str, str] = field(default_factory=dict)
    user_notices: dict[str, str] = field(default_factory=dict)
    bytecode: bytes = b""

    @cached_property
    def methods(self) -> dict[str, MethodSpec]:
        out: dict[str, MethodSpec] = {}
        for entry in self.abi:
            if entry.get("type", "function") != "function":
                continue
            inputs = _params(entry.get("inputs"))
            signature = canonical_signature(str(entry["name"]), [p.type for p in inputs])
            out[signature] = MethodSpec(
                name=str(entry["name"]),
                signature=signature,
                inputs=inputs,
                outputs=_params(entry.get("outputs")),
                constant=_is_constant(entry),
            )
        return out

    @cached_property
    def constructor_inputs(self) -> tuple[AbiParam, ...]:
        for entry in self.abi:
            if entry.get("type") == CONSTRUCTOR:
                return _params(entry.get("inputs"))
        return ()

    @cached_property
    def events(self) -> dict[str, EventSpec]:
        """Events keyed by their topic0 hash."""
        out: dict[str, EventSpec] = {}
        for entry in self.abi:
            if entry.get("type") != "event":
                continue
            params = _params(entry.get("inputs"))
            signature = canonical_signature(str(entry["name"]), [p.type for p in params])
            out[event_topic0(signature)] = EventSpec(
                name=str(entry["name"]),
                signature=signature,
                params=params,
                anonymous=bool(entry.get("anonymous", False)),
            )
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "abi": list(self.abi),
            "dev_details": dict(self.dev_details),
            "user_notices": dict(self.user_notices),
            "bytecode": self.bytecode.hex(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> InterfaceDescription:
        return cls(
            name=str(raw["name"]),
            abi=tuple(raw["abi"]),
            dev_details={str(k): str(v) for k, v in raw["dev_details"].items()},
            user_notices={str(k): str(v) for k, v in raw["user_notices"].items()},
            bytecode=bytes.fromhex(raw["bytecode"]),
        )


def validate_types(description: InterfaceDescription, check: Callable[[str], None]) -> None:
    for method in description.methods.values():
        for param in (*method.inputs, *method.outputs):
            check(param.type)
    for param in description.constructor_inputs:
        check(param.type)


def _lookup(mapping: dict[str, Any], key: str) -> Any:
    for candidate, value in mapping.items():
        if candidate.lower() == key.lower():
            return value
    return None


def _decode_json_field(raw: Any, *, label: str) -> Any:
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            return json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as err:
            raise ToolingError(f"unmarshaling {label}: {err}", code=ERR_COMPILER_OUTPUT) from err
    return raw


def _dev_details(devdoc: Any) -> dict[str, str]:
    methods = devdoc.get("methods", {}) if isinstance(devdoc, dict) else {}
    out: dict[str, str] = {}
    for signature, info in methods.items():
        if isinstance(info, dict) and info.get("details"):
            out[signature] = str(info["details"])
    return out


def _user_notices(userdoc: Any) -> dict[str, str]:
    # The constructor notice arrives as a bare string; every other method
    # nests it under "notice".
    methods = userdoc.get("methods", {}) if isinstance(userdoc, dict) else {}
    out: dict[str, str] = {}
    for signature, info in methods.items():
        if isinstance(info, str):
            out[signature] = info
        elif isinstance(info, dict) and isinstance(info.get("notice"), str):
            out[signature] = info["notice"]
        else:
            raise ToolingError(
                f"unmarshaling userdoc: unexpected notice for {signature!r}",
                code=ERR_COMPILER_OUTPUT,
            )
    return out


def default_contract_name(source_path: Path) -> str:
    return Path(source_path).stem


def normalize_compiler_output(
    raw: bytes | str,
    *,
    contract_name: str,
    source_path: Path,
    name_defaulted: bool,
) -> InterfaceDescription:
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise ToolingError(f"failed to decode solc output: {err}", code=ERR_COMPILER_OUTPUT) from err
    contracts = _lookup(parsed, "contracts") if isinstance(parsed, dict) else None
    if not isinstance(contracts, dict):
        raise ToolingError("failed to decode solc output: missing Contracts", code=ERR_COMPILER_OUTPUT)

    source_stem = Path(source_path).stem
    matches: list[dict[str, Any]] = []
    for key, output in contracts.items():
        file_part, sep, contract_part = str(key).rpartition(":")
        if not sep:
            continue
        if Path(file_part).stem == source_stem and contract_part == contract_name:
            matches.append(output)

    if not matches:
        if name_defaulted:
            raise ToolingError(
                f"No contract named {contract_name!r} in {source_path}.",
                code=ERR_CONTRACT_NOT_FOUND,
                hint=(
                    "By default I expect to find a contract with the same name as the .sol file.\n"
                    "You can set a non-default contract name manually with the -c flag."
                ),
            )
        raise ToolingError(
            f"I did not find a contract named {contract_name!r} in {source_path}",
            code=ERR_CONTRACT_NOT_FOUND,
        )
    if len(matches) > 1:
        raise ToolingError(
            f"The solc output contained {len(matches)} results for the {contract_name} contract "
            f"in {source_path}, and I do not know which one to choose.",
            code=ERR_CONTRACT_AMBIGUOUS,
        )

    output = matches[0]
    abi = _decode_json_field(_lookup(output, "abi"), label="abi")
    if not isinstance(abi, list):
        raise ToolingError("unmarshaling abi: expected a list", code=ERR_COMPILER_OUTPUT)
    devdoc = _decode_json_field(_lookup(output, "devdoc"), label="devdoc")
    userdoc = _decode_json_field(_lookup(output, "userdoc"), label="userdoc")

    try:
        bytecode = hex_to_bytes(str(_lookup(output, "bin") or ""))
    except ValueError as err:
        raise ToolingError(f"decoding bytecode: {err}", code=ERR_COMPILER_OUTPUT) from err

    logger.debug("normalized %s with %d abi entries", contract_name, len(abi))
    return InterfaceDescription(
        name=contract_name,
        abi=tuple(abi),
        dev_details=_dev_details(devdoc),
        user_notices=_user_notices(userdoc),
        bytecode=bytecode,
    )
