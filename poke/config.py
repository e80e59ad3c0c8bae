"""Resolve settings from flags, ``POKE_*`` environment variables and a YAML file."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .build_cache import default_cache_dir
from .compiler import DEFAULT_OPTIMIZE_RUNS
from .error_map import ERR_INVALID_CONFIG, UsageError
from .hardware import DEFAULT_DERIVATION_PATH

DEFAULT_NODE = "http://localhost:8545"
DEFAULT_FROM = "@0"
ENV_PREFIX = "POKE_"

# setting name -> (YAML key, default)
SETTINGS: dict[str, tuple[str, Any]] = {
    "contract": ("contract", ""),
    "from_": ("from", DEFAULT_FROM),
    "address": ("address", ""),
    "node": ("node", DEFAULT_NODE),
    "gasprice": ("gasprice", ""),
    "derivation_path": ("derivation-path", DEFAULT_DERIVATION_PATH),
    "optimize_runs": ("optimize-runs", DEFAULT_OPTIMIZE_RUNS),
    "cache_dir": ("cache-dir", ""),
}


@dataclass(frozen=True)
class Settings:
    source: Path
    contract: str
    contract_defaulted: bool
    from_: str
    address: str
    node: str
    gasprice: str
    derivation_path: str
    optimize_runs: int
    cache_dir: Path
    verbose: bool
    command: str | None
    command_args: tuple[str, ...]
    help: bool = False


def env_name(yaml_key: str) -> str:
    return ENV_PREFIX + yaml_key.upper().replace("-", "_")


def default_config_path(env: Mapping[str, str]) -> Path:
    base = str(env.get("XDG_CONFIG_HOME", "")).strip()
    root = Path(base) if base else Path.home() / ".config"
    return root / "poke" / "config.yaml"


def load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise UsageError(f"config file {path} does not exist", code=ERR_INVALID_CONFIG)
        return {}
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as err:
        raise UsageError(f"reading config file {path}: {err}", code=ERR_INVALID_CONFIG) from err
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise UsageError(f"config file {path} must be a YAML mapping", code=ERR_INVALID_CONFIG)
    return {str(k): v for k, v in parsed.items()}


def resolve_settings(args: argparse.Namespace, env: Mapping[str, str] | None = None) -> Settings:
    source_env = os.environ if env is None else env

    config_flag = args.config or str(source_env.get(env_name("config"), "")).strip()
    config_path = Path(config_flag) if config_flag else default_config_path(source_env)
    file_values = load_config_file(config_path, required=bool(config_flag))

    values: dict[str, Any] = {}
    for attr, (key, default) in SETTINGS.items():
        flag_value = getattr(args, attr)
        env_value = str(source_env.get(env_name(key), "")).strip()
        if flag_value is not None:
            values[attr] = flag_value
        elif env_value:
            values[attr] = env_value
        elif key in file_values and file_values[key] is not None:
            values[attr] = file_values[key]
        else:
            values[attr] = default

    try:
        optimize_runs = int(values["optimize_runs"])
    except (TypeError, ValueError) as err:
        raise UsageError(f"optimize-runs must be an integer: {err}", code=ERR_INVALID_CONFIG) from err
    if optimize_runs < 1:
        raise UsageError("optimize-runs must be positive", code=ERR_INVALID_CONFIG)

    positionals = list(args.positionals or [])
    if not positionals:
        raise UsageError(
            "usage: poke <.sol file> [-c contract-name] [command] [arg...]",
            code=ERR_INVALID_CONFIG,
        )
    source = Path(positionals[0])
    contract = str(values["contract"]).strip()
    cache_dir = str(values["cache_dir"]).strip()

    return Settings(
        source=source,
        contract=contract or source.stem,
        contract_defaulted=not contract,
        from_=str(values["from_"]).strip(),
        address=str(values["address"]).strip(),
        node=str(values["node"]).strip(),
        gasprice=str(values["gasprice"]).strip(),
        derivation_path=str(values["derivation_path"]).strip(),
        optimize_runs=optimize_runs,
        cache_dir=Path(cache_dir) if cache_dir else default_cache_dir(dict(source_env)),
        verbose=bool(args.verbose),
        command=positionals[1] if len(positionals) > 1 else None,
        command_args=tuple(positionals[2:]),
        help=bool(args.help),
    )
