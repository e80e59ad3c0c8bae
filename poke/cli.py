"""Command-line interface to interact with arbitrary smart contracts."""

from __future__ import annotations

import argparse
import contextlib
import functools
import logging
import os
import sys
from typing import Mapping, Sequence

from . import __version__
from .build_cache import get_or_build
from .commands import render_command_help, render_listing, synthesize
from .compiler import compile_combined_json
from .config import Settings, resolve_settings
from .dispatcher import Dispatcher
from .error_map import ERR_INVALID_ARGUMENT, PokeError, UsageError
from .hardware import default_families, matrix_pin_solicitor
from .interface import InterfaceDescription, normalize_compiler_output, validate_types
from .keyring import KeyRing
from .rpc_transport import NodeClient
from .signing import Signer, select_signer
from .type_registry import TypeRegistry

logger = logging.getLogger("poke")

INTERFACE_SUFFIXES = {".json"}


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message, code=ERR_INVALID_ARGUMENT, hint=self.format_usage().strip())


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="poke", description=__doc__, add_help=False)
    parser.add_argument("positionals", nargs="*", help="<.sol or .json file> [command] [arg...]")
    parser.add_argument(
        "-c",
        "--contract",
        default=None,
        help="Name of the contract to wrap. Optional if it matches the name of the .sol file.",
    )
    parser.add_argument(
        "-F",
        "--from",
        dest="from_",
        default=None,
        help="Hex-encoded private key to sign transactions with, or @N for a named key. "
        "Defaults to @0. Use `hardware` to use Trezor/Ledger.",
    )
    parser.add_argument("--address", default=None, help="Address of a deployed copy of the contract.")
    parser.add_argument("-n", "--node", default=None, help="URL of an Ethereum node")
    parser.add_argument(
        "-g",
        "--gasprice",
        default=None,
        help="Gas price to use, in gwei. Defaults to the node's suggested gas price.",
    )
    parser.add_argument(
        "--derivation-path",
        dest="derivation_path",
        default=None,
        help="BIP 32 derivation path to use with hardware wallet. Only used if --from=hardware",
    )
    parser.add_argument(
        "--optimize-runs",
        dest="optimize_runs",
        default=None,
        help="solc optimizer runs setting",
    )
    parser.add_argument("--cache-dir", dest="cache_dir", default=None, help="build cache directory")
    parser.add_argument("--config", default=None, help="YAML config file with default settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging to stderr")
    parser.add_argument("-h", "--help", action="store_true", help="show help")
    parser.add_argument("--version", action="version", version=f"poke {__version__}")
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def load_interface(settings: Settings, registry: TypeRegistry) -> InterfaceDescription:
    source = settings.source

    def normalize(raw: bytes) -> InterfaceDescription:
        return normalize_compiler_output(
            raw,
            contract_name=settings.contract,
            source_path=source,
            name_defaulted=settings.contract_defaulted,
        )

    if source.suffix.lower() in INTERFACE_SUFFIXES:
        try:
            raw = source.read_bytes()
        except OSError as err:
            raise UsageError(f"reading {source}: {err}", code=ERR_INVALID_ARGUMENT) from err
        description = normalize(raw)
    else:
        description = get_or_build(
            source,
            settings.contract,
            build=lambda: normalize(compile_combined_json(source, optimize_runs=settings.optimize_runs)),
            cache_dir=settings.cache_dir,
            salt=f"optimize-runs={settings.optimize_runs}",
        )
    validate_types(description, registry.check)
    return description


def run(settings: Settings, env: Mapping[str, str], cleanup: contextlib.ExitStack) -> int:
    keys = KeyRing(env)
    registry = TypeRegistry(keys)
    description = load_interface(settings, registry)

    @functools.cache
    def signer() -> Signer:
        return select_signer(
            settings.from_,
            keys=keys,
            families=default_families(),
            derivation_path=settings.derivation_path,
            solicit_pin=matrix_pin_solicitor,
            register_cleanup=cleanup.callback,
        )

    dispatcher = Dispatcher(
        description=description,
        registry=registry,
        node=NodeClient(settings.node),
        signer=signer,
        contract_address=settings.address,
        gas_price=settings.gasprice,
    )
    listing = synthesize(description, dispatcher)

    name = settings.command
    if name is None or (name == "help" and listing.get(name) is None):
        print(render_listing(listing))
        return 0
    command = listing.find(name)
    if settings.help:
        print(render_command_help(command))
        return 0
    command.run(settings.command_args)
    return 0


def main(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> int:
    source_env = os.environ if env is None else env
    try:
        args = build_parser().parse_intermixed_args(argv)
        configure_logging(bool(args.verbose))
        settings = resolve_settings(args, source_env)
        with contextlib.ExitStack() as cleanup:
            return run(settings, source_env, cleanup)
    except PokeError as err:
        logger.debug("exiting on %s error %s", err.kind, err.code)
        print(err.render(), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
