"""Content-hash keyed cache of normalized compiler output.

Only the bytes of the top-level source file (plus the optimizer setting)
feed the hash. Editing a file that the source imports does not invalidate
the cache entry; delete the cache directory to force a rebuild.
"""

from __future__ import annotations

import gzip
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

from .error_map import ERR_INVALID_ARGUMENT, UsageError
from .interface import InterfaceDescription

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1
CACHE_SUFFIX = ".cache"

Builder = Callable[[], InterfaceDescription]


def default_cache_dir(env: dict[str, str] | None = None) -> Path:
    source = os.environ if env is None else env
    base = str(source.get("XDG_CACHE_HOME", "")).strip()
    root = Path(base) if base else Path.home() / ".cache"
    return root / "poke"


def content_hash(source_path: Path, *, salt: str = "") -> str:
    try:
        data = Path(source_path).read_bytes()
    except OSError as err:
        raise UsageError(f"reading {source_path}: {err}", code=ERR_INVALID_ARGUMENT) from err
    digest = hashlib.sha256(data)
    if salt:
        digest.update(b"\x00" + salt.encode("utf-8"))
    return digest.hexdigest()


def cache_path(cache_dir: Path, source_path: Path, contract_name: str) -> Path:
    relative = str(source_path).lstrip("/\\").replace("..", "_")
    return Path(cache_dir) / f"{relative}-{contract_name}{CACHE_SUFFIX}"


def _read_entry(path: Path) -> dict[str, Any] | None:
    try:
        raw = gzip.decompress(path.read_bytes())
        entry = json.loads(raw.decode("utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, EOFError, UnicodeDecodeError, json.JSONDecodeError) as err:
        logger.debug("ignoring unreadable cache file %s: %s", path, err)
        return None
    if not isinstance(entry, dict) or entry.get("version") != CACHE_FORMAT_VERSION:
        return None
    return entry


def _write_entry(path: Path, description: InterfaceDescription, build_hash: str) -> None:
    entry = {
        "version": CACHE_FORMAT_VERSION,
        "hash": build_hash,
        "interface": description.to_dict(),
    }
    encoded = gzip.compress(json.dumps(entry, sort_keys=True).encode("utf-8"))
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(encoded)
    os.replace(tmp, path)


def get_or_build(
    source_path: Path,
    contract_name: str,
    *,
    build: Builder,
    cache_dir: Path,
    salt: str = "",
) -> InterfaceDescription:
    build_hash = content_hash(source_path, salt=salt)
    path = cache_path(cache_dir, source_path, contract_name)

    entry = _read_entry(path)
    if entry is not None and entry.get("hash") == build_hash:
        try:
            description = InterfaceDescription.from_dict(entry["interface"])
        except (KeyError, TypeError, ValueError) as err:
            logger.debug("cache entry %s is malformed: %s", path, err)
        else:
            logger.debug("cache hit for %s (%s)", source_path, contract_name)
            return description

    logger.debug("cache miss for %s (%s), compiling", source_path, contract_name)
    description = build()
    try:
        _write_entry(path, description, build_hash)
    except OSError as err:
        logger.warning("writing build output to cache %s: %s", path, err)
    return description
