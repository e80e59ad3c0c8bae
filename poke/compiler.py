"""Thin adapter over the external ``solc`` compiler."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from .error_map import ERR_COMPILER_FAILED, ToolingError

logger = logging.getLogger(__name__)

DEFAULT_OPTIMIZE_RUNS = 1_000_000
COMBINED_OUTPUTS = "abi,bin,userdoc,devdoc"


def is_solc_installed(binary: str = "solc") -> bool:
    return shutil.which(binary) is not None


def compile_combined_json(
    source_path: Path,
    *,
    optimize_runs: int = DEFAULT_OPTIMIZE_RUNS,
    binary: str = "solc",
) -> bytes:
    if not is_solc_installed(binary):
        raise ToolingError(
            f"{binary} is required to compile {source_path} but was not found on PATH",
            code=ERR_COMPILER_FAILED,
            hint="install solc, or pass a saved `solc --combined-json` output file instead",
        )

    cmd = [
        binary,
        "--optimize",
        "--optimize-runs",
        str(optimize_runs),
        "--combined-json",
        COMBINED_OUTPUTS,
        str(source_path),
    ]
    logger.debug("running %s", " ".join(cmd))
    proc = subprocess.run(cmd, capture_output=True, check=False)
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        raise ToolingError(
            f"solc: exit status {proc.returncode}\n{stderr}".rstrip(),
            code=ERR_COMPILER_FAILED,
        )
    return proc.stdout
