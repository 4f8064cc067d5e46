"""
External tool invocation.

circom and snarkjs are driven as subprocesses; this module normalizes
their failures (missing executable, non-zero exit, timeout) into
``ToolchainError``.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Union

from veridity.zk.observability import Layer, get_logger

logger = get_logger("process", Layer.BUILDER)


class ToolchainError(Exception):
    """An external tool failed or produced unusable output."""
    def __init__(self, message: str, command: Optional[Sequence[str]] = None, stderr: str = ""):
        self.command = list(command) if command else []
        self.stderr = stderr
        super().__init__(message)


def run_command(
    command: Sequence[Union[str, Path]],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> str:
    """Run a tool to completion and return its stdout."""
    args: List[str] = [str(part) for part in command]
    logger.debug("Running external tool", tool=args[0], args=len(args) - 1)
    try:
        result = subprocess.run(
            args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
            check=True,
        )
    except FileNotFoundError as e:
        raise ToolchainError(f"{args[0]} not found", args) from e
    except subprocess.TimeoutExpired as e:
        raise ToolchainError(f"{args[0]} timed out after {timeout}s", args) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise ToolchainError(
            f"{args[0]} exited with status {e.returncode}: {stderr[-500:]}", args, stderr
        ) from e
    return result.stdout
