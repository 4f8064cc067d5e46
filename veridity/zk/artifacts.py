"""
Veridity Artifact Store

Filesystem bookkeeping for circuit artifacts. Each circuit owns one
directory under the artifacts root holding exactly four files:

    <root>/<circuit>/
        circuit.r1cs             constraint system
        circuit.wasm             witness program
        proving_key.zkey         proving key
        verification_key.json    verification key

Writes are atomic (temp file in the same directory, fsync, rename), so a
probe never observes a half-written artifact.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import errno
import json
import re
import shutil
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Union

from veridity.core import atomic_write_bytes, sha256_file
from veridity.schema import VERIFICATION_KEY_SCHEMA, validate_against_schema
from veridity.zk.observability import Layer, get_logger

logger = get_logger("artifacts", Layer.ARTIFACTS)

CIRCUIT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")


class ArtifactKind(Enum):
    """The four artifacts of a circuit, valued by their file names."""
    CONSTRAINT_SYSTEM = "circuit.r1cs"
    WITNESS_PROGRAM = "circuit.wasm"
    PROVING_KEY = "proving_key.zkey"
    VERIFICATION_KEY = "verification_key.json"

    @property
    def filename(self) -> str:
        return self.value


class ArtifactProbeError(Exception):
    """An artifact's presence could not be determined."""
    def __init__(self, circuit_name: str, kind: ArtifactKind, cause: BaseException):
        self.circuit_name = circuit_name
        self.kind = kind
        self.cause = cause
        super().__init__(f"Cannot probe {kind.filename} for circuit '{circuit_name}': {cause}")


class InvalidArtifactError(Exception):
    """An artifact exists but its content is unusable."""
    pass


@dataclass(frozen=True)
class CircuitArtifacts:
    """Locations of one circuit's artifacts, handed to proving backends."""
    name: str
    directory: Path

    def path(self, kind: ArtifactKind) -> Path:
        return self.directory / kind.filename

    @property
    def constraint_system(self) -> Path:
        return self.path(ArtifactKind.CONSTRAINT_SYSTEM)

    @property
    def witness_program(self) -> Path:
        return self.path(ArtifactKind.WITNESS_PROGRAM)

    @property
    def proving_key(self) -> Path:
        return self.path(ArtifactKind.PROVING_KEY)

    @property
    def verification_key(self) -> Path:
        return self.path(ArtifactKind.VERIFICATION_KEY)


def validate_circuit_name(name: str) -> str:
    """Reject names that are not simple identifiers (no path separators)."""
    if not isinstance(name, str) or not CIRCUIT_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid circuit name: {name!r}")
    return name


class ArtifactStore:
    """
    Per-circuit artifact directories under a single root.

    The store only reads and writes files; readiness bookkeeping belongs to
    the circuit registry.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def circuit_dir(self, name: str) -> Path:
        return self.root / validate_circuit_name(name)

    def artifact_path(self, name: str, kind: ArtifactKind) -> Path:
        return self.circuit_dir(name) / kind.filename

    def artifacts(self, name: str) -> CircuitArtifacts:
        return CircuitArtifacts(name=name, directory=self.circuit_dir(name))

    def ensure_dir(self, name: str) -> Path:
        """Create the circuit's directory if needed."""
        path = self.circuit_dir(name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def exists(self, name: str, kind: ArtifactKind) -> bool:
        """
        Check whether an artifact file is present.

        Absence is ``False``; any other I/O failure (permissions, broken
        mount) raises ``ArtifactProbeError``.
        """
        path = self.artifact_path(name, kind)
        try:
            mode = path.stat().st_mode
        except OSError as e:
            if e.errno in (errno.ENOENT, errno.ENOTDIR):
                return False
            raise ArtifactProbeError(name, kind, e) from e
        return stat.S_ISREG(mode)

    def write_artifact(self, name: str, kind: ArtifactKind, data: bytes) -> Path:
        """Atomically replace an artifact's content."""
        path = atomic_write_bytes(self.artifact_path(name, kind), data)
        logger.debug("Wrote artifact", circuit=name, artifact=kind.filename, size=len(data))
        return path

    def read_artifact(self, name: str, kind: ArtifactKind) -> bytes:
        return self.artifact_path(name, kind).read_bytes()

    def load_verification_key(self, name: str) -> Dict[str, Any]:
        """
        Load and schema-check a circuit's verification key.

        Raises:
            FileNotFoundError: when the key is absent
            InvalidArtifactError: when the key is not valid JSON or fails
                schema validation
        """
        raw = self.read_artifact(name, ArtifactKind.VERIFICATION_KEY)
        try:
            vk = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidArtifactError(f"verification key for '{name}' is not JSON: {e}") from e

        errors = validate_against_schema(vk, VERIFICATION_KEY_SCHEMA)
        if errors:
            raise InvalidArtifactError(
                f"verification key for '{name}' failed validation: {'; '.join(errors)}"
            )
        return vk

    def checksums(self, name: str) -> Dict[str, str]:
        """SHA-256 of each artifact that is present, keyed by file name."""
        result: Dict[str, str] = {}
        for kind in ArtifactKind:
            if self.exists(name, kind):
                result[kind.filename] = sha256_file(self.artifact_path(name, kind))
        return result

    def remove(self, name: str) -> bool:
        """Delete a circuit's artifact directory. Returns whether it existed."""
        path = self.circuit_dir(name)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.info("Removed circuit artifacts", circuit=name)
        return True
