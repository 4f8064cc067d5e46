"""
Veridity Circuit Builder

Produces the four artifacts of a circuit and keeps the registry in step
with the disk. Builds are:

    - idempotent: a circuit that probes ready is left untouched
    - serialized per circuit name (different names may build in parallel)
    - atomic per artifact (temp file, fsync, rename)
    - always followed by a fresh probe, on success and on failure

Toolchains:
    - DevelopmentToolchain: JSON constraint system and an Ed25519 key pair,
      for local development and tests. Not zero-knowledge.
    - CircomToolchain: circom compilation and snarkjs groth16 setup.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import base64
import secrets
import tempfile
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from veridity.core import canonical_json_bytes
from veridity.zk.artifacts import ArtifactKind, ArtifactStore
from veridity.zk.circuits import CircuitDefinition, get_definition
from veridity.zk.observability import Layer, get_logger, get_tracer
from veridity.zk.process import ToolchainError, run_command
from veridity.zk.registry import CircuitInfo, CircuitRegistry

logger = get_logger("builder", Layer.BUILDER)

DEV_PROTOCOL = "ed25519-dev"
DEV_CONSTRAINT_SYSTEM_FORMAT = "veridity-dev-cs/1"
DEV_WITNESS_PLACEHOLDER = b"\x00asm-veridity-dev-witness\n"


class BuildFailureError(Exception):
    """A circuit could not be brought to the ready state."""
    def __init__(self, circuit_name: str, cause: BaseException):
        self.circuit_name = circuit_name
        self.cause = cause
        super().__init__(f"Build failed for circuit '{circuit_name}': {cause}")


@dataclass
class BuildReport:
    """Outcome of building several circuits."""
    built: Dict[str, CircuitInfo] = field(default_factory=dict)
    failed: Dict[str, BuildFailureError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "built": {name: info.to_dict() for name, info in self.built.items()},
            "failed": {name: str(err.cause) for name, err in self.failed.items()},
        }


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


# =============================================================================
# TOOLCHAINS
# =============================================================================

class Toolchain(ABC):
    """Turns a circuit definition into its four artifacts."""

    name: str = "toolchain"

    @abstractmethod
    def produce(self, definition: CircuitDefinition, workdir: Path) -> Dict[ArtifactKind, bytes]:
        """Produce every artifact's bytes, using ``workdir`` for scratch files."""
        ...


class DevelopmentToolchain(Toolchain):
    """
    Development stand-in for circuit compilation and setup.

    The constraint system is the JSON circuit definition, the witness
    program a placeholder, and the key pair an Ed25519 signing key whose
    public half is the verification key.
    """

    name = "development"

    def produce(self, definition: CircuitDefinition, workdir: Path) -> Dict[ArtifactKind, bytes]:
        constraint_system = dict(definition.to_dict(), format=DEV_CONSTRAINT_SYSTEM_FORMAT)

        private_key = Ed25519PrivateKey.generate()
        proving_key = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_raw = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        verification_key = {
            "protocol": DEV_PROTOCOL,
            "curve": "ed25519",
            "circuit": definition.name,
            "nPublic": len(definition.public_signals),
            "public_key": b64url(public_raw),
        }

        return {
            ArtifactKind.CONSTRAINT_SYSTEM: canonical_json_bytes(constraint_system),
            ArtifactKind.WITNESS_PROGRAM: DEV_WITNESS_PLACEHOLDER,
            ArtifactKind.PROVING_KEY: proving_key,
            ArtifactKind.VERIFICATION_KEY: canonical_json_bytes(verification_key),
        }


class CircomToolchain(Toolchain):
    """
    circom + snarkjs groth16 pipeline.

    Expects ``<sources_dir>/<circuit>.circom`` and a powers-of-tau file.
    """

    name = "circom"

    def __init__(
        self,
        sources_dir: Union[str, Path],
        ptau_path: Union[str, Path],
        circom_bin: str = "circom",
        snarkjs_bin: str = "snarkjs",
        timeout: Optional[float] = None,
    ):
        self.sources_dir = Path(sources_dir)
        self.ptau_path = Path(ptau_path)
        self.circom_bin = circom_bin
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    def produce(self, definition: CircuitDefinition, workdir: Path) -> Dict[ArtifactKind, bytes]:
        name = definition.name
        source = self.sources_dir / f"{name}.circom"
        if not source.is_file():
            raise ToolchainError(f"circuit source not found: {source}")
        if not self.ptau_path.is_file():
            raise ToolchainError(f"powers of tau file not found: {self.ptau_path}")

        run_command(
            [self.circom_bin, source.resolve(), "--r1cs", "--wasm", "--sym", "-o", workdir],
            cwd=workdir,
            timeout=self.timeout,
        )
        r1cs = workdir / f"{name}.r1cs"
        wasm = workdir / f"{name}_js" / f"{name}.wasm"

        initial_zkey = workdir / f"{name}_0000.zkey"
        final_zkey = workdir / f"{name}_0001.zkey"
        vkey = workdir / "verification_key.json"

        run_command(
            [self.snarkjs_bin, "groth16", "setup", r1cs, self.ptau_path.resolve(), initial_zkey],
            cwd=workdir,
            timeout=self.timeout,
        )
        run_command(
            [
                self.snarkjs_bin, "zkey", "contribute", initial_zkey, final_zkey,
                "--name=veridity", f"-e={secrets.token_hex(32)}",
            ],
            cwd=workdir,
            timeout=self.timeout,
        )
        run_command(
            [self.snarkjs_bin, "zkey", "export", "verificationkey", final_zkey, vkey],
            cwd=workdir,
            timeout=self.timeout,
        )

        outputs = {
            ArtifactKind.CONSTRAINT_SYSTEM: r1cs,
            ArtifactKind.WITNESS_PROGRAM: wasm,
            ArtifactKind.PROVING_KEY: final_zkey,
            ArtifactKind.VERIFICATION_KEY: vkey,
        }
        missing = [str(path) for path in outputs.values() if not path.is_file()]
        if missing:
            raise ToolchainError(f"toolchain did not produce: {', '.join(missing)}")
        return {kind: path.read_bytes() for kind, path in outputs.items()}


# =============================================================================
# BUILDER
# =============================================================================

class CircuitBuilder:
    """
    Builds circuits into the artifact store.

    Example:
        builder = CircuitBuilder(store, registry, DevelopmentToolchain(), standard_circuits())
        info = builder.build("age_verification")
        assert info.ready
    """

    def __init__(
        self,
        store: ArtifactStore,
        registry: CircuitRegistry,
        toolchain: Toolchain,
        definitions: Dict[str, CircuitDefinition],
        workers: int = 2,
    ):
        self.store = store
        self.registry = registry
        self.toolchain = toolchain
        self.definitions = dict(definitions)
        self.workers = workers
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def build(self, name: str) -> CircuitInfo:
        """
        Bring one circuit to the ready state.

        Raises:
            BuildFailureError: when the toolchain or artifact writes raise
                anything, or the circuit is still not ready afterwards
        """
        try:
            definition = get_definition(name, self.definitions)
        except KeyError as e:
            raise BuildFailureError(name, e) from None

        with self._lock_for(name):
            info = self.registry.probe(name)
            if info.ready:
                logger.debug("Circuit already built", circuit=name)
                return info

            error: Optional[BaseException] = None
            with get_tracer().span("build", Layer.BUILDER, circuit=name, toolchain=self.toolchain.name):
                try:
                    self.store.ensure_dir(name)
                    with tempfile.TemporaryDirectory(prefix=f"veridity-build-{name}-") as workdir:
                        artifacts = self.toolchain.produce(definition, Path(workdir))
                        missing = [k.filename for k in ArtifactKind if k not in artifacts]
                        if missing:
                            raise ToolchainError(f"toolchain did not produce: {', '.join(missing)}")
                        for kind in ArtifactKind:
                            self.store.write_artifact(name, kind, artifacts[kind])
                except Exception as e:
                    error = e
                finally:
                    info = self.registry.probe(name)

            if error is None and not info.ready:
                error = ToolchainError(f"circuit not ready after build (state {info.state.value})")
            if error is not None:
                logger.error("Circuit build failed", circuit=name, error=str(error))
                raise BuildFailureError(name, error) from error

            logger.info("Circuit built", circuit=name, toolchain=self.toolchain.name)
            return info

    def build_all(self, names: Optional[Iterable[str]] = None) -> BuildReport:
        """Build circuits one after another; a failure does not stop the rest."""
        report = BuildReport()
        for name in (list(names) if names is not None else list(self.definitions)):
            try:
                report.built[name] = self.build(name)
            except BuildFailureError as e:
                report.failed[name] = e
        if report.failed:
            logger.warning(
                "Some circuits failed to build",
                built=sorted(report.built),
                failed=sorted(report.failed),
            )
        return report

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_guard:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix="veridity-build"
                )
            return self._executor

    def submit(self, name: str) -> "Future[CircuitInfo]":
        """Build one circuit on the background pool."""
        return self._pool().submit(self.build, name)

    def submit_all(self, names: Optional[Iterable[str]] = None) -> "Future[BuildReport]":
        """Run ``build_all`` on the background pool."""
        names = list(names) if names is not None else None
        return self._pool().submit(self.build_all, names)

    def clean(self, name: str) -> CircuitInfo:
        """Delete a circuit's artifacts and re-probe."""
        with self._lock_for(name):
            self.store.remove(name)
            return self.registry.probe(name)

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_guard:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None
