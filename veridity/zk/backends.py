"""
Veridity Proving Backends

A ``ProofBackend`` proves a claim against a circuit's artifacts and
verifies proofs against a verification key. Three variants:

    - SnarkjsBackend: groth16 through the snarkjs CLI (production)
    - DevelopmentBackend: checks the circuit's declared constraints and
      signs the public signals with Ed25519. Sound for the declared
      predicates but NOT zero-knowledge; for development and tests.
    - MockBackend: deterministic placeholder proofs shaped like groth16
      output. Its proofs never verify.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from veridity.core import canonical_json_bytes, field_hash
from veridity.zk.artifacts import CircuitArtifacts
from veridity.zk.builder import DEV_CONSTRAINT_SYSTEM_FORMAT, DEV_PROTOCOL, b64url
from veridity.zk.circuits import CircuitDefinition, check_constraints, public_signal_values
from veridity.zk.observability import Layer, get_logger
from veridity.zk.process import ToolchainError, run_command

logger = get_logger("backend", Layer.BACKEND)

MOCK_VERIFICATION_KEY: Dict[str, Any] = {
    "protocol": "groth16",
    "curve": "bn128",
    "nPublic": 1,
}

# snarkjs prints this line only for a valid proof; its logger may colour it
SNARKJS_VERIFIED = re.compile(r"^\[INFO\]\s+snarkJS: OK!\s*$", re.MULTILINE)
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


class ConstraintViolation(Exception):
    """A claim does not satisfy the circuit it was submitted to."""
    def __init__(self, circuit_name: str, violations: List[str]):
        self.circuit_name = circuit_name
        self.violations = violations
        super().__init__(f"Claim violates circuit '{circuit_name}': {'; '.join(violations)}")


class VerificationError(Exception):
    """Verification could not be carried out (malformed key, proof or signals)."""
    pass


@dataclass
class ProverOutput:
    """Raw prover result before it is wrapped in an envelope."""
    proof: Dict[str, Any]
    public_signals: List[str]


class ProofBackend(ABC):
    """Proving backend capability."""

    name: str = "backend"

    @abstractmethod
    def prove(self, artifacts: CircuitArtifacts, claim: Dict[str, str]) -> ProverOutput:
        """Produce a proof for ``claim`` using the circuit's artifacts."""
        ...

    @abstractmethod
    def verify(
        self,
        verification_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Dict[str, Any],
    ) -> bool:
        """Check a proof. May raise ``VerificationError`` on malformed input."""
        ...


def _require_signals(public_signals: Sequence[str]) -> List[str]:
    if isinstance(public_signals, (str, bytes)) or not isinstance(public_signals, (list, tuple)):
        raise VerificationError("public signals must be a sequence")
    signals = list(public_signals)
    for s in signals:
        if not isinstance(s, str) or not s.isdigit():
            raise VerificationError("public signals must be decimal strings")
    return signals


# =============================================================================
# SNARKJS
# =============================================================================

class SnarkjsBackend(ProofBackend):
    """groth16 proving and verification through the snarkjs CLI."""

    name = "snarkjs"

    def __init__(self, snarkjs_bin: str = "snarkjs", timeout: Optional[float] = None):
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    def prove(self, artifacts: CircuitArtifacts, claim: Dict[str, str]) -> ProverOutput:
        with tempfile.TemporaryDirectory(prefix=f"veridity-prove-{artifacts.name}-") as tmp:
            workdir = Path(tmp)
            input_path = workdir / "input.json"
            proof_path = workdir / "proof.json"
            public_path = workdir / "public.json"
            input_path.write_text(json.dumps(claim), encoding="utf-8")

            run_command(
                [
                    self.snarkjs_bin, "groth16", "fullprove", input_path,
                    artifacts.witness_program, artifacts.proving_key, proof_path, public_path,
                ],
                cwd=workdir,
                timeout=self.timeout,
            )
            try:
                proof = json.loads(proof_path.read_text(encoding="utf-8"))
                public_signals = json.loads(public_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise ToolchainError(f"snarkjs produced unreadable output: {e}") from e

        return ProverOutput(proof=proof, public_signals=[str(s) for s in public_signals])

    def verify(
        self,
        verification_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Dict[str, Any],
    ) -> bool:
        signals = _require_signals(public_signals)
        if not isinstance(verification_key, dict) or verification_key.get("protocol") != "groth16":
            raise VerificationError("verification key is not a groth16 key")
        if not isinstance(proof, dict) or proof.get("protocol", "groth16") != "groth16":
            raise VerificationError("proof is not a groth16 proof")

        with tempfile.TemporaryDirectory(prefix="veridity-verify-") as tmp:
            workdir = Path(tmp)
            vk_path = workdir / "verification_key.json"
            public_path = workdir / "public.json"
            proof_path = workdir / "proof.json"
            vk_path.write_text(json.dumps(verification_key), encoding="utf-8")
            public_path.write_text(json.dumps(signals), encoding="utf-8")
            proof_path.write_text(json.dumps(proof), encoding="utf-8")

            try:
                stdout = run_command(
                    [self.snarkjs_bin, "groth16", "verify", vk_path, public_path, proof_path],
                    cwd=workdir,
                    timeout=self.timeout,
                )
            except ToolchainError as e:
                raise VerificationError(str(e)) from e

        return SNARKJS_VERIFIED.search(_ANSI_ESCAPE.sub("", stdout)) is not None


# =============================================================================
# DEVELOPMENT
# =============================================================================

def _b64url_decode(value: str) -> bytes:
    if not isinstance(value, str):
        raise VerificationError("expected base64url string")
    try:
        return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except (binascii.Error, ValueError) as e:
        raise VerificationError(f"invalid base64url: {e}") from e


def signing_payload(circuit_name: str, public_signals: Sequence[str]) -> bytes:
    return canonical_json_bytes({"circuit": circuit_name, "public_signals": list(public_signals)})


class DevelopmentBackend(ProofBackend):
    """
    Constraint-checking signer over development artifacts.

    A proof attests that the circuit's declared predicates held for the
    claim; the verifier learns the public signals only. The signature
    scheme reveals nothing about private signals but offers no
    zero-knowledge guarantee beyond that.
    """

    name = "development"

    def load_definition(self, artifacts: CircuitArtifacts) -> CircuitDefinition:
        try:
            data = json.loads(artifacts.constraint_system.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ToolchainError(f"constraint system for '{artifacts.name}' is not JSON") from e
        if not isinstance(data, dict) or data.get("format") != DEV_CONSTRAINT_SYSTEM_FORMAT:
            raise ToolchainError(
                f"constraint system for '{artifacts.name}' is not a development constraint system"
            )
        return CircuitDefinition.from_dict(data)

    def prove(self, artifacts: CircuitArtifacts, claim: Dict[str, str]) -> ProverOutput:
        definition = self.load_definition(artifacts)
        violations = check_constraints(definition, claim)
        if violations:
            raise ConstraintViolation(artifacts.name, violations)

        private_key = serialization.load_pem_private_key(
            artifacts.proving_key.read_bytes(), password=None
        )
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ToolchainError(f"proving key for '{artifacts.name}' is not an Ed25519 key")

        public_signals = public_signal_values(definition, claim)
        signature = private_key.sign(signing_payload(definition.name, public_signals))
        return ProverOutput(
            proof={
                "protocol": DEV_PROTOCOL,
                "curve": "ed25519",
                "signature": b64url(signature),
            },
            public_signals=public_signals,
        )

    def verify(
        self,
        verification_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Dict[str, Any],
    ) -> bool:
        signals = _require_signals(public_signals)
        if not isinstance(verification_key, dict) or verification_key.get("protocol") != DEV_PROTOCOL:
            raise VerificationError("verification key is not a development key")
        if not isinstance(proof, dict) or proof.get("protocol") != DEV_PROTOCOL:
            raise VerificationError("proof is not a development proof")

        if verification_key.get("nPublic") != len(signals):
            return False

        circuit_name = verification_key.get("circuit")
        if not isinstance(circuit_name, str):
            raise VerificationError("verification key does not name its circuit")

        try:
            public_key = Ed25519PublicKey.from_public_bytes(
                _b64url_decode(verification_key.get("public_key"))
            )
        except ValueError as e:
            raise VerificationError(f"invalid public key: {e}") from e
        signature = _b64url_decode(proof.get("signature"))

        try:
            public_key.verify(signature, signing_payload(circuit_name, signals))
        except InvalidSignature:
            return False
        return True


# =============================================================================
# MOCK
# =============================================================================

class MockBackend(ProofBackend):
    """
    Deterministic placeholder proofs.

    The only public signal is a field hash of the canonical
    ``{circuit, input}`` document, so equal requests give byte-identical
    proofs and any changed input changes the output. The proof shape
    matches snarkjs groth16 output; provenance is carried by the envelope.
    """

    name = "mock"

    def mock_signal(self, circuit_name: str, claim: Dict[str, str]) -> str:
        return field_hash(canonical_json_bytes({"circuit": circuit_name, "input": claim}))

    def prove(self, artifacts: CircuitArtifacts, claim: Dict[str, str]) -> ProverOutput:
        return self.generate(artifacts.name, claim)

    def generate(self, circuit_name: str, claim: Dict[str, str]) -> ProverOutput:
        signal = self.mock_signal(circuit_name, claim)

        def element(label: str) -> str:
            return field_hash(f"veridity/mock/{signal}/{label}")

        proof = {
            "pi_a": [element("a0"), element("a1"), "1"],
            "pi_b": [
                [element("b00"), element("b01")],
                [element("b10"), element("b11")],
                ["1", "0"],
            ],
            "pi_c": [element("c0"), element("c1"), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }
        return ProverOutput(proof=proof, public_signals=[signal])

    def verification_key(self) -> Dict[str, Any]:
        return dict(MOCK_VERIFICATION_KEY)

    def verify(
        self,
        verification_key: Dict[str, Any],
        public_signals: Sequence[str],
        proof: Dict[str, Any],
    ) -> bool:
        return False


def create_backend(name: str, snarkjs_bin: str = "snarkjs", timeout: Optional[float] = None) -> ProofBackend:
    """Instantiate a real backend by configuration name."""
    if name == "snarkjs":
        return SnarkjsBackend(snarkjs_bin=snarkjs_bin, timeout=timeout)
    if name == "development":
        return DevelopmentBackend()
    raise ValueError(f"unknown backend: {name}")
