"""
Veridity Proof Envelope

The uniform result of proof generation. Every envelope states where it
came from: ``source`` is ``"backend"`` for a proof produced by a real
proving backend and ``"mock"`` for a deterministic placeholder returned
while proving was unavailable. Mock envelopes never verify.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from veridity.core import canonical_json_bytes
from veridity.schema import ZKPROOF_SCHEMA, validate_against_schema


class ProofSource(Enum):
    """Provenance of a proof envelope."""
    BACKEND = "backend"
    MOCK = "mock"


class InvalidEnvelopeError(ValueError):
    """A serialized envelope does not match the envelope schema."""
    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("invalid proof envelope: " + "; ".join(errors))


@dataclass
class ZKProof:
    """
    A proof with its public signals and verification key.

    ``public_signals`` follows the circuit's declared public signal order.
    """
    circuit: str
    proof: Dict[str, Any]
    public_signals: List[str]
    verification_key: Dict[str, Any]
    source: ProofSource
    backend: str = ""
    degraded_reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_mock(self) -> bool:
        return self.source == ProofSource.MOCK

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "circuit": self.circuit,
            "proof": self.proof,
            "public_signals": list(self.public_signals),
            "verification_key": self.verification_key,
            "source": self.source.value,
        }
        if self.backend:
            d["backend"] = self.backend
        if self.degraded_reason:
            d["degraded_reason"] = self.degraded_reason
        if self.metadata:
            d["metadata"] = self.metadata
        return d

    def to_json(self) -> str:
        """Canonical JSON: identical envelopes serialize to identical bytes."""
        return canonical_json_bytes(self.to_dict()).decode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ZKProof":
        """
        Parse a serialized envelope.

        Raises:
            InvalidEnvelopeError: when the data fails schema validation
        """
        errors = validate_against_schema(data, ZKPROOF_SCHEMA)
        if errors:
            raise InvalidEnvelopeError(errors)
        return cls(
            circuit=data["circuit"],
            proof=dict(data["proof"]),
            public_signals=list(data["public_signals"]),
            verification_key=dict(data["verification_key"]),
            source=ProofSource(data["source"]),
            backend=data.get("backend", ""),
            degraded_reason=data.get("degraded_reason", ""),
            metadata=dict(data.get("metadata", {})),
        )

    @classmethod
    def from_json(cls, text: str) -> "ZKProof":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidEnvelopeError([f"$: not JSON ({e})"]) from e
        return cls.from_dict(data)
