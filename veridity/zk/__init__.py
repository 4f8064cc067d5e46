"""
Veridity ZK Orchestration Layer

Bookkeeping and services around an external zero-knowledge proving
backend.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          PROOF ORCHESTRATION                             │
    │                                                                          │
    │  FAÇADE                                                                  │
    │    service.py     Generation with mock fallback, fail-closed verify      │
    │    cli.py         Operational tooling                                    │
    │                                                                          │
    │  PROVING                                                                 │
    │    encoders.py    Domain claims to circuit input signals                 │
    │    backends.py    snarkjs, development and mock backends                 │
    │    proof.py       Provenance-tagged proof envelope                       │
    │    resilience.py  Bulkhead, circuit breaker and timeout                  │
    │                                                                          │
    │  CIRCUITS                                                                │
    │    circuits.py    Declared signals and predicates                        │
    │    artifacts.py   One directory of four artifacts per circuit           │
    │    registry.py    Readiness cache derived from artifact probes           │
    │    builder.py     Idempotent, serialized, atomic artifact builds         │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py      Typed configuration, YAML and environment              │
    │    observability.py  Structured logging and tracing                      │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Fail-Closed Verification: anything short of a valid proof verifies
    as false, including malformed input and backend errors.

    Explicit Provenance: every proof envelope says whether a real backend
    or the mock produced it. Mock proofs never verify.

    Disk Is Truth: circuit readiness is recomputed from artifact presence
    after every build; the registry is only a cache.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from veridity import __version__


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import ZK modules on first access."""

    # Service exports
    if name in ("ProofService", "ProofGenerationDegraded", "create_proof_service"):
        from veridity.zk import service
        return getattr(service, name)

    # Envelope exports
    if name in ("ZKProof", "ProofSource", "InvalidEnvelopeError"):
        from veridity.zk import proof
        return getattr(proof, name)

    # Circuit exports
    if name in ("CircuitDefinition", "standard_circuits"):
        from veridity.zk import circuits
        return getattr(circuits, name)

    # Artifact and registry exports
    if name in ("ArtifactStore", "ArtifactKind", "ArtifactProbeError"):
        from veridity.zk import artifacts
        return getattr(artifacts, name)
    if name in ("CircuitRegistry", "CircuitInfo", "CircuitState"):
        from veridity.zk import registry
        return getattr(registry, name)

    # Builder exports
    if name in ("CircuitBuilder", "BuildFailureError", "BuildReport",
                "DevelopmentToolchain", "CircomToolchain"):
        from veridity.zk import builder
        return getattr(builder, name)

    # Backend exports
    if name in ("ProofBackend", "SnarkjsBackend", "DevelopmentBackend", "MockBackend"):
        from veridity.zk import backends
        return getattr(backends, name)

    # Encoder exports
    if name in ("encode_age_claim", "encode_citizenship_claim", "encode_education_claim",
                "encode_income_claim", "citizenship_validity_stub",
                "ValidityDeterminationRequired"):
        from veridity.zk import encoders
        return getattr(encoders, name)

    # Config exports
    if name in ("ConfigManager", "VeridityConfig"):
        from veridity.zk import config
        return getattr(config, name)

    raise AttributeError(f"module 'veridity.zk' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Service
    "ProofService",
    "ProofGenerationDegraded",
    "create_proof_service",
    # Envelope
    "ZKProof",
    "ProofSource",
    "InvalidEnvelopeError",
    # Circuits
    "CircuitDefinition",
    "standard_circuits",
    "ArtifactStore",
    "ArtifactKind",
    "ArtifactProbeError",
    "CircuitRegistry",
    "CircuitInfo",
    "CircuitState",
    "CircuitBuilder",
    "BuildFailureError",
    "BuildReport",
    "DevelopmentToolchain",
    "CircomToolchain",
    # Backends
    "ProofBackend",
    "SnarkjsBackend",
    "DevelopmentBackend",
    "MockBackend",
    # Encoders
    "encode_age_claim",
    "encode_citizenship_claim",
    "encode_education_claim",
    "encode_income_claim",
    "citizenship_validity_stub",
    "ValidityDeterminationRequired",
    # Config
    "ConfigManager",
    "VeridityConfig",
]
