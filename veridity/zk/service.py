"""
Veridity Proof Service

Façade over the circuit registry, builder and proving backends.

Generation:

    generate_proof(circuit, claim)
        │
        ├─ registry.is_ready(circuit)? ── no ──────────────┐
        │                                                  │
        ├─ bulkhead ─► breaker ─► timeout ─► backend.prove │
        │        any rejection, timeout or error ──────────┤
        │                                                  ▼
        └─► ZKProof(source="backend")          ZKProof(source="mock", degraded_reason)
                                               or ProofGenerationDegraded (strict mode)

Verification is total and fail-closed: any exception, malformed input or
unavailable backend yields ``False``.

The service holds no proof or claim data between calls. Construct one
instance at process start (``create_proof_service``) and pass it to
callers.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from veridity import __version__
from veridity.core import canonical_json_bytes, sha256_file
from veridity.zk.artifacts import ArtifactStore
from veridity.zk.backends import ConstraintViolation, MockBackend, ProofBackend, create_backend
from veridity.zk.builder import BuildReport, CircomToolchain, CircuitBuilder, DevelopmentToolchain, Toolchain
from veridity.zk.circuits import CircuitDefinition, standard_circuits
from veridity.zk.config import ConfigManager, VeridityConfig
from veridity.zk.encoders import (
    ClaimInput,
    encode_age_claim,
    encode_citizenship_claim,
    encode_education_claim,
    encode_income_claim,
)
from veridity.zk.observability import Layer, configure_logging, get_logger, get_tracer
from veridity.zk.proof import InvalidEnvelopeError, ProofSource, ZKProof
from veridity.zk.registry import CircuitInfo, CircuitRegistry
from veridity.zk.resilience import (
    Bulkhead,
    BulkheadFullError,
    CircuitBreaker,
    CircuitBreakerOpenError,
    OperationTimeoutError,
    Timeout,
)

logger = get_logger("service", Layer.SERVICE)


class ProofGenerationDegraded(Exception):
    """A real proof could not be produced for the circuit."""
    def __init__(self, circuit_name: str, reason: str):
        self.circuit_name = circuit_name
        self.reason = reason
        super().__init__(f"Proof generation degraded for '{circuit_name}': {reason}")


class ProofService:
    """
    Proof generation and verification.

    Example:
        service = create_proof_service(config)
        service.build_circuits()
        proof = service.generate_age_proof(date(2000, 1, 1), 18, salt)
        assert service.verify_envelope(proof)
    """

    def __init__(
        self,
        store: ArtifactStore,
        registry: CircuitRegistry,
        builder: CircuitBuilder,
        backend: ProofBackend,
        mock: Optional[MockBackend] = None,
        prove_timeout_seconds: float = 30.0,
        prove_workers: int = 4,
        breaker_failure_threshold: int = 5,
        breaker_reset_seconds: float = 30.0,
        fail_on_degraded: bool = False,
        allow_citizenship_validity_stub: bool = False,
    ):
        self.store = store
        self.registry = registry
        self.builder = builder
        self.backend = backend
        self.mock = mock or MockBackend()
        self.fail_on_degraded = fail_on_degraded
        self.allow_citizenship_validity_stub = allow_citizenship_validity_stub

        self._pool = ThreadPoolExecutor(max_workers=prove_workers, thread_name_prefix="veridity-prove")
        self._bulkhead = Bulkhead("prover", max_concurrent=prove_workers)
        self._breaker = CircuitBreaker(
            "prover",
            failure_threshold=breaker_failure_threshold,
            reset_seconds=breaker_reset_seconds,
            excluded_exceptions=(ConstraintViolation,),
        )
        self._timeout = Timeout(seconds=prove_timeout_seconds, name="prove")

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def generate_proof(self, circuit_name: str, claim: ClaimInput) -> ZKProof:
        """
        Produce a proof envelope for ``claim``.

        Returns a backend envelope when the circuit is ready and proving
        succeeds; otherwise a mock envelope tagged with the reason, or
        ``ProofGenerationDegraded`` when ``fail_on_degraded`` is set.
        """
        claim = dict(claim)
        with get_tracer().span("generate_proof", Layer.SERVICE, circuit=circuit_name) as span:
            if not self.registry.is_ready(circuit_name):
                state = self.registry.state(circuit_name).value
                return self._degrade(circuit_name, claim, f"circuit not ready ({state})")

            try:
                proof = self._prove(circuit_name, claim)
            except CircuitBreakerOpenError:
                return self._degrade(circuit_name, claim, "proving backend unavailable (circuit breaker open)")
            except BulkheadFullError:
                return self._degrade(circuit_name, claim, "proving capacity exhausted")
            except OperationTimeoutError as e:
                return self._degrade(circuit_name, claim, f"proving timed out after {e.timeout_seconds}s")
            except Exception as e:
                return self._degrade(circuit_name, claim, f"{type(e).__name__}: {e}")

            span.set_attribute("source", proof.source.value)
            return proof

    def _prove(self, circuit_name: str, claim: ClaimInput) -> ZKProof:
        artifacts = self.store.artifacts(circuit_name)
        started = time.monotonic()

        self._bulkhead.acquire()
        handed_off = False
        try:
            with self._breaker:
                future = self._pool.submit(self.backend.prove, artifacts, claim)
                # the permit follows the worker, which may outlive a timed-out wait
                future.add_done_callback(lambda _f: self._bulkhead.release())
                handed_off = True
                output = self._timeout.wait(future, started)
        finally:
            if not handed_off:
                self._bulkhead.release()

        verification_key = self.store.load_verification_key(circuit_name)
        generation_ms = int((time.monotonic() - started) * 1000)
        metadata = {
            "circuit_hash": sha256_file(artifacts.constraint_system),
            "generation_ms": generation_ms,
            "proof_size": len(canonical_json_bytes(output.proof)),
            "version": __version__,
        }
        logger.info(
            "Proof generated",
            circuit=circuit_name,
            backend=self.backend.name,
            generation_ms=generation_ms,
        )
        return ZKProof(
            circuit=circuit_name,
            proof=output.proof,
            public_signals=output.public_signals,
            verification_key=verification_key,
            source=ProofSource.BACKEND,
            backend=self.backend.name,
            metadata=metadata,
        )

    def _degrade(self, circuit_name: str, claim: ClaimInput, reason: str) -> ZKProof:
        logger.warning("Proof generation degraded", circuit=circuit_name, reason=reason)
        if self.fail_on_degraded:
            raise ProofGenerationDegraded(circuit_name, reason)

        output = self.mock.generate(circuit_name, claim)
        return ZKProof(
            circuit=circuit_name,
            proof=output.proof,
            public_signals=output.public_signals,
            verification_key=self.mock.verification_key(),
            source=ProofSource.MOCK,
            backend=self.mock.name,
            degraded_reason=reason,
        )

    def generate_age_proof(
        self,
        date_of_birth: Union[date, str],
        minimum_age: int,
        salt: str,
        today: Optional[date] = None,
    ) -> ZKProof:
        claim = encode_age_claim(date_of_birth, minimum_age, salt, today=today)
        return self.generate_proof("age_verification", claim)

    def generate_citizenship_proof(
        self,
        citizenship_number: str,
        issue_date: Union[date, str],
        salt: str,
        is_valid: Optional[bool] = None,
    ) -> ZKProof:
        claim = encode_citizenship_claim(
            citizenship_number,
            issue_date,
            salt,
            is_valid=is_valid,
            allow_validity_stub=self.allow_citizenship_validity_stub,
        )
        return self.generate_proof("citizenship_verification", claim)

    def generate_education_proof(
        self,
        education_level: Union[str, int],
        minimum_level: Union[str, int],
        salt: str,
    ) -> ZKProof:
        claim = encode_education_claim(education_level, minimum_level, salt)
        return self.generate_proof("education_verification", claim)

    def generate_income_proof(
        self,
        annual_income: Union[int, Decimal],
        income_threshold: Union[int, Decimal],
        salt: str,
    ) -> ZKProof:
        claim = encode_income_claim(annual_income, income_threshold, salt)
        return self.generate_proof("income_verification", claim)

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def verify_proof(
        self,
        proof: Any,
        public_signals: Any,
        verification_key: Any,
    ) -> bool:
        """Verify a proof triple. Never raises; anything but a valid proof is ``False``."""
        try:
            valid = bool(self.backend.verify(verification_key, public_signals, proof))
        except Exception as e:
            logger.warning(
                "Proof verification failed closed",
                backend=self.backend.name,
                error=f"{type(e).__name__}: {e}",
            )
            return False
        logger.info("Proof verified", backend=self.backend.name, valid=valid)
        return valid

    def verify_envelope(self, envelope: Union[ZKProof, Dict[str, Any]]) -> bool:
        """Verify a whole envelope. Mock envelopes are always rejected."""
        try:
            proof = envelope if isinstance(envelope, ZKProof) else ZKProof.from_dict(envelope)
        except (InvalidEnvelopeError, TypeError, KeyError, ValueError) as e:
            logger.warning("Rejected malformed proof envelope", error=str(e))
            return False

        if proof.source != ProofSource.BACKEND:
            logger.warning("Rejected mock proof envelope", circuit=proof.circuit)
            return False

        vk_circuit = proof.verification_key.get("circuit")
        if vk_circuit is not None and vk_circuit != proof.circuit:
            logger.warning("Verification key belongs to another circuit", circuit=proof.circuit)
            return False

        return self.verify_proof(proof.proof, proof.public_signals, proof.verification_key)

    def verify_many(self, envelopes: Iterable[Union[ZKProof, Dict[str, Any]]]) -> List[bool]:
        return [self.verify_envelope(e) for e in envelopes]

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def build_circuits(self, names: Optional[Sequence[str]] = None) -> BuildReport:
        """Build every known circuit (or ``names``), blocking until done."""
        return self.builder.build_all(names if names is not None else self.registry.known_names)

    def build_circuits_async(self, names: Optional[Sequence[str]] = None) -> "Future[BuildReport]":
        """Schedule ``build_circuits`` on the builder's background pool."""
        return self.builder.submit_all(names if names is not None else self.registry.known_names)

    def get_build_status(self, refresh: bool = False) -> Dict[str, CircuitInfo]:
        """Readiness of every known circuit, probing those never seen."""
        if refresh:
            return self.registry.refresh()
        for name in self.registry.known_names:
            self.registry.get(name)
        return self.registry.all_statuses()

    def clean_circuit(self, name: str) -> CircuitInfo:
        return self.builder.clean(name)

    def shutdown(self) -> None:
        self.builder.shutdown(wait=True)
        self._pool.shutdown(wait=False)


def _toolchain_for(config: VeridityConfig) -> Toolchain:
    zk = config.zk
    if zk.backend.get() == "snarkjs":
        return CircomToolchain(
            sources_dir=zk.sources_dir.get(),
            ptau_path=zk.ptau_path.get(),
            circom_bin=zk.circom_bin.get(),
            snarkjs_bin=zk.snarkjs_bin.get(),
        )
    return DevelopmentToolchain()


def create_proof_service(
    config: Optional[Union[VeridityConfig, ConfigManager]] = None,
    definitions: Optional[Dict[str, CircuitDefinition]] = None,
    toolchain: Optional[Toolchain] = None,
    backend: Optional[ProofBackend] = None,
) -> ProofService:
    """
    Wire a proof service from configuration.

    ``toolchain`` and ``backend`` override the configured ones.
    """
    if isinstance(config, ConfigManager):
        config = config.config
    config = config or VeridityConfig()
    zk = config.zk

    configure_logging(config.observability.log_level.get(), config.observability.log_format.get())

    catalog = standard_circuits()
    if definitions:
        catalog.update(definitions)
    names = list(zk.circuits.get())
    unknown = [n for n in names if n not in catalog]
    if unknown:
        logger.warning("Configured circuits have no definition", circuits=unknown)

    store = ArtifactStore(Path(zk.artifacts_dir.get()))
    registry = CircuitRegistry(store, names)
    builder = CircuitBuilder(
        store,
        registry,
        toolchain or _toolchain_for(config),
        catalog,
        workers=zk.build_workers.get(),
    )
    real_backend = backend or create_backend(
        zk.backend.get(),
        snarkjs_bin=zk.snarkjs_bin.get(),
        timeout=zk.prove_timeout_seconds.get(),
    )

    logger.info(
        "Proof service created",
        backend=real_backend.name,
        artifacts_dir=str(store.root),
        circuits=names,
    )
    return ProofService(
        store,
        registry,
        builder,
        real_backend,
        prove_timeout_seconds=zk.prove_timeout_seconds.get(),
        prove_workers=zk.prove_workers.get(),
        breaker_failure_threshold=zk.breaker_failure_threshold.get(),
        breaker_reset_seconds=zk.breaker_reset_seconds.get(),
        fail_on_degraded=zk.fail_on_degraded.get(),
        allow_citizenship_validity_stub=zk.allow_citizenship_validity_stub.get(),
    )
