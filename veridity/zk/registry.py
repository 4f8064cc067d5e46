"""
Veridity Circuit Registry

In-memory readiness cache for the known circuits. Every entry is the
result of probing the artifact store; derived flags (compiled, set up,
ready) are computed from the four raw presence flags and can never be set
independently.

State per circuit:

    UNPROBED ──probe──► NOT_COMPILED | COMPILED_ONLY | SET_UP_ONLY | READY

The state mirrors disk truth at each probe and can move backwards when
artifacts disappear.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List

from veridity.core import now_iso8601
from veridity.zk.artifacts import ArtifactKind, ArtifactProbeError, ArtifactStore, validate_circuit_name
from veridity.zk.observability import Layer, get_logger

logger = get_logger("registry", Layer.REGISTRY)


class CircuitState(Enum):
    """Readiness state of a circuit."""
    UNPROBED = "unprobed"
    NOT_COMPILED = "not_compiled"
    COMPILED_ONLY = "compiled_only"
    SET_UP_ONLY = "set_up_only"
    READY = "ready"


@dataclass(frozen=True)
class CircuitInfo:
    """Artifact presence for one circuit at a point in time."""
    name: str
    has_constraint_system: bool = False
    has_witness_program: bool = False
    has_proving_key: bool = False
    has_verification_key: bool = False
    probed_at: str = ""

    @property
    def compiled(self) -> bool:
        return self.has_constraint_system and self.has_witness_program

    @property
    def set_up(self) -> bool:
        return self.has_proving_key and self.has_verification_key

    @property
    def ready(self) -> bool:
        return self.compiled and self.set_up

    @property
    def state(self) -> CircuitState:
        if self.ready:
            return CircuitState.READY
        if self.compiled:
            return CircuitState.COMPILED_ONLY
        if self.set_up:
            return CircuitState.SET_UP_ONLY
        return CircuitState.NOT_COMPILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "has_constraint_system": self.has_constraint_system,
            "has_witness_program": self.has_witness_program,
            "has_proving_key": self.has_proving_key,
            "has_verification_key": self.has_verification_key,
            "compiled": self.compiled,
            "set_up": self.set_up,
            "ready": self.ready,
            "state": self.state.value,
            "probed_at": self.probed_at,
        }


class CircuitRegistry:
    """
    Registry of circuit readiness.

    The registry is a cache of artifact-store truth; callers that need
    authoritative state after a build must probe again.
    """

    def __init__(self, store: ArtifactStore, names: Iterable[str] = ()):
        self.store = store
        self._names: List[str] = [validate_circuit_name(n) for n in names]
        self._entries: Dict[str, CircuitInfo] = {}
        self._lock = threading.RLock()

    @property
    def known_names(self) -> List[str]:
        with self._lock:
            return list(self._names)

    def _present(self, name: str, kind: ArtifactKind) -> bool:
        try:
            return self.store.exists(name, kind)
        except ArtifactProbeError as e:
            logger.warning(
                "Artifact probe failed; treating artifact as absent",
                circuit=name,
                artifact=kind.filename,
                error=str(e.cause),
            )
            return False

    def probe(self, name: str) -> CircuitInfo:
        """Stat the circuit's artifacts and store a fresh entry."""
        validate_circuit_name(name)
        info = CircuitInfo(
            name=name,
            has_constraint_system=self._present(name, ArtifactKind.CONSTRAINT_SYSTEM),
            has_witness_program=self._present(name, ArtifactKind.WITNESS_PROGRAM),
            has_proving_key=self._present(name, ArtifactKind.PROVING_KEY),
            has_verification_key=self._present(name, ArtifactKind.VERIFICATION_KEY),
            probed_at=now_iso8601(),
        )
        with self._lock:
            previous = self._entries.get(name)
            self._entries[name] = info
            if name not in self._names:
                self._names.append(name)

        if previous is None or previous.state != info.state:
            logger.info("Circuit state probed", circuit=name, state=info.state.value)
        return info

    def is_ready(self, name: str) -> bool:
        """Cached readiness, probing first when the circuit was never seen."""
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            entry = self.probe(name)
        return entry.ready

    def state(self, name: str) -> CircuitState:
        with self._lock:
            entry = self._entries.get(name)
        return entry.state if entry is not None else CircuitState.UNPROBED

    def get(self, name: str) -> CircuitInfo:
        """Cached entry, probing first when absent."""
        with self._lock:
            entry = self._entries.get(name)
        return entry if entry is not None else self.probe(name)

    def all_statuses(self) -> Dict[str, CircuitInfo]:
        """Snapshot of every probed entry."""
        with self._lock:
            return dict(self._entries)

    def refresh(self) -> Dict[str, CircuitInfo]:
        """Probe every known circuit and return the new snapshot."""
        for name in self.known_names:
            self.probe(name)
        return self.all_statuses()
