"""
Tests for the artifact store and circuit registry.

Covers directory layout, atomic writes, probe error handling and the
derived readiness flags.
"""

import errno
import json
import os
import pathlib
import threading
from unittest import mock

import pytest

from veridity.zk.artifacts import (
    ArtifactKind,
    ArtifactProbeError,
    ArtifactStore,
    InvalidArtifactError,
    validate_circuit_name,
)
from veridity.zk.registry import CircuitInfo, CircuitRegistry, CircuitState


def _write_all(store, name, kinds=tuple(ArtifactKind)):
    for kind in kinds:
        store.write_artifact(name, kind, b"x")


class TestArtifactStore:
    """Tests for the per-circuit artifact directories."""

    def test_layout_uses_four_fixed_file_names(self, store):
        assert sorted(k.filename for k in ArtifactKind) == [
            "circuit.r1cs",
            "circuit.wasm",
            "proving_key.zkey",
            "verification_key.json",
        ]
        path = store.artifact_path("age_verification", ArtifactKind.PROVING_KEY)
        assert path == store.root / "age_verification" / "proving_key.zkey"

    def test_exists_false_when_directory_missing(self, store):
        assert store.exists("age_verification", ArtifactKind.CONSTRAINT_SYSTEM) is False

    def test_write_then_exists(self, store):
        store.write_artifact("age_verification", ArtifactKind.WITNESS_PROGRAM, b"wasm")
        assert store.exists("age_verification", ArtifactKind.WITNESS_PROGRAM)
        assert store.read_artifact("age_verification", ArtifactKind.WITNESS_PROGRAM) == b"wasm"

    def test_directory_in_place_of_file_is_not_present(self, store):
        (store.circuit_dir("age_verification") / "circuit.r1cs").mkdir(parents=True)
        assert store.exists("age_verification", ArtifactKind.CONSTRAINT_SYSTEM) is False

    def test_permission_error_raises_probe_error(self, store):
        denied = PermissionError(errno.EACCES, "denied")
        with mock.patch.object(pathlib.Path, "stat", side_effect=denied):
            with pytest.raises(ArtifactProbeError) as exc_info:
                store.exists("age_verification", ArtifactKind.PROVING_KEY)
        assert exc_info.value.circuit_name == "age_verification"
        assert exc_info.value.kind == ArtifactKind.PROVING_KEY
        assert exc_info.value.cause is denied

    def test_write_leaves_no_temp_files(self, store):
        store.write_artifact("age_verification", ArtifactKind.PROVING_KEY, b"k" * 1024)
        store.write_artifact("age_verification", ArtifactKind.PROVING_KEY, b"j" * 10)
        names = os.listdir(store.circuit_dir("age_verification"))
        assert names == ["proving_key.zkey"]
        assert store.read_artifact("age_verification", ArtifactKind.PROVING_KEY) == b"j" * 10

    def test_failed_write_keeps_previous_content(self, store):
        store.write_artifact("age_verification", ArtifactKind.PROVING_KEY, b"old")
        with mock.patch("veridity.core.os.replace", side_effect=OSError(errno.EIO, "io")):
            with pytest.raises(OSError):
                store.write_artifact("age_verification", ArtifactKind.PROVING_KEY, b"new")
        assert store.read_artifact("age_verification", ArtifactKind.PROVING_KEY) == b"old"
        assert os.listdir(store.circuit_dir("age_verification")) == ["proving_key.zkey"]

    @pytest.mark.parametrize("name", ["", "../etc", "a/b", "Age", "-x", "x" * 65])
    def test_rejects_unsafe_names(self, store, name):
        with pytest.raises(ValueError):
            store.circuit_dir(name)

    def test_accepts_simple_names(self):
        assert validate_circuit_name("income_verification") == "income_verification"
        assert validate_circuit_name("a") == "a"

    def test_load_verification_key_validates_schema(self, store):
        store.write_artifact("a", ArtifactKind.VERIFICATION_KEY, json.dumps({"curve": "bn128"}).encode())
        with pytest.raises(InvalidArtifactError):
            store.load_verification_key("a")

    def test_load_verification_key_rejects_non_json(self, store):
        store.write_artifact("a", ArtifactKind.VERIFICATION_KEY, b"not json")
        with pytest.raises(InvalidArtifactError):
            store.load_verification_key("a")

    def test_load_verification_key(self, store):
        vk = {"protocol": "groth16", "curve": "bn128", "nPublic": 3}
        store.write_artifact("a", ArtifactKind.VERIFICATION_KEY, json.dumps(vk).encode())
        assert store.load_verification_key("a") == vk

    def test_checksums_cover_present_artifacts(self, store):
        store.write_artifact("a", ArtifactKind.CONSTRAINT_SYSTEM, b"abc")
        sums = store.checksums("a")
        assert sums == {
            "circuit.r1cs": "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        }

    def test_remove(self, store):
        _write_all(store, "a")
        assert store.remove("a") is True
        assert store.remove("a") is False
        assert not store.circuit_dir("a").exists()


class TestCircuitInfo:
    """Tests for derived readiness flags."""

    @pytest.mark.parametrize("cs,wp,pk,vk", [
        (a, b, c, d)
        for a in (False, True) for b in (False, True)
        for c in (False, True) for d in (False, True)
    ])
    def test_ready_is_conjunction_of_raw_flags(self, cs, wp, pk, vk):
        info = CircuitInfo("a", cs, wp, pk, vk)
        assert info.compiled == (cs and wp)
        assert info.set_up == (pk and vk)
        assert info.ready == (cs and wp and pk and vk)

    def test_derived_flags_cannot_be_set(self):
        info = CircuitInfo("a")
        with pytest.raises(AttributeError):
            info.ready = True  # type: ignore[misc]

    def test_states(self):
        assert CircuitInfo("a").state == CircuitState.NOT_COMPILED
        assert CircuitInfo("a", True, True).state == CircuitState.COMPILED_ONLY
        assert CircuitInfo("a", False, False, True, True).state == CircuitState.SET_UP_ONLY
        assert CircuitInfo("a", True, True, True, True).state == CircuitState.READY

    def test_to_dict(self):
        d = CircuitInfo("a", True, True, True, True, probed_at="2024-01-01T00:00:00+00:00").to_dict()
        assert d["ready"] is True
        assert d["state"] == "ready"
        assert d["probed_at"] == "2024-01-01T00:00:00+00:00"


class TestCircuitRegistry:
    """Tests for the readiness cache."""

    def test_unprobed_until_first_probe(self, registry):
        assert registry.state("age_verification") == CircuitState.UNPROBED
        assert registry.all_statuses() == {}

    def test_is_ready_probes_unknown_circuit(self, registry):
        assert registry.is_ready("age_verification") is False
        assert registry.state("age_verification") == CircuitState.NOT_COMPILED

    def test_probe_reflects_disk(self, store, registry):
        _write_all(store, "age_verification")
        info = registry.probe("age_verification")
        assert info.ready
        assert registry.is_ready("age_verification")

    def test_state_moves_backwards_when_artifact_deleted(self, store, registry):
        _write_all(store, "age_verification")
        assert registry.probe("age_verification").state == CircuitState.READY

        store.artifact_path("age_verification", ArtifactKind.PROVING_KEY).unlink()
        assert registry.probe("age_verification").state == CircuitState.COMPILED_ONLY

    def test_is_ready_uses_cache_until_probed(self, store, registry):
        assert registry.is_ready("age_verification") is False
        _write_all(store, "age_verification")
        assert registry.is_ready("age_verification") is False
        registry.probe("age_verification")
        assert registry.is_ready("age_verification") is True

    def test_probe_error_treated_as_absent(self, store, registry):
        _write_all(store, "age_verification")
        original = store.exists

        def flaky(name, kind):
            if kind == ArtifactKind.VERIFICATION_KEY:
                raise ArtifactProbeError(name, kind, PermissionError(errno.EACCES, "denied"))
            return original(name, kind)

        with mock.patch.object(store, "exists", side_effect=flaky):
            info = registry.probe("age_verification")

        assert info.has_constraint_system
        assert not info.has_verification_key
        assert not info.ready

    def test_all_statuses_is_a_snapshot(self, registry):
        registry.probe("age_verification")
        snapshot = registry.all_statuses()
        snapshot.clear()
        assert "age_verification" in registry.all_statuses()

    def test_refresh_probes_every_known_name(self, registry):
        statuses = registry.refresh()
        assert set(statuses) == set(registry.known_names)

    def test_probe_new_name_becomes_known(self, store):
        registry = CircuitRegistry(store)
        registry.probe("custom")
        assert registry.known_names == ["custom"]

    def test_concurrent_probes(self, store, registry):
        _write_all(store, "age_verification")
        results = []

        def worker():
            results.append(registry.probe("age_verification").ready)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results == [True] * 8
