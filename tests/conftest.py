import os
import pathlib
import sys
from datetime import date

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import veridity`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "snarkjs: needs circom/snarkjs installed (skipped unless VERIDITY_RUN_SNARKJS=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_snarkjs = _env_flag('VERIDITY_RUN_SNARKJS')

    for item in items:
        if 'snarkjs' in item.keywords and not run_snarkjs:
            item.add_marker(pytest.mark.skip(reason='snarkjs tests skipped; set VERIDITY_RUN_SNARKJS=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep developer VERIDITY_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("VERIDITY_") and key != "VERIDITY_RUN_SNARKJS":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def today() -> date:
    return date(2024, 6, 15)


@pytest.fixture
def store(tmp_path):
    from veridity.zk.artifacts import ArtifactStore
    return ArtifactStore(tmp_path / "circuits")


@pytest.fixture
def registry(store):
    from veridity.zk.config import STANDARD_CIRCUITS
    from veridity.zk.registry import CircuitRegistry
    return CircuitRegistry(store, STANDARD_CIRCUITS)


@pytest.fixture
def builder(store, registry):
    from veridity.zk.builder import CircuitBuilder, DevelopmentToolchain
    from veridity.zk.circuits import standard_circuits
    b = CircuitBuilder(store, registry, DevelopmentToolchain(), standard_circuits())
    yield b
    b.shutdown()


@pytest.fixture
def config(tmp_path):
    from veridity.zk.config import VeridityConfig
    cfg = VeridityConfig()
    cfg.zk.artifacts_dir.set(str(tmp_path / "circuits"))
    cfg.zk.prove_timeout_seconds.set(10.0)
    return cfg


@pytest.fixture
def service(config):
    from veridity.zk.service import create_proof_service
    svc = create_proof_service(config)
    yield svc
    svc.shutdown()
