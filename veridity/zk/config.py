"""
Veridity ZK Configuration System

Typed settings grouped in sections (``zk``, ``observability``). Each
setting is a ``ConfigValue`` addressed by a dotted path such as
``zk.prove_timeout_seconds``.

Precedence, highest first:
    1. Environment variables (VERIDITY_*)
    2. Values set in code or loaded from a YAML file
    3. Defaults

Files searched by ``ConfigManager.load_defaults``:
    ./veridity.yaml, ./config/veridity.yaml, ~/.veridity/config.yaml

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar, Union

import yaml

from veridity.core import load_yaml
from veridity.zk.observability import Layer, get_logger

T = TypeVar("T")

logger = get_logger("config", Layer.CONFIG)

STANDARD_CIRCUITS = [
    "age_verification",
    "citizenship_verification",
    "education_verification",
    "income_verification",
]


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """One typed setting. Text input is parsed to the type of ``default``."""
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        if self.env_var and self.env_var in os.environ:
            return self.parse(os.environ[self.env_var])
        return self.default if self._value is None else self._value

    def set(self, value: Any) -> None:
        if isinstance(value, str) and not isinstance(self.default, str):
            try:
                value = self.parse(value)
            except ValueError as e:
                raise ConfigValidationError(f"Invalid value for config: {value!r}") from e
        if not self.accepts(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")
        self._value = value

    def accepts(self, value: Any) -> bool:
        return self.validator is None or bool(self.validator(value))

    def parse(self, text: str) -> T:
        """Parse text (env var, CLI flag) as the setting's type; lists are comma-separated."""
        kind = type(self.default)
        if kind is bool:
            return text.strip().lower() in ("true", "1", "yes", "on")  # type: ignore
        if kind in (int, float):
            return kind(text)  # type: ignore
        if kind is list:
            return [item.strip() for item in text.split(",") if item.strip()]  # type: ignore
        return text  # type: ignore


def _setting(default: Any, env_var: str, description: str,
             validator: Optional[Callable[[Any], bool]] = None) -> Any:
    return field(default_factory=lambda: ConfigValue(
        default=list(default) if isinstance(default, list) else default,
        env_var=env_var,
        description=description,
        validator=validator,
    ))


def _positive(x: Any) -> bool:
    return x > 0


@dataclass
class ZKConfig:
    """Circuits, builds and proving."""
    artifacts_dir: ConfigValue[str] = _setting(
        "circuits", "VERIDITY_ARTIFACTS_DIR",
        "Root directory holding one artifact directory per circuit", bool)
    circuits: ConfigValue[list] = _setting(
        STANDARD_CIRCUITS, "VERIDITY_CIRCUITS",
        "Known circuit names (comma-separated in env)",
        lambda x: isinstance(x, list) and len(x) > 0)
    backend: ConfigValue[str] = _setting(
        "development", "VERIDITY_BACKEND",
        "Proving backend and matching toolchain (development, snarkjs)",
        lambda x: x in ("development", "snarkjs"))
    prove_timeout_seconds: ConfigValue[float] = _setting(
        30.0, "VERIDITY_PROVE_TIMEOUT",
        "Proof generation timeout before falling back to a mock proof", _positive)
    prove_workers: ConfigValue[int] = _setting(
        4, "VERIDITY_PROVE_WORKERS", "Maximum concurrent proof generations", _positive)
    build_workers: ConfigValue[int] = _setting(
        2, "VERIDITY_BUILD_WORKERS", "Background threads available for circuit builds", _positive)
    breaker_failure_threshold: ConfigValue[int] = _setting(
        5, "VERIDITY_BREAKER_THRESHOLD",
        "Consecutive backend failures before proving is bypassed", _positive)
    breaker_reset_seconds: ConfigValue[float] = _setting(
        30.0, "VERIDITY_BREAKER_RESET",
        "Seconds before a bypassed backend is retried", lambda x: x >= 0)
    fail_on_degraded: ConfigValue[bool] = _setting(
        False, "VERIDITY_FAIL_ON_DEGRADED",
        "Raise instead of returning a mock proof when proving is unavailable")
    allow_citizenship_validity_stub: ConfigValue[bool] = _setting(
        False, "VERIDITY_ALLOW_CITIZENSHIP_STUB",
        "Permit the constant is_valid=1 stub when no validity is supplied")
    snarkjs_bin: ConfigValue[str] = _setting(
        "snarkjs", "VERIDITY_SNARKJS_BIN", "snarkjs executable", bool)
    circom_bin: ConfigValue[str] = _setting(
        "circom", "VERIDITY_CIRCOM_BIN", "circom compiler executable", bool)
    sources_dir: ConfigValue[str] = _setting(
        "circuits/src", "VERIDITY_SOURCES_DIR", "Directory holding <circuit>.circom sources")
    ptau_path: ConfigValue[str] = _setting(
        "circuits/ptau/pot14_final.ptau", "VERIDITY_PTAU_PATH",
        "Powers of tau file used for groth16 setup")


@dataclass
class ObservabilityConfig:
    """Logging."""
    log_level: ConfigValue[str] = _setting(
        "info", "VERIDITY_LOG_LEVEL", "Log level (debug, info, warning, error)",
        lambda x: x in ("debug", "info", "warning", "error", "critical"))
    log_format: ConfigValue[str] = _setting(
        "json", "VERIDITY_LOG_FORMAT", "Log format (json, text)",
        lambda x: x in ("json", "text"))


@dataclass
class VeridityConfig:
    """Root configuration."""
    zk: ZKConfig = field(default_factory=ZKConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def settings(self) -> Iterator[Tuple[str, ConfigValue]]:
        """Yield ``(dotted_path, ConfigValue)`` for every setting."""
        def walk(node: Any, prefix: str) -> Iterator[Tuple[str, ConfigValue]]:
            for f in fields(node):
                child = getattr(node, f.name)
                if isinstance(child, ConfigValue):
                    yield prefix + f.name, child
                elif is_dataclass(child):
                    yield from walk(child, f"{prefix}{f.name}.")

        return walk(self, "")

    def to_dict(self) -> Dict[str, Any]:
        return _nest((path, value.get()) for path, value in self.settings())


def _nest(items: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Turn dotted paths into nested dicts."""
    tree: Dict[str, Any] = {}
    for path, value in items:
        *sections, key = path.split(".")
        node = tree
        for section in sections:
            node = node.setdefault(section, {})
        node[key] = value
    return tree


def _flatten(data: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key, value in data.items():
        if isinstance(value, dict):
            yield from _flatten(value, f"{prefix}{key}.")
        else:
            yield f"{prefix}{key}", value


class ConfigManager:
    """
    Loads configuration files into a ``VeridityConfig`` and reads it by path.

    Each manager owns its own ``VeridityConfig``; construct one at process
    start and pass it to ``create_proof_service``.
    """

    DEFAULT_PATHS = (
        Path("veridity.yaml"),
        Path("config/veridity.yaml"),
        Path.home() / ".veridity" / "config.yaml",
    )

    def __init__(self, config: Optional[VeridityConfig] = None):
        self._config = config or VeridityConfig()

    @property
    def config(self) -> VeridityConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Apply a YAML file; unknown keys are logged and ignored."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        try:
            data = load_yaml(path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        known = dict(self._config.settings())
        for key, value in _flatten(data):
            if key in known:
                known[key].set(value)
            else:
                logger.warning("Ignoring unknown configuration key", key=key)
        logger.info("Loaded configuration file", path=str(path))

    def load_defaults(self) -> List[Path]:
        """Load whichever default files exist and return them.

        A broken default file is logged and skipped so a stray user config
        cannot block start-up.
        """
        loaded: List[Path] = []
        for path in self.DEFAULT_PATHS:
            if not path.exists():
                continue
            try:
                self.load_from_file(path)
                loaded.append(path)
            except ConfigError as e:
                logger.warning("Skipping unreadable configuration file", path=str(path), error=str(e))
        return loaded

    def get(self, path: str) -> Any:
        """
        Value of a setting, or a dict for a whole section.

        Example: manager.get("zk.backend")
        """
        known = dict(self._config.settings())
        if path in known:
            return known[path].get()
        prefix = path + "."
        section = [(p[len(prefix):], s) for p, s in known.items() if p.startswith(prefix)]
        if not section:
            raise ConfigError(f"Invalid config path: {path}")
        return _nest((p, s.get()) for p, s in section)

    def validate(self) -> List[str]:
        """Check every effective value, environment overrides included; returns the problems."""
        errors: List[str] = []
        for path, setting in self._config.settings():
            try:
                value = setting.get()
            except (TypeError, ValueError) as e:
                errors.append(f"{path}: {e}")
                continue
            if not setting.accepts(value):
                errors.append(f"{path}: validation failed for value {value!r}")
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Describe every setting: type, default, description and env var."""
        def describe(setting: ConfigValue) -> Dict[str, Any]:
            entry = {
                "type": type(setting.default).__name__,
                "default": str(setting.default),
                "description": setting.description,
            }
            if setting.env_var:
                entry["env_var"] = setting.env_var
            return entry

        return {"properties": _nest((path, describe(s)) for path, s in self._config.settings())}
