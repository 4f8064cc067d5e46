"""
Tests for the configuration system.
"""

import pytest
import yaml

from veridity.zk.config import (
    STANDARD_CIRCUITS,
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
    VeridityConfig,
)


class TestConfigValue:
    """Tests for individual configuration values."""

    def test_default(self):
        assert ConfigValue(default=3).get() == 3

    def test_set_and_validate(self):
        value = ConfigValue(default=3, validator=lambda x: x > 0)
        value.set(5)
        assert value.get() == 5
        with pytest.raises(ConfigValidationError):
            value.set(-1)

    def test_string_coercion(self):
        value = ConfigValue(default=1.5)
        value.set("2.5")
        assert value.get() == 2.5

    def test_bad_string_is_validation_error(self):
        with pytest.raises(ConfigValidationError):
            ConfigValue(default=1).set("many")

    def test_env_overrides(self, monkeypatch):
        value = ConfigValue(default=False, env_var="VERIDITY_TEST_FLAG")
        value.set(False)
        monkeypatch.setenv("VERIDITY_TEST_FLAG", "yes")
        assert value.get() is True

    def test_list_from_env(self, monkeypatch):
        config = VeridityConfig()
        monkeypatch.setenv("VERIDITY_CIRCUITS", "age_verification, income_verification")
        assert config.zk.circuits.get() == ["age_verification", "income_verification"]

    def test_parse_types(self):
        assert ConfigValue(default=0).parse("7") == 7
        assert ConfigValue(default=True).parse("off") is False
        assert ConfigValue(default=[]).parse("a, ,b") == ["a", "b"]
        assert ConfigValue(default="x").parse("7") == "7"


class TestVeridityConfig:
    """Tests for the configuration tree."""

    def test_defaults(self):
        config = VeridityConfig()
        assert config.zk.backend.get() == "development"
        assert config.zk.circuits.get() == STANDARD_CIRCUITS
        assert config.zk.fail_on_degraded.get() is False
        assert config.zk.allow_citizenship_validity_stub.get() is False
        assert config.observability.log_format.get() == "json"

    def test_instances_do_not_share_state(self):
        a = VeridityConfig()
        b = VeridityConfig()
        a.zk.prove_workers.set(9)
        assert b.zk.prove_workers.get() == 4

    def test_to_dict_is_yaml_serializable(self):
        data = yaml.safe_load(yaml.dump(VeridityConfig().to_dict()))
        assert data["zk"]["prove_timeout_seconds"] == 30.0
        assert data["observability"]["log_level"] == "info"

    def test_rejects_unknown_backend(self):
        with pytest.raises(ConfigValidationError):
            VeridityConfig().zk.backend.set("mock")


class TestConfigManager:
    """Tests for file loading and path access."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "veridity.yaml"
        path.write_text(
            "zk:\n  prove_timeout_seconds: 5\n  circuits: [age_verification]\n"
            "observability:\n  log_format: text\n",
            encoding="utf-8",
        )
        manager = ConfigManager()
        manager.load_from_file(path)
        assert manager.get("zk.prove_timeout_seconds") == 5
        assert manager.get("zk.circuits") == ["age_verification"]
        assert manager.get("observability.log_format") == "text"

    def test_unknown_keys_are_ignored(self, tmp_path):
        path = tmp_path / "veridity.yaml"
        path.write_text("zk:\n  turbo: true\nunknown: 1\n", encoding="utf-8")
        manager = ConfigManager()
        manager.load_from_file(path)
        assert manager.validate() == []

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "veridity.yaml"
        path.write_text("zk:\n  prove_workers: 0\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            ConfigManager().load_from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ConfigManager().load_from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "veridity.yaml"
        path.write_text("zk: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigManager().load_from_file(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "veridity.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigManager().load_from_file(path)

    def test_load_defaults_skips_broken_file(self, tmp_path, monkeypatch):
        good = tmp_path / "good.yaml"
        good.write_text("zk:\n  backend: snarkjs\n", encoding="utf-8")
        broken = tmp_path / "broken.yaml"
        broken.write_text("zk: [unclosed\n", encoding="utf-8")
        monkeypatch.setattr(ConfigManager, "DEFAULT_PATHS", (broken, tmp_path / "absent.yaml", good))

        manager = ConfigManager()
        assert manager.load_defaults() == [good]
        assert manager.get("zk.backend") == "snarkjs"

    def test_get_section(self):
        section = ConfigManager().get("observability")
        assert section == {"log_level": "info", "log_format": "json"}

    def test_get_invalid_path(self):
        with pytest.raises(ConfigError):
            ConfigManager().get("zk.missing")
        with pytest.raises(ConfigError):
            ConfigManager().get("zk.backend.extra")

    def test_get_ignores_bad_env_elsewhere(self, monkeypatch):
        monkeypatch.setenv("VERIDITY_PROVE_WORKERS", "lots")
        assert ConfigManager().get("zk.backend") == "development"

    def test_settings_paths(self):
        paths = [path for path, _ in VeridityConfig().settings()]
        assert paths[0] == "zk.artifacts_dir"
        assert "observability.log_format" in paths
        assert len(paths) == len(set(paths))

    def test_validate_reports_bad_env(self, monkeypatch):
        monkeypatch.setenv("VERIDITY_PROVE_WORKERS", "lots")
        errors = ConfigManager().validate()
        assert any(e.startswith("zk.prove_workers") for e in errors)

    def test_export_schema(self):
        schema = ConfigManager().export_schema()
        timeout = schema["properties"]["zk"]["prove_timeout_seconds"]
        assert timeout["type"] == "float"
        assert timeout["env_var"] == "VERIDITY_PROVE_TIMEOUT"
