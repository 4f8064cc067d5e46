"""
Tests for the veridity command line interface.
"""

import json
from unittest import mock

import pytest

from veridity.zk.cli import CLIError, OutputFormat, VeridityCLI, format_output, main
from veridity.zk.config import ConfigManager


@pytest.fixture
def manager(config):
    return ConfigManager(config)


@pytest.fixture
def cli(manager):
    return VeridityCLI(manager)


def _run(cli, capsys, *argv):
    code = cli.run(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


class TestFormatting:
    """Tests for output formatting."""

    def test_json(self):
        assert json.loads(format_output({"a": 1})) == {"a": 1}

    def test_table(self):
        text = format_output([{"name": "age_verification", "ready": True}], OutputFormat.TABLE)
        lines = text.splitlines()
        assert lines[0].startswith("name")
        assert "age_verification" in lines[2]

    def test_yaml(self):
        assert "a: 1" in format_output({"a": 1}, OutputFormat.YAML)

    def test_cli_error_exit_code(self):
        assert CLIError("x", exit_code=3).exit_code == 3


class TestCircuitsCommands:
    """Tests for `veridity circuits`."""

    def test_status_before_build(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "circuits", "status")
        assert code == 0
        rows = json.loads(out)
        assert {row["name"] for row in rows} == {
            "age_verification",
            "citizenship_verification",
            "education_verification",
            "income_verification",
        }
        assert not any(row["ready"] for row in rows)

    def test_build_then_status(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "circuits", "build", "age_verification")
        assert code == 0
        assert "age_verification" in json.loads(out)["built"]

        code, out, _ = _run(cli, capsys, "circuits", "status", "--checksums")
        rows = {row["name"]: row for row in json.loads(out)}
        assert rows["age_verification"]["ready"] is True
        assert set(rows["age_verification"]["checksums"]) == {
            "circuit.r1cs",
            "circuit.wasm",
            "proving_key.zkey",
            "verification_key.json",
        }

    def test_build_unknown_circuit_fails(self, cli, capsys):
        code, _, err = _run(cli, capsys, "circuits", "build", "unknown_circuit")
        assert code == 1
        assert "failed to build" in err

    def test_clean(self, cli, capsys):
        _run(cli, capsys, "circuits", "build", "age_verification")
        code, out, _ = _run(cli, capsys, "circuits", "clean", "age_verification")
        assert code == 0
        assert json.loads(out)["ready"] is False


class TestProofCommands:
    """Tests for `veridity proof`."""

    def test_age_proof_without_build_is_mock(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "proof", "age", "--dob", "2000-01-01", "--min-age", "18", "--salt", "abc")
        assert code == 0
        envelope = json.loads(out)
        assert envelope["source"] == "mock"
        assert envelope["degraded_reason"]

    def test_generate_and_verify(self, cli, capsys, tmp_path):
        _run(cli, capsys, "circuits", "build", "education_verification")
        code, out, _ = _run(
            cli, capsys, "proof", "education", "--level", "master", "--min-level", "4", "--salt", "abc"
        )
        assert code == 0
        envelope_path = tmp_path / "proof.json"
        envelope_path.write_text(out, encoding="utf-8")

        code, out, _ = _run(cli, capsys, "proof", "verify", "--file", str(envelope_path))
        assert code == 0
        assert json.loads(out) == {"valid": True, "circuit": "education_verification", "source": "backend"}

    def test_generate_raw_claim(self, cli, capsys):
        claim = json.dumps({"income": 100, "income_threshold": 50, "salt_hash": 7, "meets_threshold": 1})
        code, out, _ = _run(cli, capsys, "proof", "generate", "--circuit", "income_verification", "--input", claim)
        assert code == 0
        assert json.loads(out)["circuit"] == "income_verification"

    def test_income_rejects_bad_amount(self, cli, capsys):
        code, _, err = _run(cli, capsys, "proof", "income", "--income", "lots", "--threshold", "1", "--salt", "s")
        assert code == 1
        assert "Invalid amount" in err

    def test_citizenship_requires_validity_flag(self, cli, capsys):
        code, _, err = _run(
            cli, capsys, "proof", "citizenship", "--number", "123", "--issue-date", "2015-05-01", "--salt", "s"
        )
        assert code == 1
        assert "validity" in err

    def test_citizenship_with_flag(self, cli, capsys):
        code, out, _ = _run(
            cli, capsys, "proof", "citizenship", "--number", "123", "--issue-date", "2015-05-01",
            "--salt", "s", "--invalid",
        )
        assert code == 0
        assert json.loads(out)["circuit"] == "citizenship_verification"

    def test_verify_malformed_envelope(self, cli, capsys, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"circuit": "x"}), encoding="utf-8")
        code, out, _ = _run(cli, capsys, "proof", "verify", "--file", str(path))
        assert code == 0
        result = json.loads(out)
        assert result["valid"] is False
        assert result["errors"]

    def test_verify_missing_file(self, cli, capsys, tmp_path):
        code, _, err = _run(cli, capsys, "proof", "verify", "--file", str(tmp_path / "missing.json"))
        assert code == 1
        assert "Not a JSON document or file" in err


class TestConfigCommands:
    """Tests for `veridity config`."""

    def test_show(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "config", "show")
        assert code == 0
        assert json.loads(out)["zk"]["backend"] == "development"

    def test_get(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "config", "get", "zk.prove_timeout_seconds")
        assert code == 0
        assert json.loads(out) == {"path": "zk.prove_timeout_seconds", "value": 10.0}

    def test_get_invalid_path(self, cli, capsys):
        code, _, err = _run(cli, capsys, "config", "get", "zk.nope")
        assert code == 2
        assert "Invalid config path" in err

    def test_validate(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "config", "validate")
        assert json.loads(out) == {"valid": True, "errors": []}

    def test_schema(self, cli, capsys):
        code, out, _ = _run(cli, capsys, "config", "schema")
        schema = json.loads(out)
        assert schema["properties"]["zk"]["backend"]["env_var"] == "VERIDITY_BACKEND"

    def test_config_file(self, capsys, tmp_path):
        path = tmp_path / "veridity.yaml"
        path.write_text("zk:\n  backend: snarkjs\n", encoding="utf-8")
        code = main(["--config", str(path), "config", "get", "zk.backend"])
        out, _ = capsys.readouterr()
        assert code == 0
        assert json.loads(out)["value"] == "snarkjs"

    def test_missing_config_file(self, capsys, tmp_path):
        code = main(["--config", str(tmp_path / "absent.yaml"), "config", "show"])
        _, err = capsys.readouterr()
        assert code == 2
        assert "not found" in err


class TestEntryPoint:
    """Tests for argument handling."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "veridity" in capsys.readouterr().out

    def test_quiet_suppresses_errors(self, cli, capsys):
        code, _, err = _run(cli, capsys, "--quiet", "config", "get", "zk.nope")
        assert code == 2
        assert err == ""

    def test_each_invocation_gets_a_correlation_id(self, cli, capsys):
        with mock.patch("veridity.zk.cli.bind_correlation_id", return_value="corr-x") as bind:
            _run(cli, capsys, "config", "validate")
            _run(cli, capsys, "config", "validate")
        assert bind.call_count == 2
        bind.assert_called_with()
