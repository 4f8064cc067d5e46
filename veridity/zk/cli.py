#!/usr/bin/env python3
"""
Veridity ZK CLI

Operational tooling for circuits and proofs.

Usage:
    veridity <command> [subcommand] [options]

Commands:
    circuits    Circuit status, builds and cleanup
    proof       Proof generation and verification
    config      Configuration management

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from veridity import __version__
from veridity.zk.config import ConfigError, ConfigManager
from veridity.zk.observability import Layer, bind_correlation_id, get_logger
from veridity.zk.proof import InvalidEnvelopeError, ZKProof
from veridity.zk.service import ProofService, create_proof_service

logger = get_logger("cli", Layer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.dump(data, default_flow_style=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:40] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _load_json_argument(value: str) -> Any:
    """Parse an inline JSON document or read one from a file path."""
    text = value
    if not value.lstrip().startswith(("{", "[")):
        path = Path(value)
        if not path.is_file():
            raise CLIError(f"Not a JSON document or file: {value}")
        text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise CLIError(f"Invalid JSON: {e}") from e


class VeridityCLI:
    """Main CLI application."""

    def __init__(self, manager: Optional[ConfigManager] = None):
        self._manager = manager
        self._service: Optional[ProofService] = None

        self.parser = argparse.ArgumentParser(
            prog="veridity",
            description="Veridity zero-knowledge proof tooling",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"veridity {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file (default: search standard locations)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_circuits_commands()
        self._register_proof_commands()
        self._register_config_commands()

    def _register_circuits_commands(self) -> None:
        """Register circuits subcommands."""
        circuits = self.subparsers.add_parser("circuits", help="Circuit status, builds and cleanup")
        circuits_sub = circuits.add_subparsers(dest="subcommand")

        # circuits status
        status = circuits_sub.add_parser("status", help="Show circuit readiness")
        status.add_argument("--refresh", action="store_true", help="Probe every circuit again")
        status.add_argument("--checksums", action="store_true", help="Include artifact SHA-256 digests")

        # circuits build
        build = circuits_sub.add_parser("build", help="Build missing circuit artifacts")
        build.add_argument("names", nargs="*", help="Circuits to build (default: all configured)")

        # circuits clean
        clean = circuits_sub.add_parser("clean", help="Delete a circuit's artifacts")
        clean.add_argument("name", help="Circuit name")

    def _register_proof_commands(self) -> None:
        """Register proof subcommands."""
        proof = self.subparsers.add_parser("proof", help="Proof generation and verification")
        proof_sub = proof.add_subparsers(dest="subcommand")

        # proof generate
        generate = proof_sub.add_parser("generate", help="Prove a raw claim input")
        generate.add_argument("--circuit", required=True, help="Circuit name")
        generate.add_argument("--input", "-i", required=True, help="Claim input as JSON or a JSON file")

        # proof age
        age = proof_sub.add_parser("age", help="Prove a minimum age")
        age.add_argument("--dob", required=True, help="Date of birth (YYYY-MM-DD)")
        age.add_argument("--min-age", type=int, required=True, help="Minimum age")
        age.add_argument("--salt", required=True, help="Salt")

        # proof citizenship
        citizenship = proof_sub.add_parser("citizenship", help="Prove citizenship")
        citizenship.add_argument("--number", required=True, help="Citizenship number")
        citizenship.add_argument("--issue-date", required=True, help="Issue date (YYYY-MM-DD)")
        citizenship.add_argument("--salt", required=True, help="Salt")
        validity = citizenship.add_mutually_exclusive_group()
        validity.add_argument("--valid", dest="is_valid", action="store_const", const=True,
                              help="Document was confirmed valid")
        validity.add_argument("--invalid", dest="is_valid", action="store_const", const=False,
                              help="Document was confirmed invalid")

        # proof education
        education = proof_sub.add_parser("education", help="Prove a minimum education level")
        education.add_argument("--level", required=True, help="Education level name or ordinal")
        education.add_argument("--min-level", required=True, help="Minimum level name or ordinal")
        education.add_argument("--salt", required=True, help="Salt")

        # proof income
        income = proof_sub.add_parser("income", help="Prove a minimum income")
        income.add_argument("--income", required=True, help="Annual income")
        income.add_argument("--threshold", required=True, help="Income threshold")
        income.add_argument("--salt", required=True, help="Salt")

        # proof verify
        verify = proof_sub.add_parser("verify", help="Verify a proof envelope")
        verify.add_argument("--file", required=True, help="Envelope JSON file")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config show
        config_sub.add_parser("show", help="Show current configuration")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., zk.backend)")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        correlation_id = bind_correlation_id()
        logger.debug("Command started", command=parsed.command, correlation_id=correlation_id)

        try:
            fmt = OutputFormat(parsed.format)
            self._load_config(parsed)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

        finally:
            if self._service is not None:
                self._service.shutdown()
                self._service = None

    def _load_config(self, args: argparse.Namespace) -> None:
        if self._manager is not None:
            return
        manager = ConfigManager()
        if args.config:
            try:
                manager.load_from_file(args.config)
            except ConfigError as e:
                raise CLIError(str(e), exit_code=2) from e
        else:
            manager.load_defaults()
        self._manager = manager

    @property
    def manager(self) -> ConfigManager:
        if self._manager is None:
            self._manager = ConfigManager()
        return self._manager

    @property
    def service(self) -> ProofService:
        if self._service is None:
            self._service = create_proof_service(self.manager)
        return self._service

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip(), exit_code=2)

        return handler(args)

    # Circuits handlers
    def _handle_circuits_status(self, args: argparse.Namespace) -> Any:
        statuses = self.service.get_build_status(refresh=args.refresh)
        rows = []
        for name, info in statuses.items():
            row: Dict[str, Any] = {
                "name": name,
                "state": info.state.value,
                "compiled": info.compiled,
                "set_up": info.set_up,
                "ready": info.ready,
            }
            if args.checksums:
                row["checksums"] = self.service.store.checksums(name)
            rows.append(row)
        return rows

    def _handle_circuits_build(self, args: argparse.Namespace) -> Any:
        report = self.service.build_circuits(args.names or None)
        if not report.ok:
            print(format_output(report.to_dict(), OutputFormat(args.format)))
            raise CLIError(f"{len(report.failed)} circuit(s) failed to build: {', '.join(sorted(report.failed))}")
        return report.to_dict()

    def _handle_circuits_clean(self, args: argparse.Namespace) -> Any:
        info = self.service.clean_circuit(args.name)
        return info.to_dict()

    # Proof handlers
    def _handle_proof_generate(self, args: argparse.Namespace) -> Any:
        claim = _load_json_argument(args.input)
        if not isinstance(claim, dict):
            raise CLIError("Claim input must be a JSON object")
        claim = {str(k): str(v) for k, v in claim.items()}
        return self.service.generate_proof(args.circuit, claim).to_dict()

    def _handle_proof_age(self, args: argparse.Namespace) -> Any:
        return self.service.generate_age_proof(args.dob, args.min_age, args.salt).to_dict()

    def _handle_proof_citizenship(self, args: argparse.Namespace) -> Any:
        proof = self.service.generate_citizenship_proof(
            args.number, args.issue_date, args.salt, is_valid=args.is_valid
        )
        return proof.to_dict()

    def _handle_proof_education(self, args: argparse.Namespace) -> Any:
        level = int(args.level) if args.level.isdigit() else args.level
        minimum = int(args.min_level) if args.min_level.isdigit() else args.min_level
        return self.service.generate_education_proof(level, minimum, args.salt).to_dict()

    def _handle_proof_income(self, args: argparse.Namespace) -> Any:
        try:
            income = Decimal(args.income)
            threshold = Decimal(args.threshold)
        except InvalidOperation as e:
            raise CLIError(f"Invalid amount: {e}") from e
        return self.service.generate_income_proof(income, threshold, args.salt).to_dict()

    def _handle_proof_verify(self, args: argparse.Namespace) -> Any:
        data = _load_json_argument(args.file)
        try:
            envelope = ZKProof.from_dict(data)
        except InvalidEnvelopeError as e:
            return {"valid": False, "errors": e.errors}
        return {
            "valid": self.service.verify_envelope(envelope),
            "circuit": envelope.circuit,
            "source": envelope.source.value,
        }

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return self.manager.config.to_dict()

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        try:
            value = self.manager.get(args.path)
        except ConfigError as e:
            raise CLIError(str(e), exit_code=2) from e
        return {"path": args.path, "value": value}

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = self.manager.validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return self.manager.export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = VeridityCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
