"""
Veridity Circuit Catalog

Declares the attribute-verification circuits known to the orchestration
layer: their public and private input signals (in the order the prover
emits public signals) and the predicates each circuit enforces.

Circuits:
    - Age Verification: age >= minimum_age
    - Citizenship Verification: validity flag over a hashed identity number
    - Education Verification: education_level >= minimum_level
    - Income Verification: income >= income_threshold

The constraint entries are a declarative summary of what the compiled
circuit proves. The development toolchain embeds them in its constraint
system file and the development backend refuses to sign a claim that
violates any of them, so a forged flag cannot produce a valid proof.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from veridity.core import FIELD_MODULUS


# =============================================================================
# CIRCUIT DEFINITION
# =============================================================================

@dataclass
class CircuitDefinition:
    """
    A circuit's interface and enforced predicates.

    ``public_signals`` is ordered: proofs carry public signal values in
    exactly this order.
    """
    name: str
    public_signals: List[str]
    private_signals: List[str]
    constraints: List[Dict[str, Any]] = field(default_factory=list)
    description: str = ""
    version: str = "1.0.0"

    @property
    def signals(self) -> List[str]:
        return list(self.public_signals) + list(self.private_signals)

    @property
    def digest(self) -> str:
        """Content-addressed identifier for the circuit definition."""
        content = {
            "name": self.name,
            "public_signals": self.public_signals,
            "private_signals": self.private_signals,
            "constraints": self.constraints,
            "version": self.version,
        }
        canonical = json.dumps(content, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "public_signals": list(self.public_signals),
            "private_signals": list(self.private_signals),
            "constraints": [dict(c) for c in self.constraints],
            "description": self.description,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitDefinition":
        return cls(
            name=data["name"],
            public_signals=list(data["public_signals"]),
            private_signals=list(data["private_signals"]),
            constraints=[dict(c) for c in data.get("constraints", [])],
            description=data.get("description", ""),
            version=data.get("version", "1.0.0"),
        )


# =============================================================================
# SIGNAL CHECKS
# =============================================================================

def signal_value(claim: Dict[str, str], signal: str) -> int:
    """Parse one claim signal as a field element."""
    if signal not in claim:
        raise KeyError(f"missing signal: {signal}")
    raw = claim[signal]
    if not isinstance(raw, str) or not raw.isdigit():
        raise ValueError(f"signal {signal} must be a decimal string")
    value = int(raw)
    if value >= FIELD_MODULUS:
        raise ValueError(f"signal {signal} is not a field element")
    return value


def check_constraints(definition: CircuitDefinition, claim: Dict[str, str]) -> List[str]:
    """
    Evaluate a circuit's declared predicates against a claim.

    Returns a list of violations (empty if the claim satisfies the circuit).
    Missing or malformed signals are reported as violations too.
    """
    violations: List[str] = []
    values: Dict[str, int] = {}
    for signal in definition.signals:
        try:
            values[signal] = signal_value(claim, signal)
        except (KeyError, ValueError) as e:
            violations.append(str(e).strip("'"))
    if violations:
        return violations

    for constraint in definition.constraints:
        op = constraint["op"]
        if op == "boolean":
            if values[constraint["signal"]] not in (0, 1):
                violations.append(f"{constraint['signal']} must be 0 or 1")
        elif op == "gte":
            expected = 1 if values[constraint["a"]] >= values[constraint["b"]] else 0
            if values[constraint["out"]] != expected:
                violations.append(
                    f"{constraint['out']} must equal {constraint['a']} >= {constraint['b']}"
                )
        elif op == "range":
            value = values[constraint["signal"]]
            if not constraint["min"] <= value <= constraint["max"]:
                violations.append(
                    f"{constraint['signal']} outside [{constraint['min']}, {constraint['max']}]"
                )
        elif op == "nonzero":
            if values[constraint["signal"]] == 0:
                violations.append(f"{constraint['signal']} must be nonzero")
        else:
            violations.append(f"unknown constraint op: {op}")
    return violations


def public_signal_values(definition: CircuitDefinition, claim: Dict[str, str]) -> List[str]:
    """Project a claim onto the circuit's public signals, in declared order."""
    return [str(signal_value(claim, s)) for s in definition.public_signals]


# =============================================================================
# STANDARD CIRCUITS
# =============================================================================

def build_age_verification_circuit() -> CircuitDefinition:
    """
    Build the age verification circuit.

    Proves: is_above_minimum == (age >= minimum_age)

    Public signals: is_above_minimum, minimum_age, salt_hash
    Private signals: age
    """
    return CircuitDefinition(
        name="age_verification",
        public_signals=["is_above_minimum", "minimum_age", "salt_hash"],
        private_signals=["age"],
        constraints=[
            {"op": "boolean", "signal": "is_above_minimum"},
            {"op": "range", "signal": "age", "min": 0, "max": 150},
            {"op": "range", "signal": "minimum_age", "min": 0, "max": 150},
            {"op": "gte", "out": "is_above_minimum", "a": "age", "b": "minimum_age"},
        ],
        description="Proves age meets a minimum without revealing date of birth",
    )


def build_citizenship_verification_circuit() -> CircuitDefinition:
    """
    Build the citizenship verification circuit.

    Proves: is_valid is a boolean bound to a hashed citizenship number

    The circuit does not establish validity by itself; the flag is supplied
    by whoever checked the document.
    """
    return CircuitDefinition(
        name="citizenship_verification",
        public_signals=["is_valid", "salt_hash"],
        private_signals=["citizenship_hash", "issue_date_epoch"],
        constraints=[
            {"op": "boolean", "signal": "is_valid"},
            {"op": "nonzero", "signal": "citizenship_hash"},
        ],
        description="Proves citizenship status without revealing the citizenship number",
    )


def build_education_verification_circuit() -> CircuitDefinition:
    """
    Build the education verification circuit.

    Proves: meets_minimum == (education_level >= minimum_level)
    """
    return CircuitDefinition(
        name="education_verification",
        public_signals=["meets_minimum", "minimum_level", "salt_hash"],
        private_signals=["education_level"],
        constraints=[
            {"op": "boolean", "signal": "meets_minimum"},
            {"op": "range", "signal": "education_level", "min": 0, "max": 6},
            {"op": "range", "signal": "minimum_level", "min": 0, "max": 6},
            {"op": "gte", "out": "meets_minimum", "a": "education_level", "b": "minimum_level"},
        ],
        description="Proves an education level threshold without revealing the level",
    )


def build_income_verification_circuit() -> CircuitDefinition:
    """
    Build the income verification circuit.

    Proves: meets_threshold == (income >= income_threshold)

    Amounts are in minor currency units.
    """
    return CircuitDefinition(
        name="income_verification",
        public_signals=["meets_threshold", "income_threshold", "salt_hash"],
        private_signals=["income"],
        constraints=[
            {"op": "boolean", "signal": "meets_threshold"},
            {"op": "range", "signal": "income", "min": 0, "max": 2**64 - 1},
            {"op": "gte", "out": "meets_threshold", "a": "income", "b": "income_threshold"},
        ],
        description="Proves income meets a threshold without revealing the amount",
    )


def standard_circuits() -> Dict[str, CircuitDefinition]:
    """All standard circuit definitions keyed by name."""
    circuits = [
        build_age_verification_circuit(),
        build_citizenship_verification_circuit(),
        build_education_verification_circuit(),
        build_income_verification_circuit(),
    ]
    return {c.name: c for c in circuits}


def get_definition(name: str, catalog: Optional[Dict[str, CircuitDefinition]] = None) -> CircuitDefinition:
    """Look up a circuit definition, raising ``KeyError`` for unknown names."""
    catalog = catalog if catalog is not None else standard_circuits()
    try:
        return catalog[name]
    except KeyError:
        raise KeyError(f"unknown circuit: {name}") from None
