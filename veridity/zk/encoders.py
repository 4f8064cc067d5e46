"""
Veridity Claim Encoders

Pure functions turning domain attributes into circuit input signals
(``ClaimInput``: signal name -> decimal string).

Sensitive values are hashed before they leave the encoder: the raw salt
and the raw citizenship number never appear in a ``ClaimInput``. Hashes
are SHA-256 reduced into the BN254 scalar field so they are valid circuit
inputs.

Soundness:
    Derived flags (``is_above_minimum``, ``meets_minimum``, ...) are
    computed here in plaintext and passed in as signals. That alone proves
    nothing. The circuit must re-derive each flag from its private inputs
    and constrain the two to be equal; the encoder only shapes the input.

Copyright (c) 2026 Veridity. All rights reserved.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Optional, Union

from veridity.core import field_hash

ClaimInput = Dict[str, str]

DateLike = Union[date, str]

EDUCATION_LEVELS = {
    "none": 0,
    "primary": 1,
    "secondary": 2,
    "higher_secondary": 3,
    "bachelor": 4,
    "master": 5,
    "doctorate": 6,
}


class ValidityDeterminationRequired(ValueError):
    """A citizenship claim needs a validity decision the caller did not supply."""
    pass


def _as_date(value: DateLike, label: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{label} must be an ISO date (YYYY-MM-DD): {value!r}") from e


def _non_negative_int(value: int, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be an integer")
    if value < 0:
        raise ValueError(f"{label} must not be negative")
    return value


def salt_hash(salt: str) -> str:
    """Field hash of a salt; the salt itself never becomes a signal."""
    if not salt:
        raise ValueError("salt must not be empty")
    return field_hash(b"veridity/salt/" + salt.encode("utf-8"))


def age_in_years(date_of_birth: date, today: date) -> int:
    """Completed years, counting a birthday only once it has passed."""
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def encode_age_claim(
    date_of_birth: DateLike,
    minimum_age: int,
    salt: str,
    today: Optional[date] = None,
) -> ClaimInput:
    """
    Encode an age claim.

    Signals: age, minimum_age, salt_hash, is_above_minimum.
    """
    dob = _as_date(date_of_birth, "date_of_birth")
    minimum_age = _non_negative_int(minimum_age, "minimum_age")
    today = today or datetime.now(timezone.utc).date()
    if dob > today:
        raise ValueError("date_of_birth is in the future")

    age = age_in_years(dob, today)
    return {
        "age": str(age),
        "minimum_age": str(minimum_age),
        "salt_hash": salt_hash(salt),
        "is_above_minimum": "1" if age >= minimum_age else "0",
    }


def citizenship_validity_stub() -> str:
    """
    Constant validity flag.

    This is a stub, not a check: it asserts validity for every document.
    It is only used when configuration explicitly allows it.
    """
    return "1"


def encode_citizenship_claim(
    citizenship_number: str,
    issue_date: DateLike,
    salt: str,
    is_valid: Optional[bool] = None,
    allow_validity_stub: bool = False,
) -> ClaimInput:
    """
    Encode a citizenship claim.

    Signals: citizenship_hash, issue_date_epoch, salt_hash, is_valid.

    ``is_valid`` must come from an authoritative lookup done by the caller.
    Without it, the constant stub is used only when ``allow_validity_stub``
    is set; otherwise ``ValidityDeterminationRequired`` is raised.
    """
    number = (citizenship_number or "").strip()
    if not number:
        raise ValueError("citizenship_number must not be empty")

    issued = _as_date(issue_date, "issue_date")

    if is_valid is not None:
        validity = "1" if is_valid else "0"
    elif allow_validity_stub:
        validity = citizenship_validity_stub()
    else:
        raise ValidityDeterminationRequired(
            "citizenship validity must be supplied by the caller"
        )

    return {
        "citizenship_hash": field_hash(b"veridity/citizenship/" + number.encode("utf-8")),
        "issue_date_epoch": str(calendar.timegm(issued.timetuple())),
        "salt_hash": salt_hash(salt),
        "is_valid": validity,
    }


def encode_education_claim(
    education_level: Union[str, int],
    minimum_level: Union[str, int],
    salt: str,
) -> ClaimInput:
    """
    Encode an education claim.

    Levels are names from ``EDUCATION_LEVELS`` or their ordinals.
    Signals: education_level, minimum_level, salt_hash, meets_minimum.
    """
    level = _education_ordinal(education_level, "education_level")
    minimum = _education_ordinal(minimum_level, "minimum_level")
    return {
        "education_level": str(level),
        "minimum_level": str(minimum),
        "salt_hash": salt_hash(salt),
        "meets_minimum": "1" if level >= minimum else "0",
    }


def _education_ordinal(value: Union[str, int], label: str) -> int:
    if isinstance(value, str):
        try:
            return EDUCATION_LEVELS[value.strip().lower()]
        except KeyError:
            raise ValueError(f"unknown {label}: {value!r}") from None
    value = _non_negative_int(value, label)
    if value > max(EDUCATION_LEVELS.values()):
        raise ValueError(f"{label} out of range: {value}")
    return value


def to_minor_units(amount: Union[int, Decimal], label: str) -> int:
    """Convert a currency amount to integer minor units (x100)."""
    if isinstance(amount, bool) or not isinstance(amount, (int, Decimal)):
        raise ValueError(f"{label} must be an int or Decimal, not {type(amount).__name__}")
    minor = Decimal(amount) * 100
    if not minor.is_finite():
        raise ValueError(f"{label} must be finite")
    if minor != minor.to_integral_value():
        raise ValueError(f"{label} has more than two decimal places")
    if minor < 0:
        raise ValueError(f"{label} must not be negative")
    return int(minor)


def encode_income_claim(
    annual_income: Union[int, Decimal],
    income_threshold: Union[int, Decimal],
    salt: str,
) -> ClaimInput:
    """
    Encode an income claim. Amounts are converted to minor units.

    Signals: income, income_threshold, salt_hash, meets_threshold.
    """
    income = to_minor_units(annual_income, "annual_income")
    threshold = to_minor_units(income_threshold, "income_threshold")
    return {
        "income": str(income),
        "income_threshold": str(threshold),
        "salt_hash": salt_hash(salt),
        "meets_threshold": "1" if income >= threshold else "0",
    }
